import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from tutor_api.api.routes import admin, auth, users
from tutor_api.core.config import Settings, get_settings
from tutor_api.core.database import Database
from tutor_api.core.errors import register_error_handlers
from tutor_api.core.scheduler import ResetTokenPurgeScheduler
from tutor_api.core.security import TokenService
from tutor_api.services.password_reset_service import ResetLinkSender, log_reset_link

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage app lifecycle events.

    Startup: connect the database, create tables, start the purge scheduler
    Shutdown: stop the scheduler, dispose the engine
    """
    database: Database = app.state.database
    database.connect()
    # In production, use migrations (Alembic) instead of create_all
    database.create_all()

    scheduler = None
    if app.state.settings.SCHEDULER_ENABLED:
        scheduler = ResetTokenPurgeScheduler(
            database, interval_minutes=app.state.settings.RESET_PURGE_INTERVAL_MINUTES
        )
        scheduler.start()

    yield

    if scheduler is not None:
        scheduler.stop()
    database.dispose()


def create_app(
    settings: Optional[Settings] = None,
    database: Optional[Database] = None,
    reset_link_sender: ResetLinkSender = log_reset_link,
) -> FastAPI:
    """
    Build the application.

    Settings are validated here, once: a missing JWT_SECRET fails before
    the app exists, so no request is ever served without a signing key.
    """
    if settings is None:
        settings = get_settings()

    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(
        title="AI Code Tutor API",
        description="Accounts, sessions and AI usage quota for the AI code tutor",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.database = database or Database(settings.DATABASE_URL)
    app.state.token_service = TokenService(
        settings.JWT_SECRET,
        algorithm=settings.JWT_ALGORITHM,
        expire_seconds=settings.ACCESS_TOKEN_EXPIRE_SECONDS,
    )
    app.state.reset_link_sender = reset_link_sender

    # CORS middleware - allows the frontend to call the API with its session cookie
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.get_cors_origins(),
        allow_credentials=True,  # Allow cookies
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_error_handlers(app)

    # All routes are prefixed with /api for consistency
    app.include_router(auth.router, prefix="/api")
    app.include_router(users.router, prefix="/api")
    app.include_router(admin.router, prefix="/api")

    @app.get("/")
    async def root():
        """Root endpoint - API information"""
        return {"message": "AI Code Tutor API", "version": "1.0.0"}

    @app.get("/health")
    async def health():
        """Health check endpoint - used by monitoring/deployment tools"""
        return {"status": "healthy"}

    return app


app = create_app()
