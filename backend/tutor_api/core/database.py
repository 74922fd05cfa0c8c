from typing import Iterator, Optional

from fastapi import Request
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

# Base class for all database models
# All models inherit from this to get SQLAlchemy ORM functionality
Base = declarative_base()


class Database:
    """
    Owns the engine and session factory for one database URL.

    Constructed once per application and connected in the app lifespan.
    Components receive it (or sessions made from it) explicitly instead of
    importing a module-level engine.
    """

    def __init__(self, url: str):
        self.url = url
        self._engine: Optional[Engine] = None
        self._session_factory: Optional[sessionmaker] = None

    @property
    def is_connected(self) -> bool:
        return self._engine is not None

    def connect(self) -> None:
        """Create the engine and session factory. Calling it again is a no-op."""
        if self._engine is not None:
            return

        kwargs = {}
        if self.url.startswith("sqlite"):
            # SQLite connections are shared with FastAPI's threadpool
            kwargs["connect_args"] = {"check_same_thread": False}
            if ":memory:" in self.url or self.url in ("sqlite://", "sqlite:///"):
                # Every session must see the same in-memory database
                kwargs["poolclass"] = StaticPool

        self._engine = create_engine(self.url, **kwargs)
        # autocommit=False: Changes require explicit commit (prevents accidental commits)
        # autoflush=False: Don't auto-flush before queries
        self._session_factory = sessionmaker(
            autocommit=False, autoflush=False, bind=self._engine
        )

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            raise RuntimeError("Database is not connected")
        return self._engine

    def create_all(self) -> None:
        """Create tables for all models that inherit from Base"""
        # In production, use migrations (Alembic) instead of create_all
        Base.metadata.create_all(bind=self.engine)

    def session(self) -> Session:
        if self._session_factory is None:
            raise RuntimeError("Database is not connected")
        return self._session_factory()

    def dispose(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
        self._engine = None
        self._session_factory = None


def get_db(request: Request) -> Iterator[Session]:
    """
    Dependency for getting database session.

    The session is automatically closed after the request completes (via finally block).
    Using yield makes this a generator dependency - FastAPI handles the cleanup.
    """
    db = request.app.state.database.session()
    try:
        yield db
    finally:
        # Always close session, even if request raises an exception
        db.close()
