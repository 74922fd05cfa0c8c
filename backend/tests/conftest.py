"""Pytest configuration and fixtures."""

import os

# tutor_api.main builds a module-level app from the environment on import
os.environ.setdefault("JWT_SECRET", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("SCHEDULER_ENABLED", "false")

from collections.abc import Generator
from typing import Any

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from tutor_api.core.config import Settings
from tutor_api.core.database import Database
from tutor_api.main import create_app

TEST_PASSWORD = "password1"


@pytest.fixture
def settings() -> Settings:
    return Settings(
        JWT_SECRET="test-secret-key",
        DATABASE_URL="sqlite:///:memory:",
        AI_USAGE_LIMIT_REGISTERED=3,
        AI_USAGE_LIMIT_GUEST=2,
        ADMIN_EMAILS="admin@example.com",
        SCHEDULER_ENABLED=False,
        ENVIRONMENT="development",
        _env_file=None,
    )


@pytest.fixture
def sent_reset_links() -> list[tuple[str, str]]:
    """Collects (email, link) pairs instead of logging them"""
    return []


@pytest.fixture
def database(settings: Settings) -> Generator[Database, None, None]:
    db = Database(settings.DATABASE_URL)
    yield db
    db.dispose()


@pytest.fixture
def app(settings: Settings, database: Database, sent_reset_links):
    def capture(email: str, link: str) -> None:
        sent_reset_links.append((email, link))

    return create_app(settings, database=database, reset_link_sender=capture)


@pytest.fixture
def client(app) -> Generator[TestClient, Any, None]:
    # Entering the client runs the lifespan, which connects the database
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def db_session(client: TestClient, database: Database) -> Generator[Session, None, None]:
    """Session on the same in-memory database the app uses"""
    session = database.session()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def signup(client: TestClient):
    def _signup(email: str = "a@b.com", password: str = TEST_PASSWORD, name: str = "A") -> str:
        response = client.post(
            "/api/auth/signup", json={"name": name, "email": email, "password": password}
        )
        assert response.status_code == 201, response.text
        return response.json()["userId"]

    return _signup


@pytest.fixture
def logged_in(client: TestClient, signup):
    """Sign up and log in; the client then carries the session cookie"""
    def _logged_in(email: str = "a@b.com", password: str = TEST_PASSWORD) -> str:
        user_id = signup(email=email, password=password)
        response = client.post("/api/auth/login", json={"email": email, "password": password})
        assert response.status_code == 200, response.text
        return user_id

    return _logged_in
