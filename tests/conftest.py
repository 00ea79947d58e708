"""Pytest configuration and fixtures."""

import os
from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from pantry_ingest import models  # noqa: F401
from pantry_ingest.api.dependencies import get_ingestion_service
from pantry_ingest.config import get_settings
from pantry_ingest.database import Base, get_db
from pantry_ingest.main import app
from pantry_ingest.services.agent import StagedController
from pantry_ingest.services.auth import create_access_token
from pantry_ingest.services.extraction import ExtractionService, get_extraction_service
from pantry_ingest.services.ingestion_service import IngestionService
from pantry_ingest.services.storage import LocalObjectStore, get_object_store


class AuthHeaders(dict):
    """Dict subclass that also stores user_id."""

    def __init__(self, *args, user_id: str | None = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.user_id = user_id


# Use test database - PostgreSQL in Docker, SQLite locally
if os.getenv("DATABASE_URL"):
    # Running in Docker - use PostgreSQL test database
    SQLALCHEMY_DATABASE_URL = os.getenv("DATABASE_URL").replace(
        "/pantry_ingest", "/pantry_ingest_test"
    )
else:
    # Running locally - use SQLite
    SQLALCHEMY_DATABASE_URL = "sqlite:///./test.db"

connect_args = {"check_same_thread": False} if "sqlite" in SQLALCHEMY_DATABASE_URL else {}
engine = create_engine(SQLALCHEMY_DATABASE_URL, connect_args=connect_args)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="session", autouse=True)
def setup_test_database():
    """Create test database schema once at the start of the test session."""
    if "postgresql" in SQLALCHEMY_DATABASE_URL:
        # For PostgreSQL, create the test database
        from sqlalchemy_utils import create_database, database_exists

        # Create test database if it doesn't exist
        if not database_exists(SQLALCHEMY_DATABASE_URL):
            create_database(SQLALCHEMY_DATABASE_URL)

    Base.metadata.create_all(bind=engine)
    yield
    # Don't drop database - just leave it for next run (each test cleans up after itself)


@pytest.fixture(scope="function", autouse=True)
def db():
    """Create a fresh database session for each test with cleanup."""
    session = TestingSessionLocal()

    yield session

    # Clean up all data after test
    session.rollback()
    for table in reversed(Base.metadata.sorted_tables):
        session.execute(table.delete())
    session.commit()
    session.close()


@pytest.fixture(autouse=True)
def mock_redis():
    """Capture pub/sub publishes instead of talking to Redis."""
    client = MagicMock()
    with patch("pantry_ingest.services.realtime.get_sync_redis", return_value=client):
        yield client


@pytest.fixture
def settings():
    return get_settings()


@pytest.fixture
def object_store(tmp_path):
    """Local object store rooted in a temporary directory."""
    return LocalObjectStore(tmp_path / "storage")


@pytest.fixture
def extraction():
    """Extraction service with no model provider (fallback parser only)."""
    return ExtractionService(None)


@pytest.fixture(scope="function")
def client(db, object_store, extraction):
    """Create a test client with database and service overrides."""

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_object_store] = lambda: object_store
    app.dependency_overrides[get_extraction_service] = lambda: extraction
    app.dependency_overrides[get_ingestion_service] = lambda: IngestionService(
        db, extraction, controller=StagedController()
    )
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    """Mint a bearer token for a test user and return auth headers with user info."""
    user_id = "test-user"
    token = create_access_token(user_id, email="test@example.com")
    return AuthHeaders({"Authorization": f"Bearer {token}"}, user_id=user_id)


class FakeProvider:
    """Extraction provider returning canned payloads."""

    name = "fake"

    def __init__(self, payload=None, error=None, transcript="", transcribe_error=None):
        self.payload = payload
        self.error = error
        self.transcript = transcript
        self.transcribe_error = transcribe_error
        self.calls = []

    def complete_json(self, system_prompt, user_text, schema, image=None):
        self.calls.append({"user_text": user_text, "image": image})
        if self.error:
            raise self.error
        return self.payload

    def transcribe(self, prompt, image):
        self.calls.append({"prompt": prompt, "image": image})
        if self.transcribe_error:
            raise self.transcribe_error
        return self.transcript


@pytest.fixture
def fake_provider_factory():
    return FakeProvider
