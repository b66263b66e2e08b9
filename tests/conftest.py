"""Pytest configuration and fixtures."""

from datetime import datetime

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from src.database import Base, get_db
from src.main import app
from src.models import Reminder, User


class AuthHeaders(dict):
    """Dict subclass that also stores user_id and email."""

    def __init__(self, *args, user_id: int | None = None, email: str | None = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.user_id = user_id
        self.email = email


class FakeTransport:
    """Push transport double that records sends and raises per endpoint."""

    def __init__(self, failures: dict[str, Exception] | None = None, available: bool = True):
        self.failures = failures or {}
        self.available = available
        self.sent: list[tuple[str, object]] = []

    def send(self, subscription, payload):
        self.sent.append((subscription.endpoint, payload))
        error = self.failures.get(subscription.endpoint)
        if error is not None:
            raise error


SQLALCHEMY_DATABASE_URL = "sqlite:///./test.db"

engine = create_engine(SQLALCHEMY_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="session", autouse=True)
def setup_test_database():
    """Create test database schema once at the start of the test session."""
    Base.metadata.create_all(bind=engine)
    yield


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


@pytest.fixture(scope="function")
def client(db):
    """Create a test client with database override."""

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(client):
    """Create a user and return auth headers with user info."""
    email = "test@example.com"
    response = client.post(
        "/api/v1/auth/register",
        json={"email": email, "password": "testpass123", "name": "Test User"},
    )
    assert response.status_code == 201
    data = response.json()
    token = data["access_token"]
    user_id = data["user"]["id"]

    return AuthHeaders({"Authorization": f"Bearer {token}"}, user_id=user_id, email=email)


@pytest.fixture
def user(db):
    """A user created directly in the database."""
    user = User(email="owner@example.com", password_hash="not-a-real-hash", name="Owner")
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def make_reminder(db):
    """Factory for reminder rows."""

    def _make(owner_id: int, due_time: datetime, text: str = "Water the plants", **kwargs):
        reminder = Reminder(owner_id=owner_id, due_time=due_time, text=text, **kwargs)
        db.add(reminder)
        db.commit()
        db.refresh(reminder)
        return reminder

    return _make


@pytest.fixture
def fake_transport():
    """A configured push transport that succeeds unless told otherwise."""
    return FakeTransport()


@pytest.fixture
def session_factory():
    """Opens extra sessions on the test database, e.g. for a second worker or tab."""
    sessions = []

    def _open():
        session = TestingSessionLocal()
        sessions.append(session)
        return session

    yield _open
    for session in sessions:
        session.close()
