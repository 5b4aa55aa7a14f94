"""Pytest configuration and fixtures for Pollify tests."""

from collections.abc import Callable, Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from pollify.api.deps import get_db
from pollify.main import app
from pollify.models.base import Base
from pollify.models.poll import Poll, PollOption, PollStatus, PollType, PollVisibility
from pollify.models.user import User
from pollify.services.auth import get_password_hash

# Use SQLite in-memory for tests (fast, isolated)
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """Create a fresh database for each test."""
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db: Session) -> Generator[TestClient, None, None]:
    """Create a test client with database override."""

    def override_get_db():
        try:
            yield db
        finally:
            pass  # Don't close the session here, let the db fixture handle it

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def _make_user(db: Session, username: str, password: str, name: str | None = None) -> User:
    user = User(username=username, password_hash=get_password_hash(password), name=name)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def _login(client: TestClient, username: str, password: str) -> dict[str, str]:
    response = client.post("/api/auth/login", data={"username": username, "password": password})
    assert response.status_code == 200, f"Login failed: {response.json()}"
    token = response.json()["access_token"]
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def test_user(db: Session) -> User:
    """Create a test user."""
    return _make_user(db, "testuser", "testpassword123", name="Test User")


@pytest.fixture
def other_user(db: Session) -> User:
    """Create a second user who does not own the test polls."""
    return _make_user(db, "otheruser", "otherpassword123")


@pytest.fixture
def auth_headers(client: TestClient, test_user: User) -> dict[str, str]:
    """Get authentication headers for the test user."""
    return _login(client, "testuser", "testpassword123")


@pytest.fixture
def other_headers(client: TestClient, other_user: User) -> dict[str, str]:
    """Get authentication headers for the other user."""
    return _login(client, "otheruser", "otherpassword123")


@pytest.fixture
def make_poll(db: Session) -> Callable[..., Poll]:
    """Factory inserting a poll with labelled options directly into the database."""
    counter = {"n": 0}

    def _make(
        creator: User | None = None,
        labels: tuple[str, ...] = ("Red", "Blue", "Green"),
        **overrides,
    ) -> Poll:
        counter["n"] += 1
        fields = {
            "slug": f"poll{counter['n']:04d}",
            "title": f"Test Poll {counter['n']}",
            "type": PollType.SINGLE.value,
            "visibility": PollVisibility.PUBLIC.value,
            "status": PollStatus.ACTIVE.value,
        }
        fields.update(overrides)
        poll = Poll(creator_id=creator.id if creator else None, **fields)
        for position, label in enumerate(labels):
            poll.options.append(PollOption(label=label, position=position))
        db.add(poll)
        db.commit()
        db.refresh(poll)
        return poll

    return _make


@pytest.fixture
def test_poll(make_poll: Callable[..., Poll], test_user: User) -> Poll:
    """A public single-choice poll owned by the test user."""
    return make_poll(creator=test_user, slug="abc12345", title="Favourite colour?")


@pytest.fixture
def multi_poll(make_poll: Callable[..., Poll], test_user: User) -> Poll:
    """A multiple-choice poll allowing up to two selections."""
    return make_poll(
        creator=test_user,
        labels=("Python", "Go", "Rust", "Zig"),
        type=PollType.MULTIPLE.value,
        max_selections=2,
    )
