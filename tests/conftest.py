import os
import tempfile
from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

os.environ["ENVIRONMENT"] = "development"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret-key-for-user-service-tests"
os.environ["EVENTS_ENABLED"] = "false"

from user_service.api.deps import get_event_publisher
from user_service.core.security import create_access_token, hash_password
from user_service.db.init_db import init_db
from user_service.db.session import get_db
from user_service.main import app
from user_service.models.user import User
from user_service.services.events import EventPublisher


@pytest.fixture()
def db_session() -> Generator[Session, None, None]:
    db_file = tempfile.NamedTemporaryFile(suffix=".db", delete=False)
    db_file.close()

    engine = create_engine(
        f"sqlite:///{db_file.name}",
        connect_args={"check_same_thread": False},
    )
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    init_db(engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()
        os.unlink(db_file.name)


@pytest.fixture()
def published_events() -> list:
    return []


@pytest.fixture()
def publisher(published_events: list) -> EventPublisher:
    return EventPublisher(enabled=True, dispatcher=published_events.append)


@pytest.fixture()
def client(db_session: Session, publisher: EventPublisher) -> Generator[TestClient, None, None]:
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_event_publisher] = lambda: publisher
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture()
def make_user(db_session: Session):
    def _make_user(email: str = "diner@example.com") -> User:
        user = User(
            email=email,
            password_hash=hash_password("secret123"),
            first_name="Test",
            last_name="Diner",
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make_user


@pytest.fixture()
def user(make_user) -> User:
    return make_user()


def bearer_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token({'sub': str(user.id)})}"}


@pytest.fixture()
def auth_headers(user: User) -> dict:
    return bearer_headers(user)


@pytest.fixture()
def headers_for():
    return bearer_headers
