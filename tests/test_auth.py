from datetime import timedelta

import structlog
from starlette.requests import Request
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from user_service.api.deps import get_current_user_id
from user_service.core.security import create_access_token, decode_token


def _register(client: TestClient, email: str = "register@example.com", **overrides):
    payload = {
        "email": email,
        "password": "secret123",
        "first_name": "Register",
        "last_name": "User",
        "phone": "1234567890",
    }
    payload.update(overrides)
    return client.post("/auth/register", json=payload)


def test_register_success(client: TestClient, published_events: list):
    response = _register(client)

    assert response.status_code == 201
    payload = response.json()
    assert payload["success"] is True
    assert payload["data"]["user"]["email"] == "register@example.com"
    assert "password_hash" not in payload["data"]["user"]
    assert decode_token(payload["data"]["token"])["sub"] == str(payload["data"]["user"]["id"])
    assert [event["eventType"] for event in published_events] == ["user.registered"]


def test_register_duplicate_email(client: TestClient):
    assert _register(client).status_code == 201

    response = _register(client)

    assert response.status_code == 400
    assert response.json()["message"] == "User already exists"


def test_register_missing_fields(client: TestClient):
    response = client.post("/auth/register", json={"email": "nobody@example.com", "password": "secret123"})

    assert response.status_code == 400
    assert response.json()["message"] == "Validation failed"


def test_login_success(client: TestClient):
    _register(client, email="login@example.com")

    response = client.post("/auth/login", json={"email": "login@example.com", "password": "secret123"})

    assert response.status_code == 200
    assert response.json()["data"]["user"]["email"] == "login@example.com"
    assert response.json()["data"]["token"]


def test_login_failure(client: TestClient):
    _register(client, email="wrongpass@example.com")

    response = client.post("/auth/login", json={"email": "wrongpass@example.com", "password": "nope-nope"})

    assert response.status_code == 401
    assert response.json()["success"] is False
    assert response.json()["message"] == "Incorrect email or password"


def test_profile_with_registration_token(client: TestClient):
    token = _register(client, email="profile@example.com").json()["data"]["token"]

    response = client.get("/user/profile", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 200
    assert response.json()["data"]["first_name"] == "Register"


def test_profile_requires_bearer_scheme(client: TestClient, user):
    token = create_access_token({"sub": str(user.id)})

    assert client.get("/user/profile").status_code == 401
    assert client.get("/user/profile", headers={"Authorization": token}).status_code == 401


def test_expired_token_is_rejected(client: TestClient, user):
    token = create_access_token({"sub": str(user.id)}, expires_delta=timedelta(minutes=-1))

    response = client.get("/user/profile", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 401
    assert response.json()["message"] == "Invalid token"


def test_token_for_deleted_user_is_rejected(client: TestClient, db_session: Session, user, auth_headers: dict):
    db_session.delete(user)
    db_session.commit()

    response = client.get("/user/addresses", headers=auth_headers)

    assert response.status_code == 401


def test_resolving_caller_leaves_log_context_untouched(user):
    token = create_access_token({"sub": str(user.id)})
    request = Request({
        "type": "http",
        "method": "GET",
        "path": "/user/profile",
        "headers": [(b"authorization", f"Bearer {token}".encode())],
    })
    structlog.contextvars.clear_contextvars()

    assert get_current_user_id(request) == user.id
    assert "user_id" not in structlog.contextvars.get_contextvars()
