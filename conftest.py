import os

# Configure before the app (and its settings) are imported
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("BCRYPT_ROUNDS", "4")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from ireporter.infrastructure.database import Base, get_db
from ireporter.infrastructure import models  # noqa: F401
from ireporter.domain.services.auth_service import auth_service
from ireporter.api import deps
from ireporter.main import app

# Single in-memory SQLite database shared by every connection in a test
SQLALCHEMY_TEST_DATABASE_URL = os.environ.get("TEST_DATABASE_URL", "sqlite://")

DEFAULT_PASSWORD = "Str0ng-Passw0rd!"


@pytest.fixture(scope="session")
def test_engine():
    """Create a test database engine."""
    engine = create_engine(
        SQLALCHEMY_TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    yield engine
    engine.dispose()


@pytest.fixture(scope="function")
def test_db(test_engine):
    """Fresh schema and session per test."""
    Base.metadata.create_all(bind=test_engine)
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)
    db = TestingSessionLocal()

    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture(autouse=True)
def clear_rate_limits():
    deps._rate_limit_store.clear()
    yield
    deps._rate_limit_store.clear()


@pytest.fixture(scope="function")
def client(test_db):
    """Create a test client with database override."""
    def override_get_db():
        try:
            yield test_db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
def client_no_db():
    """Create a test client without database dependency for basic endpoint tests."""
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client


def signup_payload(username: str, email: str = None, password: str = DEFAULT_PASSWORD, **extra) -> dict:
    payload = {
        "firstname": username.capitalize(),
        "lastname": "Tester",
        "email": email or f"{username}@example.com",
        "phone_number": "+2348012345678",
        "username": username,
        "password": password,
    }
    payload.update(extra)
    return payload


def auth_headers(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def register_user(client):
    """
    Sign up and log in a user through the API.
    Returns (user_json, headers).
    """
    def _register(username: str, email: str = None, password: str = DEFAULT_PASSWORD):
        payload = signup_payload(username, email=email, password=password)
        response = client.post("/api/auth/signup", json=payload)
        assert response.status_code == 201, response.text
        login = client.post("/api/auth/login", json={"email": payload["email"], "password": password})
        assert login.status_code == 200, login.text
        body = login.json()
        return body["user"], auth_headers(body["access_token"])

    return _register


@pytest.fixture
def alice(register_user):
    return register_user("alice")


@pytest.fixture
def bob(register_user):
    return register_user("bob")


@pytest.fixture
def admin(client, register_user, test_db):
    """An admin promoted out of band, logged in after promotion."""
    register_user("root", email="root@example.com")
    auth_service.promote_to_admin("root@example.com", test_db)
    login = client.post("/api/auth/login", json={"email": "root@example.com", "password": DEFAULT_PASSWORD})
    assert login.status_code == 200, login.text
    body = login.json()
    return body["user"], auth_headers(body["access_token"])
