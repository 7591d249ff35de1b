"""Fixtures for API tests. These need a reachable MongoDB and skip otherwise."""

import os
import uuid

import pytest
from fastapi.testclient import TestClient
from pymongo import MongoClient
from pymongo.errors import PyMongoError


@pytest.fixture(scope="session")
def test_db_url():
    """Database URL for testing."""
    return os.getenv("MONGODB_TEST_URL", "mongodb://localhost:27017")


@pytest.fixture(scope="session")
def test_db_name():
    """Database name for testing."""
    return "livenotes_test"


@pytest.fixture(scope="session")
def mongo_db(test_db_url, test_db_name):
    """Synchronous handle on the test database, or skip if MongoDB is down."""
    client = MongoClient(test_db_url, serverSelectionTimeoutMS=500)
    try:
        client.admin.command("ping")
    except PyMongoError:
        client.close()
        pytest.skip("MongoDB is not reachable")
    yield client[test_db_name]
    client.close()


@pytest.fixture
def api_client(mongo_db, test_db_url, test_db_name, monkeypatch):
    """FastAPI test client fixture with lifespan context."""
    monkeypatch.setenv("MONGODB_URL", test_db_url)
    monkeypatch.setenv("MONGODB_DB_NAME", test_db_name)
    for signal in ("TRACES", "METRICS"):
        monkeypatch.setenv(f"OTEL_ENABLE_{signal}", "false")

    from api.app import app

    with TestClient(app) as client:
        yield client


@pytest.fixture
def auto_confirm(monkeypatch):
    """Skip the email confirmation step for new accounts."""
    monkeypatch.setattr("api.routes.auth.AUTO_CONFIRM", True)


@pytest.fixture
def require_confirmation(monkeypatch):
    monkeypatch.setattr("api.routes.auth.AUTO_CONFIRM", False)


@pytest.fixture
def credentials():
    """Sign-up payload with a unique email per test."""
    return {"email": f"test-{uuid.uuid4().hex[:8]}@example.com", "password": "correct-horse"}


def _signed_in_user(api_client, credentials):
    api_client.post("/auth/signup", json=credentials)
    response = api_client.post("/auth/signin", json=credentials)
    data = response.json()
    return {
        "id": data["user"]["id"],
        "headers": {"Authorization": f"Bearer {data['access_token']}"},
    }


@pytest.fixture
def user(api_client, credentials, auto_confirm):
    """A confirmed, signed-in account: its id and auth headers."""
    return _signed_in_user(api_client, credentials)


@pytest.fixture
def other_user(api_client, auto_confirm):
    return _signed_in_user(
        api_client,
        {"email": f"other-{uuid.uuid4().hex[:8]}@example.com", "password": "other-password"},
    )
