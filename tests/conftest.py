from datetime import datetime, timedelta, timezone

import pytest

from app import create_app
from models import RecipeCatalog, UserDirectory, demo_recipes, demo_users
from utils import CredentialStore, TokenService

TEST_SECRET = "test-secret-key-that-is-long-enough-for-hs256"


class FakeClock:
    """Manually advanced clock for expiry and timestamp tests."""

    def __init__(self, start=None):
        self.now = start or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def credentials():
    # Low cost keeps the suite fast
    return CredentialStore(iterations=1000)


@pytest.fixture
def tokens(clock):
    return TokenService(TEST_SECRET, clock=clock)


@pytest.fixture
def users(credentials, tokens, clock):
    return UserDirectory(credentials, tokens, clock=clock)


@pytest.fixture
def recipes(clock):
    return RecipeCatalog(clock=clock)


@pytest.fixture
def app(credentials, tokens):
    return create_app(
        config={"TESTING": True, "JWT_SECRET_KEY": TEST_SECRET},
        user_directory=UserDirectory(credentials, tokens, seed=demo_users(credentials)),
        recipe_catalog=RecipeCatalog(seed=demo_recipes()),
    )


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def login(client):
    def _login(username="john_doe", password="password123"):
        response = client.post("/api/users/login", json={"username": username, "password": password})
        assert response.status_code == 200
        return {"Authorization": f"Bearer {response.get_json()['data']['token']}"}
    return _login
