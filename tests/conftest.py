"""Shared pytest fixtures for the storefront tests."""

from datetime import datetime, timedelta, timezone

import pytest

from app import create_app
from auth import AuthService
from database import RecordStore, seed_store
from security import PasswordHasher
from sessions import SessionManager

# bcrypt's minimum work factor keeps the suite fast.
TEST_ROUNDS = 4


class FakeClock:
    """A clock that only moves when told to."""

    def __init__(self, start=None):
        self.now = start or datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    """A fresh, empty store per test."""
    return RecordStore(clock=clock)


@pytest.fixture
def hasher():
    return PasswordHasher(rounds=TEST_ROUNDS)


@pytest.fixture
def sessions(store):
    return SessionManager(store)


@pytest.fixture
def auth(store, hasher, sessions):
    return AuthService(store, hasher, sessions)


@pytest.fixture
def seeded_store(store, hasher):
    seed_store(store, hasher.hash)
    return store


@pytest.fixture
def customer(store, hasher):
    """A regular user with a known password."""
    return store.create_user("Ama Mensah", "ama@example.com", hasher.hash("s3cure-pass"))


@pytest.fixture
def product(store):
    return store.create_product(
        name="JBL Flip 6",
        description="Waterproof portable speaker.",
        price="180.00",
        category="Speakers",
        image="/images/speaker-4.webp",
        rating=4.8,
        num_reviews=95,
        count_in_stock=5,
    )


@pytest.fixture
def app(store):
    """Flask app wired to the per-test store, seeded with the admin and catalogue."""
    flask_app = create_app(store, {"TESTING": True, "BCRYPT_ROUNDS": TEST_ROUNDS})
    return flask_app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def sign_in(client):
    """Sign in through the API and return the bearer header for later calls."""

    def _sign_in(email, password):
        response = client.post("/api/auth/login", json={"email": email, "password": password})
        assert response.status_code == 200, response.get_json()
        token = response.get_json()["data"]["token"]
        return {"Authorization": f"Bearer {token}"}

    return _sign_in


@pytest.fixture
def admin_headers(sign_in):
    return sign_in("admin@ttech.com", "admin123")


@pytest.fixture
def user_headers(client, sign_in):
    response = client.post(
        "/api/auth/register",
        json={"name": "Kofi Boateng", "email": "kofi@example.com", "password": "pa55word!"},
    )
    assert response.status_code == 201, response.get_json()
    return sign_in("kofi@example.com", "pa55word!")
