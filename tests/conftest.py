"""
tests/conftest.py -- Shared test fixtures for ChefFlow auth tests.

This module provides:
  - settings: validated Settings with fixed distinct secrets and a unique DB
  - store / issuer / service: unit-level components on an isolated DB
  - client: TestClient around create_app(settings), real lifespan included
  - csrf: X-XSRF-TOKEN header matching the client's XSRF-TOKEN cookie
  - register_user: POST /auth/register helper with the CSRF header attached

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker
thread. The named URI format (file:name?mode=memory&cache=shared&uri=true)
shares one in-memory instance across all connections in the same process.
A uuid per fixture keeps tests isolated from each other.

bcrypt_rounds=4 keeps hashing fast; rate limiting is switched off so the
credential endpoints can be called freely.
"""

from __future__ import annotations

import hashlib
import uuid
from collections.abc import Callable, Generator

import pytest
from fastapi.testclient import TestClient

from api.main import create_app
from auth.cookies import CSRF_HEADER
from auth.service import SessionService
from auth.store import UserStore
from auth.tokens import TokenIssuer
from core.config import Settings

ACCESS_SECRET = "a" * 64
REFRESH_SECRET = "r" * 64
SESSION_SECRET = "s" * 64


def _shared_memory_url(prefix: str) -> str:
    return f"sqlite:///file:{prefix}_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"


def _digest(plain: str) -> str:
    return hashlib.sha256(plain.encode("utf-8")).hexdigest()


# ---------------------------------------------------------------------------
# Unit-level fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> Settings:
    return Settings(
        debug=True,
        jwt_access_secret=ACCESS_SECRET,
        jwt_refresh_secret=REFRESH_SECRET,
        session_secret=SESSION_SECRET,
        bcrypt_rounds=4,
        rate_limit_enabled=False,
        database_url=_shared_memory_url("test_auth"),
    )


@pytest.fixture
def store() -> Generator[UserStore, None, None]:
    user_store = UserStore(_shared_memory_url("test_store"))
    yield user_store
    user_store.close()


@pytest.fixture
def issuer() -> TokenIssuer:
    return TokenIssuer(ACCESS_SECRET, REFRESH_SECRET)


@pytest.fixture
def service(store: UserStore, issuer: TokenIssuer) -> SessionService:
    return SessionService(store, issuer, bcrypt_rounds=4)


@pytest.fixture
def digest() -> Callable[[str], str]:
    """SHA-256 hex of a plaintext -- the password format clients send."""
    return _digest


# ---------------------------------------------------------------------------
# HTTP fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def client(settings: Settings) -> Generator[TestClient, None, None]:
    """Yield a TestClient over a fresh app.

    follow_redirects=False so OAuth tests can assert on Location headers.
    Entering the context runs the real lifespan (store, issuer, service).
    """
    app = create_app(settings)
    with TestClient(app, follow_redirects=False, raise_server_exceptions=True) as test_client:
        yield test_client


@pytest.fixture
def csrf(client: TestClient) -> dict[str, str]:
    """GET /auth/csrf (which sets the XSRF-TOKEN cookie) and return the matching header."""
    resp = client.get("/auth/csrf")
    assert resp.status_code == 200
    return {CSRF_HEADER: resp.json()["csrfToken"]}


@pytest.fixture
def register_user(client: TestClient, csrf: dict[str, str]):
    """Return a callable that registers a LOCAL user over HTTP and returns the response."""

    def _register(username: str = "neo", email: str = "neo@matrix.io", password: str = "redpill"):
        return client.post(
            "/auth/register",
            json={"username": username, "email": email, "password": _digest(password), "name": username.title()},
            headers=csrf,
        )

    return _register
