"""
tests/conftest.py -- Shared test fixtures for IssueTrack unit and integration tests.

This module provides:
  - memory_db_url(): unique named shared-memory SQLite URL per call
  - user_store / session_store / project_store: isolated stores on one DB
  - token_service / auth_service: services wired to those stores
  - make_client: TestClient factory over create_app() with explicit Settings
  - api_client: shared TestClient over create_app() with explicit Settings,
    plus a logged-in bootstrap admin token
  - new_account: factory that registers, approves and logs in a fresh user

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because (a) UserStore, SessionStore and ProjectStore each own an engine and
must see the same tables, and (b) TestClient runs route handlers in a thread
pool. Plain :memory: DBs are per-connection and would present a blank schema
to each of them. The named URI format
(file:name?mode=memory&cache=shared&uri=true) shares one in-memory instance
across all connections in the same process.

DEBUG is set before any app import so Settings() never refuses to load for a
missing SECRET_KEY. The slowapi limiter is switched off: the suites log in far
more often than the per-minute limits allow.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Callable, Generator
from dataclasses import dataclass

os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import create_app
from auth.service import AuthService
from auth.store import SessionStore, UserStore
from auth.tokens import TokenService
from core.config import Settings
from projects.store import ProjectStore

limiter.enabled = False

TEST_SECRET = "test-secret-key-that-is-definitely-long-enough"
ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "adminpass123"
USER_PASSWORD = "userpass123"


def memory_db_url(prefix: str) -> str:
    return f"sqlite:///file:{prefix}_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"


def make_settings(**overrides) -> Settings:
    """Explicit Settings for a test app. .env files are ignored."""
    values = {
        "debug": True,
        "secret_key": TEST_SECRET,
        "database_url": memory_db_url("api"),
        "allowed_hosts": ["testserver"],
        "admin_email": ADMIN_EMAIL,
        "admin_name": "Test Admin",
        "admin_password": ADMIN_PASSWORD,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def auth_header(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


# ---------------------------------------------------------------------------
# Unit-level fixtures -- fresh database per test
# ---------------------------------------------------------------------------


@pytest.fixture
def db_url() -> str:
    return memory_db_url("unit")


@pytest.fixture
def user_store(db_url: str) -> Generator[UserStore, None, None]:
    store = UserStore(db_url)
    yield store
    store.close()


@pytest.fixture
def session_store(db_url: str, user_store: UserStore) -> Generator[SessionStore, None, None]:
    store = SessionStore(db_url)
    yield store
    store.close()


@pytest.fixture
def project_store(db_url: str) -> Generator[ProjectStore, None, None]:
    store = ProjectStore(db_url)
    yield store
    store.close()


@pytest.fixture
def token_service() -> TokenService:
    return TokenService(TEST_SECRET, access_ttl=3600, refresh_ttl=7 * 24 * 3600)


@pytest.fixture
def auth_service(user_store: UserStore, session_store: SessionStore, token_service: TokenService) -> AuthService:
    return AuthService(user_store, session_store, token_service, require_approval=True)


# ---------------------------------------------------------------------------
# Integration fixtures -- one TestClient per test module for speed
# ---------------------------------------------------------------------------


@pytest.fixture
def make_client() -> Callable[..., TestClient]:
    """Factory for a TestClient over an app with overridden Settings.

    Use as a context manager so the lifespan runs:
        with make_client(registration_requires_approval=False) as client: ...
    """

    def _make(**overrides) -> TestClient:
        return TestClient(create_app(make_settings(**overrides)))

    return _make


@pytest.fixture(scope="module")
def api_client() -> Generator[tuple[TestClient, str], None, None]:
    """Yield (client, admin_token) for API integration tests.

    The real lifespan runs against a private in-memory database and seeds the
    bootstrap admin from Settings. The admin token comes from a real login.
    Cookies are cleared after login so later requests authenticate only via
    the headers each test passes explicitly.
    """
    app = create_app(make_settings())
    with TestClient(app, raise_server_exceptions=True) as client:
        resp = client.post("/api/v1/auth/login", json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD})
        assert resp.status_code == 200, resp.text
        client.cookies.clear()
        yield client, resp.json()["token"]


@dataclass
class Account:
    id: int
    email: str
    token: str

    @property
    def headers(self) -> dict[str, str]:
        return auth_header(self.token)


@pytest.fixture
def new_account(api_client: tuple[TestClient, str]) -> Callable[..., Account]:
    """Factory: register a unique user, approve it as admin, log it in."""
    client, admin_token = api_client

    def _make(name: str = "User") -> Account:
        email = f"{name.lower()}-{uuid.uuid4().hex[:8]}@example.com"
        reg = client.post("/api/v1/auth/register", json={"email": email, "name": name, "password": USER_PASSWORD})
        assert reg.status_code == 201, reg.text
        user_id = reg.json()["user"]["id"]
        approved = client.post(f"/api/v1/auth/users/{user_id}/approve", headers=auth_header(admin_token))
        assert approved.status_code == 200, approved.text
        login = client.post("/api/v1/auth/login", json={"email": email, "password": USER_PASSWORD})
        assert login.status_code == 200, login.text
        client.cookies.clear()
        return Account(id=user_id, email=email, token=login.json()["token"])

    return _make
