"""
tests/conftest.py -- Shared test fixtures for SessionAuth tests.

This module provides:
  - _make_test_stores(): isolated in-memory UserStore + TokenStore pair
  - settings: Settings with a fixed SECRET_KEY
  - stores: (user_store, token_store, joe) with one seeded user
  - web_client: TestClient over the full app (API + web routes),
    follow_redirects=False so tests can assert on Location headers

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs the app in a separate thread. Plain :memory: DBs are
per-connection and would present a blank schema to the app's thread.

The DEBUG env var must be set before any core import so get_settings() never
raises for a missing SECRET_KEY.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator

# CRITICAL: Set DEBUG before any core/auth import.
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi.testclient import TestClient

from api.main import create_app
from auth.models import User
from auth.store import TokenStore, UserStore
from core.config import Settings
from web.routes import router as web_router

TEST_SECRET = "test-secret-key-0123456789abcdef-0123456789"


# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def _make_test_stores(secret_key: str = TEST_SECRET) -> tuple[UserStore, TokenStore]:
    """Create a fresh named shared-memory database and both stores over it."""
    url = f"sqlite:///file:test_auth_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"
    return UserStore(url), TokenStore(url, secret_key=secret_key)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> Settings:
    return Settings(debug=True, secret_key=TEST_SECRET, database_url="sqlite:///:memory:")


@pytest.fixture
def stores() -> Generator[tuple[UserStore, TokenStore, User], None, None]:
    """Yield (user_store, token_store, joe) with Joe Bloggs pre-created."""
    user_store, token_store = _make_test_stores()
    uid = user_store.create_user(User(username="joe", name="Joe Bloggs"))
    joe = user_store.get_by_id(uid)
    yield user_store, token_store, joe
    token_store.close()
    user_store.close()


@pytest.fixture
def web_client(settings, stores) -> Generator[TestClient, None, None]:
    """TestClient over the assembled app, one fresh app and database per test.

    follow_redirects=False is essential: the login flow is asserted through
    redirect Location headers and Set-Cookie headers, both of which disappear
    once the client follows the redirect.
    """
    user_store, token_store, _joe = stores
    app = create_app(settings, user_store=user_store, token_store=token_store)
    app.include_router(web_router, tags=["Web UI"])
    with TestClient(app, follow_redirects=False, raise_server_exceptions=True) as client:
        yield client
