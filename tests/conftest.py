"""
tests/conftest.py -- Shared test fixtures for KSMS integration tests.

This module provides:
  - _patch_lifespan(): wires test collaborators into app.state, bypassing real startup
  - api: module-scoped (client, storage, tokens) for API integration tests
  - db_url: a unique named shared-memory SQLite URL per test
  - kubeconfig: a kube-config that parses without any network access

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker thread.

DEBUG must be set before any api/auth/core import so get_settings()
auto-generates SECRET_KEY instead of raising. LOGIN_RATE_LIMIT is raised so
the login tests in one module do not trip the per-IP limit.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager

os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.models import Role, User
from auth.tokens import TokenCodec, hash_password
from clusters.cache import ClusterClientCache
from core.config import get_settings
from storage.database import DatabaseStorage

VALID_KUBECONFIG = """
apiVersion: v1
kind: Config
clusters:
- name: test
  cluster:
    server: https://127.0.0.1:6443
    insecure-skip-tls-verify: true
users:
- name: test
  user:
    token: test-token
contexts:
- name: test
  context:
    cluster: test
    user: test
current-context: test
"""

# Accounts created by the api fixture. Password is shared.
TEST_PASSWORD = "testpass123"
TEST_ACCOUNTS = {
    "admin": ("admin@ksms.test", Role.administrator),
    "analyst": ("analyst@ksms.test", Role.security_analyst),
    "student": ("student@ksms.test", Role.student),
}


def _make_db_url(prefix: str = "ksms") -> str:
    return f"sqlite:///file:{prefix}_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"


def _patch_lifespan(storage, codec: TokenCodec, cache: ClusterClientCache):
    """Return an async context manager that replaces the real lifespan.

    Tests hit real route handlers and middleware but use an isolated store
    and a known token codec.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        settings = get_settings()
        app.state.settings = settings
        app.state.auth_cookie_name = settings.auth_cookie_name
        app.state.token_codec = codec
        app.state.storage = storage
        app.state.cluster_cache = cache
        yield
        cache.close()

    return test_lifespan


@pytest.fixture(scope="module")
def api() -> Generator[tuple[TestClient, DatabaseStorage, dict[str, str]], None, None]:
    """Yield (client, storage, tokens) for API integration tests.

    tokens maps "admin" / "analyst" / "student" to a valid session token for
    the matching pre-created account.
    """
    settings = get_settings()
    storage = DatabaseStorage(_make_db_url("api"))
    codec = TokenCodec(settings.secret_key, settings.token_expire_seconds)
    cache = ClusterClientCache()

    tokens: dict[str, str] = {}
    for key, (email, role) in TEST_ACCOUNTS.items():
        user = storage.add_user(User(email=email, hashed_password=hash_password(TEST_PASSWORD), role=role))
        tokens[key] = codec.issue(user).token

    app.router.lifespan_context = _patch_lifespan(storage, codec, cache)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, storage, tokens

    storage.close()


@pytest.fixture(autouse=True)
def _fresh_cookie_jar(request):
    """Drop cookies between tests sharing the module-scoped client.

    A login stores the session cookie in the client, and the cookie takes
    precedence over any Bearer header a later test sends.
    """
    if "api" in request.fixturenames:
        client, _, _ = request.getfixturevalue("api")
        client.cookies.clear()
    yield


@pytest.fixture
def db_url() -> str:
    """A fresh, private shared-memory SQLite URL."""
    return _make_db_url("test")


@pytest.fixture
def kubeconfig() -> str:
    return VALID_KUBECONFIG
