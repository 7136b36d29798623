"""
tests/conftest.py -- Shared test fixtures for tokenauth.

This module provides:
  - user_store / issuer / verifier / service: unit-level fixtures on a private
    in-memory SQLite database
  - api_client: TestClient running the real app against an isolated store

Design: the API fixture uses a named shared-memory SQLite URI (not plain
:memory:) because TestClient runs sync route handlers in a thread pool. Plain
:memory: DBs are per-connection and would present a blank schema to each
worker thread. The named URI format
(file:name?mode=memory&cache=shared&uri=true) shares one in-memory instance
across all connections in the same process.

DEBUG and BCRYPT_ROUNDS must be set before any auth/core import:
get_settings() is cached on first call, DEBUG lets it auto-generate
SECRET_KEY, and the minimum bcrypt cost keeps the suite fast.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager

os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")

import pytest
from fastapi.testclient import TestClient

from api.main import app, build_auth_service
from auth.service import AuthService
from auth.store import UserStore
from auth.tokens import TokenIssuer, TokenVerifier

SECRET = "unit-test-secret-key-0123456789abcdef"


# ---------------------------------------------------------------------------
# Unit fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def secret() -> str:
    return SECRET


@pytest.fixture
def user_store() -> Generator[UserStore, None, None]:
    store = UserStore("sqlite:///:memory:")
    yield store
    store.close()


@pytest.fixture
def issuer(secret: str) -> TokenIssuer:
    return TokenIssuer(secret)


@pytest.fixture
def verifier(secret: str) -> TokenVerifier:
    return TokenVerifier(secret)


@pytest.fixture
def service(user_store: UserStore, issuer: TokenIssuer, verifier: TokenVerifier) -> AuthService:
    return AuthService(user_store, issuer, verifier)


# ---------------------------------------------------------------------------
# API fixture
# ---------------------------------------------------------------------------


def _patch_lifespan(auth_service: AuthService):
    """Return an async context manager that replaces the real lifespan.

    Wires the pre-built test AuthService into app.state so TestClient routes
    see an isolated store rather than the configured database.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.auth_service = auth_service
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_client(request) -> Generator[tuple[TestClient, AuthService], None, None]:
    """Yield (client, auth_service) for API integration tests.

    One store per test module: the module name is part of the DB name so
    modules never see each other's users. Tests inside a module must use
    distinct usernames.
    """
    db_name = request.module.__name__.replace(".", "_")
    store = UserStore(f"sqlite:///file:{db_name}?mode=memory&cache=shared&uri=true")
    auth_service = build_auth_service(store, SECRET)

    app.router.lifespan_context = _patch_lifespan(auth_service)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, auth_service

    store.close()
