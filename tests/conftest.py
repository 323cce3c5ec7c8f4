"""
tests/conftest.py -- Shared fixtures for the auth service tests.

This module provides:
  - engine / users / refresh_tokens: stores over a fresh file-backed SQLite DB
  - hasher: bcrypt at cost 4 with a timing recorder
  - codec: TokenCodec with a fixed test key
  - service: AuthService wired from the above
  - signup_input: factory for SignupInput with sensible defaults
  - api_client: TestClient whose lifespan injects the same service

Design: a temporary database FILE (not :memory:) per test. Concurrency tests
run several threads with their own pooled connections, and they must all
see one database with real SQLite locking. Shared-cache memory databases use
table locks that fail immediately instead of waiting, so they are unsuitable.

The DEBUG env var must be set before any api/core import so get_settings()
auto-generates SECRET_KEY in dev mode rather than raising ValueError.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: Set DEBUG before any core/api import so get_settings() can
# auto-generate SECRET_KEY in dev mode instead of raising ValueError.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.hashing import CredentialHasher
from auth.models import SignupInput
from auth.service import AuthService
from auth.store import RefreshTokenStore, UserStore, create_store_engine
from auth.tokens import SigningConfig, TokenCodec

TEST_SECRET = "test-secret-key-0123456789abcdef-0123456789"


# ---------------------------------------------------------------------------
# Store fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def db_url(tmp_path) -> str:
    return f"sqlite:///{tmp_path / 'auth_test.db'}"


@pytest.fixture
def engine(db_url):
    eng = create_store_engine(db_url)
    yield eng
    eng.dispose()


@pytest.fixture
def users(engine) -> UserStore:
    return UserStore(engine)


@pytest.fixture
def refresh_tokens(engine) -> RefreshTokenStore:
    return RefreshTokenStore(engine)


# ---------------------------------------------------------------------------
# Crypto fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def timings() -> list[tuple[str, float]]:
    """Every (operation, duration_ms) the hasher reports."""
    return []


@pytest.fixture
def hasher(timings) -> CredentialHasher:
    return CredentialHasher(rounds=4, timing_hook=lambda op, ms: timings.append((op, ms)))


@pytest.fixture
def codec() -> TokenCodec:
    return TokenCodec(SigningConfig(secret_key=TEST_SECRET))


# ---------------------------------------------------------------------------
# Service fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def service(users, refresh_tokens, hasher, codec) -> AuthService:
    return AuthService(users, refresh_tokens, hasher, codec)


@pytest.fixture
def signup_input():
    """Factory: signup_input(username="bob") -> SignupInput with the other fields defaulted."""

    def _make(**overrides) -> SignupInput:
        fields = {
            "email": "a@example.com",
            "username": "alice",
            "first_name": "A",
            "last_name": "B",
            "password": "password1",
        }
        fields.update(overrides)
        return SignupInput(**fields)

    return _make


# ---------------------------------------------------------------------------
# API fixtures
# ---------------------------------------------------------------------------


def _patch_lifespan(service: AuthService, engine):
    """Return a lifespan that wires the test service into app.state.

    Replaces the real lifespan so TestClient routes see the per-test database
    and no background purge task is started.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.engine = engine
        app.state.users = service.users
        app.state.refresh_tokens = service.refresh_tokens
        app.state.auth_service = service
        app.state.token_codec = service.codec
        yield

    return test_lifespan


@pytest.fixture
def api_client(service, engine) -> Generator[tuple[TestClient, AuthService], None, None]:
    """Yield (client, service) for API integration tests."""
    app.router.lifespan_context = _patch_lifespan(service, engine)
    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, service
