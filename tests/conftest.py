"""
tests/conftest.py -- Shared test fixtures for QuestRider Auth tests.

This module provides:
  - FakeClock / RecordingDelivery: deterministic time and captured codes
  - fast_hasher: argon2id with minimal cost so the suite stays quick
  - settings / auth_engine: an AuthEngine on an isolated SQLite file per test
  - api_client: TestClient over the real app with a patched lifespan

Design: SQLite *files* under tmp_path rather than :memory:. TestClient runs
sync route handlers in a thread pool and the concurrency tests use their own
threads; a file DB is shared by every connection in the pool, where a plain
:memory: DB would be per-connection.

The DEBUG env var must be set before any api/core import so get_settings()
auto-generates SECRET_KEY in dev mode rather than raising ValueError.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

# CRITICAL: Set DEBUG before any api/core import.
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi.testclient import TestClient

from auth.dependencies import RequestAuthenticator
from auth.engine import AuthEngine, build_auth_engine
from auth.passwords import PasswordHasher
from core.config import Settings

TEST_SECRET = "test-secret-key-that-is-long-enough-0123456789"

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class RecordingDelivery:
    """CodeDelivery that remembers every (email, code) it was asked to send."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []

    def send(self, email: str, code: str) -> None:
        self.sent.append((email, code))

    def last_code(self, email: str) -> str:
        codes = [c for e, c in self.sent if e == email]
        assert codes, f"no code was sent to {email}"
        return codes[-1]


class FailingDelivery:
    def send(self, email: str, code: str) -> None:
        raise ConnectionError("SMTP relay unreachable")


def make_settings(tmp_path, **overrides) -> Settings:
    values = {
        "debug": True,
        "secret_key": TEST_SECRET,
        "database_url": f"sqlite:///{tmp_path / 'auth_test.db'}",
    }
    values.update(overrides)
    return Settings(**values)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def fast_hasher() -> PasswordHasher:
    return PasswordHasher(time_cost=1, memory_cost=1024, parallelism=1)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def delivery() -> RecordingDelivery:
    return RecordingDelivery()


@pytest.fixture
def settings(tmp_path) -> Settings:
    return make_settings(tmp_path)


@pytest.fixture
def auth_engine(settings, fast_hasher, clock, delivery) -> Generator[AuthEngine, None, None]:
    engine = build_auth_engine(settings, delivery=delivery, hasher=fast_hasher, clock=clock)
    yield engine
    engine.close()


@pytest.fixture
def authenticator(auth_engine, settings, clock) -> RequestAuthenticator:
    return RequestAuthenticator(auth_engine.sessions.codec, settings.token_issuer, clock=clock)


def _patch_lifespan(engine: AuthEngine, authenticator: RequestAuthenticator):
    """Return an async context manager that replaces the real lifespan.

    Wires the test engine into app.state so routes use an isolated DB, a
    recording delivery channel and a cheap hasher. No purge task is started.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.auth_engine = engine
        app.state.authenticator = authenticator
        yield

    return test_lifespan


@pytest.fixture
def api_client(tmp_path, fast_hasher, delivery) -> Generator[tuple[TestClient, RecordingDelivery, AuthEngine], None, None]:
    """Yield (client, delivery, engine) for HTTP integration tests.

    Uses the real wall clock: HTTP tests exercise the happy paths and cookie
    handling, expiry is covered by the engine tests with FakeClock. Rate
    limiting is switched off so tests can call public endpoints freely.
    """
    from api.limiter import limiter
    from api.main import app

    settings = make_settings(tmp_path)
    engine = build_auth_engine(settings, delivery=delivery, hasher=fast_hasher)
    authenticator = RequestAuthenticator(engine.sessions.codec, settings.token_issuer)

    original_lifespan = app.router.lifespan_context
    app.router.lifespan_context = _patch_lifespan(engine, authenticator)
    limiter.enabled = False
    try:
        with TestClient(app, raise_server_exceptions=True) as client:
            yield client, delivery, engine
    finally:
        limiter.enabled = True
        app.router.lifespan_context = original_lifespan
        engine.close()
