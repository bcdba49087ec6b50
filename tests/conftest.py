"""
tests/conftest.py -- Shared test fixtures for ProConnect.

This module provides:
  - RecordingEmailSender: captures outgoing mail so tests can read the codes
  - FrozenClock: a controllable clock for expiry tests
  - store / mailer / clock / service: unit-test fixtures on an in-memory DB
  - api_client: TestClient over the real app with a patched lifespan

Design: Named shared-memory SQLite URIs (not plain :memory:) are used for the
API client because TestClient runs sync route handlers in a thread pool.
Plain :memory: DBs are per-connection and would present a blank schema to each
worker thread. The named URI format (file:name?mode=memory&cache=shared&uri=true)
shares one in-memory instance across all connections in the same process.

DEBUG and BCRYPT_ROUNDS must be set before any auth module import:
get_settings() is cached on first call, and auth/tokens.py reads it at import.
"""

from __future__ import annotations

import os
import re
from collections.abc import Generator
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

# CRITICAL: Set env before any auth/core import so get_settings() auto-generates
# SECRET_KEY in dev mode and bcrypt stays fast.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.service import AuthenticationService
from auth.store import UserStore

_CODE_RE = re.compile(r"\b(\d{5})\b")


# ---------------------------------------------------------------------------
# Test doubles
# ---------------------------------------------------------------------------


class RecordingEmailSender:
    """Email sender that keeps every message in memory."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str, str]] = []

    def send_email(self, to_email: str, subject: str, body: str) -> bool:
        self.sent.append((to_email, subject, body))
        return True

    def last_code(self, to_email: str) -> str:
        """Return the 5-digit code from the most recent message to to_email."""
        for to, _subject, body in reversed(self.sent):
            if to == to_email:
                match = _CODE_RE.search(body)
                assert match, f"No code in email body: {body!r}"
                return match.group(1)
        raise AssertionError(f"No email sent to {to_email}")


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


# ---------------------------------------------------------------------------
# Unit fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def store() -> Generator[UserStore, None, None]:
    s = UserStore("sqlite:///:memory:")
    yield s
    s.close()


@pytest.fixture
def mailer() -> RecordingEmailSender:
    return RecordingEmailSender()


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def service(store: UserStore, mailer: RecordingEmailSender, clock: FrozenClock) -> AuthenticationService:
    return AuthenticationService(store, mailer, clock=clock)


# ---------------------------------------------------------------------------
# API fixtures
# ---------------------------------------------------------------------------


def _patch_lifespan(user_store: UserStore, mailer: RecordingEmailSender):
    """Return an async context manager that replaces the real lifespan.

    Wires the test store and a recording mailer into app.state so TestClient
    routes use an isolated DB and never touch SMTP.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = user_store
        app.state.auth_service = AuthenticationService(user_store, mailer)
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_client(request) -> Generator[tuple[TestClient, RecordingEmailSender, UserStore], None, None]:
    """Yield (client, mailer, store) for API integration tests.

    One client per test module; the DB name includes the module name so
    modules never share state. Tests should register their own unique emails.
    """
    db_name = request.module.__name__.rsplit(".", 1)[-1]
    user_store = UserStore(f"sqlite:///file:test_auth_{db_name}?mode=memory&cache=shared&uri=true")
    mailer = RecordingEmailSender()

    app.router.lifespan_context = _patch_lifespan(user_store, mailer)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, mailer, user_store

    user_store.close()
