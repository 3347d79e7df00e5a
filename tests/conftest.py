"""
tests/conftest.py -- Shared test fixtures for simpleauth.

This module provides:
  - FakeClock / CLOCK: a settable clock injected into every test engine so
    expiry can be tested by moving time instead of sleeping
  - make_engine(): a ForwardAuthEngine with the 64-zero-byte secret and
    two provisioned users (alice/wonderland, bob/builder)
  - _patch_lifespan(): wires a test engine into app.state, bypassing the
    real startup that reads secrets and password files from disk
  - client: TestClient over the real app with the patched lifespan
  - serve(): one-off TestClient for an engine other than the shared one

bcrypt hashes are generated with rounds=4 so the suite stays fast; the
verification path is identical to production cost settings.
"""

from __future__ import annotations

import base64
import time
from collections.abc import Generator
from contextlib import asynccontextmanager, contextmanager

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.engine import ForwardAuthEngine
from auth.store import hash_password

SECRET = bytes(64)
START = 1_700_000_000.0
LOGIN_PAGE = b"<html><body>login</body></html>"

USERS = {
    "alice": hash_password("wonderland", rounds=4),
    "bob": hash_password("builder", rounds=4),
}


class FakeClock:
    """Callable clock whose current time tests can set or advance."""

    def __init__(self, now: float) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


CLOCK = FakeClock(START)


def basic(username: str, password: str) -> str:
    """Return an Authorization header value for HTTP Basic."""
    return "Basic " + base64.b64encode(f"{username}:{password}".encode()).decode()


def make_engine(clock: FakeClock = CLOCK, **kwargs) -> ForwardAuthEngine:
    return ForwardAuthEngine(SECRET, USERS, LOGIN_PAGE, clock=clock, **kwargs)


def cookie_value(set_cookie: str) -> str:
    """Extract the token value from a Set-Cookie header."""
    first = set_cookie.split(";", 1)[0]
    return first.split("=", 1)[1]


@pytest.fixture(autouse=True)
def _reset_clock() -> None:
    CLOCK.now = START


def _patch_lifespan(engine: ForwardAuthEngine):
    """Return an async context manager that replaces the real lifespan."""

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.engine = engine
        app.state.started_at = time.monotonic()
        yield

    return test_lifespan


@contextmanager
def serve(engine: ForwardAuthEngine) -> Generator[TestClient, None, None]:
    """Yield a TestClient for engine, then put the previous app state back."""
    original_lifespan = app.router.lifespan_context
    previous_engine = getattr(app.state, "engine", None)
    app.router.lifespan_context = _patch_lifespan(engine)
    try:
        with TestClient(app, follow_redirects=False) as test_client:
            yield test_client
    finally:
        app.router.lifespan_context = original_lifespan
        app.state.engine = previous_engine


@pytest.fixture(scope="module")
def client() -> Generator[tuple[TestClient, ForwardAuthEngine], None, None]:
    """Yield (client, engine) for integration tests.

    follow_redirects=False: forward-auth responses are asserted exactly as
    the proxy would see them.
    """
    engine = make_engine()
    app.router.lifespan_context = _patch_lifespan(engine)

    with TestClient(app, follow_redirects=False, raise_server_exceptions=True) as test_client:
        yield test_client, engine
