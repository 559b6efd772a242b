"""
tests/conftest.py -- Shared test fixtures for member registry tests.

This module provides:
  - StaticVerifier: deterministic stand-in for the mock identity verifier
  - _patch_lifespan(): wires test storage + verifier into app.state
  - client_for(): context manager yielding a ClientContext over given storage
  - fresh_client: function-scoped client over an empty in-memory store
  - sql_client: function-scoped client over an empty SQL store
  - make_client: client_for() itself, for tests bringing their own storage
  - store: bare storage instance, parametrized over both backends
  - member_payload: factory for valid POST /api/members bodies

SQL stores behind a TestClient use named shared-memory SQLite URIs (not plain
:memory:) because TestClient runs sync route handlers in a thread pool. Plain
:memory: DBs are per-connection and would present a blank schema to each
worker thread.

Environment defaults must be set before any api/auth/core import so
get_settings() sees them: DEBUG auto-generates SECRET_KEY, ALLOWED_HOSTS lets
the TestClient's "testserver" host through, and the login rate limit is
raised so the suite never trips it.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator, Iterator
from contextlib import asynccontextmanager, contextmanager
from dataclasses import dataclass, field

os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("ALLOWED_HOSTS", '["testserver", "localhost"]')
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")
os.environ.setdefault("STORAGE_BACKEND", "memory")

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import app
from auth.tokens import create_access_token, hash_password
from registry.memory import MemoryMemberStore
from registry.models import User
from registry.store import SQLMemberStore

TEST_USERNAME = "testadmin"
TEST_PASSWORD = "testpass123"

# bcrypt is slow by design; hash once for the whole session.
_TEST_PASSWORD_HASH = hash_password(TEST_PASSWORD)


# ---------------------------------------------------------------------------
# Test doubles
# ---------------------------------------------------------------------------


class StaticVerifier:
    """Verifier that answers instantly with a fixed result and records calls."""

    def __init__(self, result: bool = True) -> None:
        self.result = result
        self.calls: list[str] = []

    async def verify(self, identifier: str) -> bool:
        self.calls.append(identifier)
        return self.result


@dataclass
class ClientContext:
    client: TestClient
    token: str
    user: User
    storage: object
    verifier: StaticVerifier
    headers: dict[str, str] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _patch_lifespan(storage, verifier):
    """Return an async context manager that replaces the real lifespan.

    Wires pre-created test storage and verifier into app.state so TestClient
    routes see isolated state rather than the configured backend.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.storage = storage
        app.state.verifier = verifier
        yield

    return test_lifespan


def _shared_memory_sql_store() -> SQLMemberStore:
    return SQLMemberStore(f"sqlite:///file:test_registry_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true")


@contextmanager
def client_for(storage, verifier: StaticVerifier | None = None) -> Iterator[ClientContext]:
    """Start a TestClient over the given storage with one logged-in test user.

    The returned context carries a Bearer header for that user. No session
    cookie is set, so requests without ctx.headers are unauthenticated.
    """
    verifier = verifier or StaticVerifier(True)
    user = storage.create_user(
        User(username=TEST_USERNAME, hashed_password=_TEST_PASSWORD_HASH, display_name="Test Admin")
    )
    token = create_access_token(user_id=user.id, username=user.username, expire_seconds=3600)

    limiter.reset()
    app.router.lifespan_context = _patch_lifespan(storage, verifier)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield ClientContext(
            client=client,
            token=token,
            user=user,
            storage=storage,
            verifier=verifier,
            headers={"Authorization": f"Bearer {token}"},
        )


# ---------------------------------------------------------------------------
# Client fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def fresh_client() -> Generator[ClientContext, None, None]:
    """Client over an empty in-memory store, rebuilt for every test."""
    with client_for(MemoryMemberStore()) as ctx:
        yield ctx


@pytest.fixture
def make_client():
    """Return client_for, for tests that need a client over their own storage double."""
    return client_for


@pytest.fixture
def sql_client() -> Generator[ClientContext, None, None]:
    """Client over an empty SQL store, rebuilt for every test."""
    storage = _shared_memory_sql_store()
    with client_for(storage) as ctx:
        yield ctx
    storage.close()


# ---------------------------------------------------------------------------
# Storage fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(params=["memory", "sql"])
def store(request):
    """A fresh storage instance of each backend. Store tests run once per backend."""
    if request.param == "memory":
        s = MemoryMemberStore()
    else:
        s = SQLMemberStore("sqlite:///:memory:")
    yield s
    s.close()


# ---------------------------------------------------------------------------
# Payloads
# ---------------------------------------------------------------------------


@pytest.fixture
def member_payload():
    """Return a factory for valid POST /api/members bodies.

    Each call without overrides yields a distinct email and identifier, so
    several members can be created in the same store.
    """
    counter = {"n": 0}

    def make(**overrides) -> dict:
        counter["n"] += 1
        n = counter["n"]
        body = {
            "name": f"Member {n}",
            "email": f"member{n}@example.com",
            "identifier": f"123-45-{n:04d}",
            "phone": "555-123-4567",
            "dob": "1990-01-01",
            "address": {
                "street": f"{n} Main St",
                "city": "Springfield",
                "region": "IL",
                "postalCode": "62701",
            },
        }
        body.update(overrides)
        return body

    return make
