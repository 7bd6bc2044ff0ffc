"""
tests/conftest.py -- Shared test fixtures for the sessions service.

This module provides:
  - memory_store / sql_store: the two Repository backends, fresh per test
  - store: parametrized over both backends so contract tests run twice
  - _patch_lifespan(): wires test stores into app.state, bypassing real startup
  - api_client: TestClient over the real app with isolated in-memory stores

Design: the HTTP flood guard (slowapi) is disabled through the environment
before any app import, so only the admission layer's own limits apply.
api_client is function-scoped: each test gets a fresh AdmissionGate, hence
fresh token buckets, so rate-limit tests cannot leak into each other.

SQL stores use a file in tmp_path rather than :memory: so concurrency tests
exercise real per-connection locking.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager

# Set before any api/ import: api.limiter reads settings at import time.
os.environ.setdefault("HTTP_RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("AUTH_URN", "memory://")
os.environ.setdefault("DNA_URN", "memory://")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.admission import AdmissionGate
from auth.service import SessionManager
from auth.store import MemoryCredentialStore, SQLCredentialStore
from core.config import Settings
from dna.service import SubsequenceService
from dna.store import MemorySequenceStore

# ---------------------------------------------------------------------------
# Store fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def memory_store() -> MemoryCredentialStore:
    return MemoryCredentialStore()


@pytest.fixture
def sql_store(tmp_path) -> Generator[SQLCredentialStore, None, None]:
    s = SQLCredentialStore(f"sqlite:///{tmp_path / 'auth.db'}")
    yield s
    s.close()


@pytest.fixture(params=["memory", "sql"])
def store(request):
    """Each Repository backend in turn."""
    return request.getfixturevalue(f"{request.param}_store")


# ---------------------------------------------------------------------------
# App fixtures
# ---------------------------------------------------------------------------


def _patch_lifespan(auth_store, dna_store):
    """Return an async context manager that replaces the real lifespan.

    Builds the same service graph as api.main.lifespan, but over the given
    stores and with default (not environment-derived) limiter settings.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        sessions = SessionManager(auth_store)
        app.state.auth_store = auth_store
        app.state.sessions = sessions
        app.state.gate = AdmissionGate.from_settings(sessions, Settings(_env_file=None))
        app.state.validator = sessions.validator()
        app.state.dna_store = dna_store
        app.state.dna = SubsequenceService(dna_store, app.state.validator)
        yield

    return test_lifespan


@pytest.fixture
def api_client() -> Generator[TestClient, None, None]:
    """Yield a TestClient over the real app with fresh in-memory stores and limiters."""
    app.router.lifespan_context = _patch_lifespan(MemoryCredentialStore(), MemorySequenceStore())
    with TestClient(app, raise_server_exceptions=True) as client:
        yield client


@pytest.fixture
def logged_in(api_client: TestClient) -> tuple[TestClient, str]:
    """Yield (client, token) for user "bob" with password "x"."""
    assert api_client.post("/auth/signup", params={"user": "bob", "pass": "x"}).status_code == 200
    resp = api_client.post("/auth/login", params={"user": "bob", "pass": "x"})
    assert resp.status_code == 200
    return api_client, resp.json()["token"]
