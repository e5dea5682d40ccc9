"""
Global test configuration and fixtures for the session store

This module provides shared fixtures: store settings pointing at a
temporary SQLite database, a controllable clock, and a started store.
"""

import os
from pathlib import Path

import pytest
import pytest_asyncio

from sessionstore.core.config import StoreSettings
from sessionstore.core.session_store import SqlSessionStore
from tests.utils.helpers import FakeClock


# ============================================================================
# Settings Fixtures
# ============================================================================

@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch, tmp_path):
    """Keep SESSION_STORE_* variables and any .env file out of the tests"""
    for key in list(os.environ):
        if key.upper().startswith("SESSION_STORE_"):
            monkeypatch.delenv(key)
    monkeypatch.chdir(tmp_path)


@pytest.fixture(scope="function")
def database_path(tmp_path) -> Path:
    """Path of a per-test SQLite database file"""
    return tmp_path / "sessions.db"


@pytest.fixture(scope="function")
def store_settings(database_path) -> StoreSettings:
    """Settings for a store on a temporary database, without retry delays"""
    return StoreSettings(
        database_url=f"sqlite+aiosqlite:///{database_path}",
        auto_create_table=True,
        sweep_on_start=False,
        min_connections=1,
        max_connections=5,
        acquire_timeout=1.0,
        retry_max_attempts=2,
        retry_initial_backoff=0.0,
        retry_max_backoff=0.0,
    )


@pytest.fixture(scope="function")
def clock() -> FakeClock:
    """Controllable clock starting at 2024-01-01 12:00:00 UTC"""
    return FakeClock()


# ============================================================================
# Store Fixtures
# ============================================================================

@pytest_asyncio.fixture(scope="function")
async def store(store_settings, clock):
    """A started store on a fresh table"""
    session_store = SqlSessionStore(store_settings, clock=clock)
    await session_store.start()

    yield session_store

    await session_store.close()


@pytest.fixture(scope="function")
def sample_session():
    """Session payload as session middleware would hand it over"""
    return {
        "cookie": {
            "originalMaxAge": 5000,
            "maxAge": 5000,
            "httpOnly": True,
            "path": "/",
        },
        "user": {"id": 42, "name": "ada"},
        "flash": ["welcome back"],
    }
