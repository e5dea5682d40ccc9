"""
Unit tests for engine construction and pooled-connection scoping
"""

import pytest
import pytest_asyncio
from sqlalchemy import text
from sqlalchemy.ext.asyncio import create_async_engine

from sessionstore.core.config import StoreSettings
from sessionstore.core.exceptions import PoolAcquireError
from sessionstore.db.session import (
    create_store_engine,
    ensure_sqlite_directory,
    get_pool_args,
    with_pooled_connection,
)
from tests.utils.helpers import checked_out

# Mark all tests in this module as unit tests
pytestmark = pytest.mark.unit


@pytest_asyncio.fixture(scope="function")
async def engine(database_path):
    settings = StoreSettings(database_url=f"sqlite+aiosqlite:///{database_path}", max_connections=2)
    store_engine = create_store_engine(settings)
    yield store_engine
    await store_engine.dispose()


class TestPoolArgs:
    """Test mapping of settings onto pool arguments"""

    def test_pool_bounds(self, database_path):
        settings = StoreSettings(
            database_url=f"sqlite+aiosqlite:///{database_path}",
            min_connections=2,
            max_connections=8,
            idle_timeout=45,
            acquire_timeout=5,
        )

        args = get_pool_args(settings)

        assert args["pool_size"] == 2
        assert args["max_overflow"] == 6
        assert args["pool_recycle"] == 45
        assert args["pool_timeout"] == 5
        assert args["pool_pre_ping"] is True

    def test_zero_minimum_keeps_pool_bounded(self, database_path):
        settings = StoreSettings(
            database_url=f"sqlite+aiosqlite:///{database_path}",
            min_connections=0,
            max_connections=3,
        )

        args = get_pool_args(settings)

        assert args["pool_size"] == 1
        assert args["max_overflow"] == 2

    def test_memory_sqlite_gets_no_pool_sizing(self):
        settings = StoreSettings(database_url="sqlite+aiosqlite:///:memory:")

        assert get_pool_args(settings) == {}


class TestSqliteDirectory:
    """Test creation of the directory holding a SQLite file"""

    def test_creates_missing_parent_directories(self, tmp_path):
        target = tmp_path / "nested" / "data" / "sessions.db"

        ensure_sqlite_directory(f"sqlite+aiosqlite:///{target}")

        assert target.parent.is_dir()
        assert not target.exists()

    def test_relative_path_resolves_against_cwd(self, tmp_path):
        ensure_sqlite_directory("sqlite+aiosqlite:///./data/sessions.db")

        assert (tmp_path / "data").is_dir()

    @pytest.mark.parametrize(
        "url",
        [
            "sqlite+aiosqlite:///:memory:",
            "sqlite+aiosqlite://",
            "postgresql+asyncpg://web:pw@db.example.com/app",
        ],
    )
    def test_other_urls_create_nothing(self, tmp_path, url):
        ensure_sqlite_directory(url)

        assert list(tmp_path.iterdir()) == []


class TestWithPooledConnection:
    """Test acquire/commit/release around a body"""

    async def test_returns_body_result_and_releases(self, engine):
        async def body(conn):
            return (await conn.execute(text("SELECT 1"))).scalar()

        assert await with_pooled_connection(engine, body) == 1
        assert checked_out(engine) == 0

    async def test_commits_writes(self, engine):
        async def create(conn):
            await conn.execute(text("CREATE TABLE t (x INTEGER)"))
            await conn.execute(text("INSERT INTO t VALUES (1)"))

        async def count(conn):
            return (await conn.execute(text("SELECT COUNT(*) FROM t"))).scalar()

        await with_pooled_connection(engine, create)

        assert await with_pooled_connection(engine, count) == 1

    async def test_body_error_rolls_back_propagates_and_releases(self, engine):
        async def create(conn):
            await conn.execute(text("CREATE TABLE t (x INTEGER)"))

        async def failing(conn):
            await conn.execute(text("INSERT INTO t VALUES (1)"))
            raise ValueError("boom")

        async def count(conn):
            return (await conn.execute(text("SELECT COUNT(*) FROM t"))).scalar()

        await with_pooled_connection(engine, create)
        with pytest.raises(ValueError, match="boom"):
            await with_pooled_connection(engine, failing)

        assert checked_out(engine) == 0
        assert await with_pooled_connection(engine, count) == 0

    async def test_acquire_failure_is_transient(self, tmp_path):
        missing = tmp_path / "no" / "such" / "dir" / "sessions.db"
        engine = create_async_engine(f"sqlite+aiosqlite:///{missing}")
        calls = []

        async def body(conn):
            calls.append(conn)

        try:
            with pytest.raises(PoolAcquireError) as exc_info:
                await with_pooled_connection(engine, body)
        finally:
            await engine.dispose()

        assert calls == []
        assert exc_info.value.original_error is not None
