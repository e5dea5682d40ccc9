"""Engine (connection pool) construction and pooled-connection scoping."""

import logging
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, TypeVar

from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine

from sessionstore.core.config import StoreSettings
from sessionstore.core.exceptions import PoolAcquireError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _is_memory_sqlite(url: Any) -> bool:
    parsed = make_url(url)
    return parsed.get_backend_name() == "sqlite" and parsed.database in (None, "", ":memory:")


def ensure_sqlite_directory(url: Any) -> None:
    """Create the parent directory of a file-backed SQLite database"""
    parsed = make_url(url)
    if parsed.get_backend_name() != "sqlite" or _is_memory_sqlite(parsed):
        return
    if parsed.database.startswith("file:"):
        return
    Path(parsed.database).parent.mkdir(parents=True, exist_ok=True)


def get_pool_args(settings: StoreSettings) -> Dict[str, Any]:
    """Pool sizing arguments for ``create_async_engine``"""
    if _is_memory_sqlite(settings.resolved_database_url):
        # In-memory SQLite uses a single static connection; sizing does not apply
        return {}
    # pool_size=0 would mean "unbounded" to SQLAlchemy, so keep at least one
    pool_size = max(settings.min_connections, 1)
    return {
        "pool_size": pool_size,
        "max_overflow": max(settings.max_connections - pool_size, 0),
        "pool_timeout": settings.acquire_timeout,
        "pool_recycle": settings.idle_timeout,
        "pool_pre_ping": True,
    }


def create_store_engine(settings: StoreSettings) -> AsyncEngine:
    """Create the async engine that owns the store's connection pool"""
    ensure_sqlite_directory(settings.resolved_database_url)
    engine = create_async_engine(
        settings.resolved_database_url,
        echo=settings.echo_sql,
        **get_pool_args(settings),
    )
    logger.info(
        f"Created session store engine for {engine.url.render_as_string(hide_password=True)} "
        f"(connections {settings.min_connections}-{settings.max_connections})"
    )
    return engine


async def with_pooled_connection(
    engine: AsyncEngine,
    body: Callable[[AsyncConnection], Awaitable[T]],
) -> T:
    """
    Run ``body`` on a pooled connection and check the connection back in.

    A failure while checking a connection out is raised as
    ``PoolAcquireError`` so the retry policy can try again. Once the
    connection is held, ``body`` runs at most once: its errors roll the
    transaction back and propagate unwrapped. The connection is released
    exactly once on every exit path.

    Args:
        engine: Engine whose pool supplies the connection
        body: Coroutine function receiving the connection

    Returns:
        Whatever ``body`` returned, after the transaction commits
    """
    connection = engine.connect()
    try:
        await connection.start()
    except (SQLAlchemyError, OSError) as e:
        raise PoolAcquireError(f"Could not acquire a pooled connection: {e}", e) from e

    try:
        result = await body(connection)
        await connection.commit()
        return result
    except Exception:
        if connection.in_transaction():
            try:
                await connection.rollback()
            except SQLAlchemyError as rollback_error:
                logger.warning(f"Rollback after failed session statement also failed: {rollback_error}")
        raise
    finally:
        await connection.close()
