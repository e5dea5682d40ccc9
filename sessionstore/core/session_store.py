"""Server-side session storage on a relational table.

One row per session id holds the JSON-encoded session and its absolute
expiry. Reads ignore rows whose expiry has passed; such rows stay in the
table until ``sweep_expired`` (run once when the store starts) or ``clear``
removes them.

Durations are milliseconds, matching ``cookie.maxAge``. Expiry instants are
naive UTC datetimes computed by the store from its clock.
"""
from __future__ import annotations

import asyncio
import json
import logging
import math
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from sessionstore.core.config import StoreSettings
from sessionstore.core.exceptions import SessionDurationError, SessionSerializationError
from sessionstore.core.interfaces import SessionStoreBase
from sessionstore.core.retry import RetryPolicy, with_retry
from sessionstore.db.base import create_metadata
from sessionstore.db.models.session_store import build_sessions_table
from sessionstore.db.session import create_store_engine, with_pooled_connection
from sessionstore.db.statements import SessionStatements

logger = logging.getLogger(__name__)

T = TypeVar("T")


def utc_now() -> datetime:
    """Current UTC time as a naive datetime, the form stored in the table"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def format_expiry(expires: datetime) -> str:
    """Render a stored expiry the way cookies carry it: ISO 8601, UTC, ``Z``"""
    if expires.tzinfo is not None:
        expires = expires.astimezone(timezone.utc).replace(tzinfo=None)
    return expires.isoformat(timespec="milliseconds") + "Z"


class SqlSessionStore(SessionStoreBase):
    """Session store backed by a single SQL table and a bounded pool.

    The store owns its engine unless one is injected. Call ``start`` before
    use and ``close`` when done, or use the store as an async context
    manager.
    """

    def __init__(
        self,
        settings: Optional[StoreSettings] = None,
        *,
        engine: Optional[AsyncEngine] = None,
        retry_policy: Optional[RetryPolicy] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.settings = settings or StoreSettings()
        self._owns_engine = engine is None
        self.engine = engine if engine is not None else create_store_engine(self.settings)
        self.retry_policy = retry_policy or self.settings.retry_policy()
        self._clock = clock
        self._sweep_task: Optional[asyncio.Task] = None

        schema = self.settings.table_schema
        if schema is None and self.engine.dialect.name == "mssql":
            schema = "dbo"
        self.metadata = create_metadata()
        self.table = build_sessions_table(self.metadata, self.settings, schema=schema)
        self.statements = SessionStatements(self.table, self.engine.dialect)

    async def __aenter__(self) -> "SqlSessionStore":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    @property
    def startup_sweep(self) -> Optional[asyncio.Task]:
        """Background task running the startup sweep, if one was started"""
        return self._sweep_task

    async def start(self) -> "SqlSessionStore":
        """Prepare the table (when configured) and launch the startup sweep."""
        if self.settings.auto_create_table:
            await self.create_table()
        if self.settings.sweep_on_start and self._sweep_task is None:
            self._sweep_task = asyncio.create_task(
                self._run_startup_sweep(), name="sessionstore-startup-sweep"
            )
        return self

    async def close(self) -> None:
        """Stop the startup sweep if still running and dispose the pool."""
        if self._sweep_task is not None and not self._sweep_task.done():
            self._sweep_task.cancel()
            await asyncio.gather(self._sweep_task, return_exceptions=True)
        if self._owns_engine:
            await self.engine.dispose()
            logger.debug("Session store engine disposed")

    async def create_table(self) -> None:
        """Create the sessions table if it does not exist."""
        async with self.engine.begin() as conn:
            await conn.run_sync(self.metadata.create_all, checkfirst=True)
        logger.info(f"Session table {self.statements.table_identifier} is ready")

    async def get(self, sid: str) -> Optional[Dict[str, Any]]:
        async def body(conn: AsyncConnection):
            result = await conn.execute(
                self.statements.select_live, {"sid": sid, "now": self._clock()}
            )
            return result.all()

        rows = await self._run("get", body)
        if len(rows) != 1:
            if rows:
                logger.warning(f"Found {len(rows)} live rows for one session id; treating as absent")
            return None

        expires, payload = rows[0]
        if expires is None or payload is None:
            return None

        session = self._decode(sid, payload)
        cookie = session.get("cookie")
        if not isinstance(cookie, dict):
            cookie = session["cookie"] = {}
        cookie["expires"] = format_expiry(expires)
        return session

    async def set(self, sid: str, session: Dict[str, Any]) -> None:
        payload = self._encode(sid, session)
        expires = self._expiry_for(sid, session)

        async def body(conn: AsyncConnection):
            await conn.execute(
                self.statements.upsert, {"sid": sid, "sess": payload, "expires": expires}
            )

        await self._run("set", body)
        logger.debug(f"Stored session, expires {format_expiry(expires)}")

    async def destroy(self, sid: str) -> bool:
        async def body(conn: AsyncConnection):
            await conn.execute(self.statements.delete_one, {"sid": sid})

        await self._run("destroy", body)
        return True

    async def clear(self) -> bool:
        async def body(conn: AsyncConnection):
            result = await conn.execute(self.statements.delete_all)
            return result.rowcount

        removed = await self._run("clear", body)
        logger.info(f"Cleared session table ({removed} row(s))")
        return True

    async def length(self) -> Optional[int]:
        async def body(conn: AsyncConnection):
            result = await conn.execute(self.statements.count)
            return result.scalar()

        total = await self._run("length", body)
        if total is None:
            return None
        return int(total)

    async def touch(self, sid: str, session: Dict[str, Any]) -> bool:
        expires = self._expiry_for(sid, session)

        async def body(conn: AsyncConnection):
            result = await conn.execute(self.statements.touch, {"sid": sid, "expires": expires})
            return result.rowcount

        updated = await self._run("touch", body)
        if not updated:
            logger.debug("Touch matched no session row; nothing refreshed")
        return True

    async def sweep_expired(self) -> int:
        """Delete every row whose expiry is already in the past.

        Returns:
            Number of rows removed
        """
        async def body(conn: AsyncConnection):
            result = await conn.execute(self.statements.delete_expired, {"now": self._clock()})
            return result.rowcount

        return await self._run("sweep", body)

    async def _run_startup_sweep(self) -> Optional[int]:
        try:
            removed = await self.sweep_expired()
        except Exception as e:
            # The store stays usable; expired rows are already invisible to reads
            logger.error(f"Startup sweep of expired sessions failed: {e}")
            return None
        logger.info(f"Startup sweep removed {removed} expired session(s)")
        return removed

    async def _run(self, operation: str, body: Callable[[AsyncConnection], Awaitable[T]]) -> T:
        return await with_retry(
            self.retry_policy,
            lambda: with_pooled_connection(self.engine, body),
            operation=operation,
        )

    def _duration_ms(self, session: Dict[str, Any]) -> float:
        cookie = session.get("cookie") if isinstance(session, dict) else None
        max_age = cookie.get("maxAge") if isinstance(cookie, dict) else None
        if isinstance(max_age, (int, float)) and not isinstance(max_age, bool) and max_age > 0:
            return max_age
        return self.settings.default_max_age_ms

    def _expiry_for(self, sid: str, session: Dict[str, Any]) -> datetime:
        duration = self._duration_ms(session)
        if not math.isfinite(duration):
            raise SessionDurationError(sid, duration)
        try:
            return self._clock() + timedelta(milliseconds=duration)
        except OverflowError as e:
            raise SessionDurationError(sid, duration) from e

    @staticmethod
    def _encode(sid: str, session: Dict[str, Any]) -> str:
        try:
            return json.dumps(session)
        except (TypeError, ValueError) as e:
            raise SessionSerializationError(sid, f"payload is not JSON serializable: {e}") from e

    @staticmethod
    def _decode(sid: str, payload: str) -> Dict[str, Any]:
        try:
            session = json.loads(payload)
        except ValueError as e:
            raise SessionSerializationError(sid, f"stored payload is not valid JSON: {e}") from e
        if not isinstance(session, dict):
            raise SessionSerializationError(sid, "stored payload is not a JSON object")
        return session
