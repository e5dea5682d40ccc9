"""Abstract base class for session store implementations.

This module defines the store contract that session middleware depends on.
Middleware calls these methods on every request that loads, saves, refreshes
or discards a session, so it is written against this interface and never
against a concrete backend.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional


class SessionStoreBase(ABC):
    """Abstract base class for session stores.

    Every method is async and completes exactly once: either it returns a
    result (``None`` meaning "absent") or it raises. It never does both.

    Example usage:
        async with SqlSessionStore(settings) as store:
            await store.set(sid, {"cookie": {"maxAge": 60000}, "user": 42})
            session = await store.get(sid)
    """

    @abstractmethod
    async def get(self, sid: str) -> Optional[Dict[str, Any]]:
        """Fetch a live session.

        Args:
            sid: Session identifier supplied by the middleware.

        Returns:
            The deserialized session, or None when it does not exist or
            has expired.
        """
        pass

    @abstractmethod
    async def set(self, sid: str, session: Dict[str, Any]) -> None:
        """Create or replace the session stored under ``sid``."""
        pass

    @abstractmethod
    async def destroy(self, sid: str) -> bool:
        """Delete the session stored under ``sid``.

        Returns:
            True, whether or not a session existed.
        """
        pass

    @abstractmethod
    async def length(self) -> Optional[int]:
        """Count stored sessions.

        Returns:
            The number of rows, or None when the count could not be read.
        """
        pass

    @abstractmethod
    async def clear(self) -> bool:
        """Delete every stored session."""
        pass

    @abstractmethod
    async def touch(self, sid: str, session: Dict[str, Any]) -> bool:
        """Extend the lifetime of an existing session without rewriting it.

        Never creates a session that does not exist.
        """
        pass
