"""
Test helper functions for common testing operations

These helpers provide a controllable clock and pool inspection utilities
shared across the test suite.
"""

from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncEngine


class FakeClock:
    """Naive-UTC clock that only moves when told to"""

    def __init__(self, start: datetime = datetime(2024, 1, 1, 12, 0, 0)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, milliseconds: float = 0, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(milliseconds=milliseconds, **kwargs)
        return self.now


def checked_out(engine: AsyncEngine) -> int:
    """Number of connections currently checked out of the engine's pool"""
    return engine.sync_engine.pool.checkedout()


class RecordingSleep:
    """Stand-in for asyncio.sleep that records requested delays"""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
