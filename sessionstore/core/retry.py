"""Bounded retry with increasing backoff for whole store operations."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Tuple, Type, TypeVar

from sessionstore.core.exceptions import TransientStoreError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Attempt budget and exponential backoff bounds (seconds)."""

    max_attempts: int = 3
    initial_backoff: float = 0.1
    max_backoff: float = 2.0
    multiplier: float = 2.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.initial_backoff < 0 or self.max_backoff < 0:
            raise ValueError("backoff bounds must not be negative")

    def backoff_for(self, attempt: int) -> float:
        """Delay to wait after the given (1-based) failed attempt"""
        delay = self.initial_backoff * (self.multiplier ** (attempt - 1))
        return min(delay, self.max_backoff)


async def with_retry(
    policy: RetryPolicy,
    attempt: Callable[[], Awaitable[T]],
    *,
    retry_on: Tuple[Type[BaseException], ...] = (TransientStoreError,),
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    operation: str = "operation",
) -> T:
    """
    Run ``attempt`` until it succeeds or the attempt budget is spent.

    Only exceptions matching ``retry_on`` trigger another attempt; anything
    else propagates immediately. When the budget is exhausted the last
    transient error is re-raised unmodified.

    Args:
        policy: Attempt budget and backoff bounds
        attempt: Zero-argument coroutine factory, called once per attempt
        retry_on: Exception types considered transient
        sleep: Awaitable sleep, replaceable in tests
        operation: Name used in log messages

    Returns:
        The result of the first successful attempt
    """
    for number in range(1, policy.max_attempts + 1):
        try:
            return await attempt()
        except retry_on as e:
            if number >= policy.max_attempts:
                logger.error(
                    f"Session store {operation} failed after {number} attempt(s): {e}"
                )
                raise
            wait_time = policy.backoff_for(number)
            logger.warning(
                f"Session store {operation} hit a transient error: {e}, "
                f"retrying in {wait_time:.2f}s (attempt {number}/{policy.max_attempts})"
            )
            await sleep(wait_time)

    # Unreachable: the loop either returns or raises
    raise RuntimeError("retry loop exited without a result")
