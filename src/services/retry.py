"""Bounded exponential-backoff retry for tag client calls."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from src.services.errors import TagTransportError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Retry policy for transport failures.

    Attributes:
        max_attempts: Total attempts including the first call.
        base_delay: Delay in seconds before the second attempt; doubles after.
    """

    max_attempts: int = 3
    base_delay: float = 0.2

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.base_delay < 0:
            raise ValueError("base_delay must be >= 0")

    def delay_for(self, attempt: int) -> float:
        """Return the sleep before retrying after the given zero-based attempt."""
        return self.base_delay * (2 ** attempt)

    async def run(
        self,
        func: Callable[[], Awaitable[T]],
        description: str = "call",
    ) -> T:
        """Await ``func`` retrying retryable TagTransportError failures.

        Non-retryable transport errors and every other exception propagate
        immediately. The last transport error propagates once attempts are
        exhausted.
        """
        for attempt in range(self.max_attempts):
            try:
                return await func()
            except TagTransportError as e:
                if not e.retryable or attempt + 1 >= self.max_attempts:
                    raise
                delay = self.delay_for(attempt)
                logger.warning(
                    "%s failed with retryable error (attempt %d/%d), "
                    "retrying in %.2fs: %s",
                    description, attempt + 1, self.max_attempts, delay, e,
                )
                await asyncio.sleep(delay)
        raise AssertionError("unreachable")  # pragma: no cover


NO_RETRY = RetryPolicy(max_attempts=1, base_delay=0.0)
