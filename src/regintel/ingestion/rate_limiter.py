"""
Global request spacing for outbound fetches.

All workers share one limiter. Each caller reserves the next free slot
under a lock and then sleeps outside it, so waiting workers never hold
up the pipeline as a whole.
"""

import asyncio
import time
from collections.abc import Callable

from regintel.logging import get_logger

logger = get_logger(__name__)


class RateLimiter:
    """Enforces a minimum delay between any two outbound requests."""

    def __init__(
        self,
        min_interval_seconds: float = 1.5,
        clock: Callable[[], float] = time.monotonic,
    ):
        if min_interval_seconds < 0:
            raise ValueError("min_interval_seconds must not be negative")
        self.min_interval = min_interval_seconds
        self._clock = clock
        self._next_slot = 0.0
        self._lock = asyncio.Lock()
        self.total_requests = 0
        self.total_wait_seconds = 0.0

    async def reserve(self) -> float:
        """Reserve the next request slot; returns seconds the caller must wait."""
        async with self._lock:
            now = self._clock()
            start = max(now, self._next_slot)
            self._next_slot = start + self.min_interval
            self.total_requests += 1
            wait = start - now
            self.total_wait_seconds += wait
            return wait

    async def acquire(self) -> None:
        """Wait until this caller may send a request."""
        wait = await self.reserve()
        if wait > 0:
            logger.debug("Rate limited, waiting", wait_seconds=round(wait, 2))
            await asyncio.sleep(wait)

    def get_status(self) -> dict:
        """Get current rate limit status."""
        return {
            "min_interval_seconds": self.min_interval,
            "total_requests": self.total_requests,
            "total_wait_seconds": round(self.total_wait_seconds, 3),
            "next_slot_in_seconds": max(0.0, self._next_slot - self._clock()),
        }
