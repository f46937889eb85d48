"""
Per-provider rate limiter.

Implements a sliding window admission control for external API requests.
Each provider gets one limiter instance, built at process start and passed
to its client, so every request in the process shares the same window.
"""

import asyncio
import logging
import time
from collections import deque
from typing import Any, Awaitable, Callable, Deque, Dict, Optional

logger = logging.getLogger(__name__)


# =============================================================================
# Sliding Window Implementation
# =============================================================================


class SlidingWindowRateLimiter:
    """
    Sliding window rate limiter.

    Holds up to ``capacity`` admission timestamps within the trailing
    ``window_seconds``. ``admit()`` never rejects: callers suspend until the
    oldest admission leaves the window, then re-evaluate.

    Clock and sleep are injectable so tests can drive time deterministically.
    """

    def __init__(
        self,
        capacity: int,
        window_seconds: float = 60.0,
        name: str = "default",
        clock: Optional[Callable[[], float]] = None,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
    ):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")

        self.capacity = capacity
        self.window_seconds = float(window_seconds)
        self.name = name
        self._clock = clock or time.monotonic
        self._sleep = sleep or asyncio.sleep
        self._timestamps: Deque[float] = deque()
        self._lock = asyncio.Lock()

        # Statistics
        self.total_admitted = 0
        self.total_waits = 0

    def _prune(self, now: float) -> None:
        """Drop admissions that have left the window."""
        cutoff = now - self.window_seconds
        while self._timestamps and self._timestamps[0] <= cutoff:
            self._timestamps.popleft()

    async def admit(self) -> None:
        """
        Wait for a free slot, then record an admission.

        The lock is released while sleeping so other callers can observe
        the window; each wakes up and re-checks.
        """
        while True:
            async with self._lock:
                now = self._clock()
                self._prune(now)

                if len(self._timestamps) < self.capacity:
                    self._timestamps.append(now)
                    self.total_admitted += 1
                    return

                wait_time = self._timestamps[0] + self.window_seconds - now

            self.total_waits += 1
            logger.debug(
                f"Rate limit reached for '{self.name}' "
                f"({self.capacity}/{self.window_seconds:.0f}s), waiting {wait_time:.2f}s"
            )
            await self._sleep(max(wait_time, 0.0))

    def status(self) -> Dict[str, Any]:
        """Snapshot of the current window."""
        now = self._clock()
        self._prune(now)

        current = len(self._timestamps)
        if self._timestamps:
            reset_in = max(0.0, self._timestamps[0] + self.window_seconds - now)
        else:
            reset_in = 0.0

        return {
            "current": current,
            "max": self.capacity,
            "remaining": max(0, self.capacity - current),
            "reset_in_seconds": round(reset_in, 3),
        }

    def get_stats(self) -> Dict[str, Any]:
        """Get rate limit statistics including lifetime counters."""
        stats = self.status()
        stats.update(
            {
                "name": self.name,
                "window_seconds": self.window_seconds,
                "total_admitted": self.total_admitted,
                "total_waits": self.total_waits,
            }
        )
        return stats

    def reset(self) -> None:
        """Clear the window (for testing)."""
        self._timestamps.clear()
        logger.info(f"Reset rate limit window for '{self.name}'")
