"""Sliding-window rate limiter for quota-limited external APIs.

Thread-safety: safe under asyncio's single-threaded cooperative model as long
as callers await ``wait_if_needed`` before each request. Do NOT share one
instance across OS threads.
"""

from __future__ import annotations

import asyncio
import time
from collections import deque
from typing import Awaitable, Callable, Optional

from docsync.config.logger import app_logger


class RateLimiter:
    """Allow at most ``max_requests`` calls in any ``window_ms`` interval."""

    def __init__(
        self,
        max_requests: int,
        window_ms: int,
        clock: Optional[Callable[[], float]] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ) -> None:
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        if window_ms <= 0:
            raise ValueError("window_ms must be positive")
        self.max_requests = max_requests
        self.window_ms = window_ms
        self._clock = clock or (lambda: time.monotonic() * 1000)
        self._sleep = sleep or asyncio.sleep
        self._timestamps: deque[float] = deque()

    def _prune(self, now: float) -> None:
        cutoff = now - self.window_ms
        while self._timestamps and self._timestamps[0] <= cutoff:
            self._timestamps.popleft()

    async def wait_if_needed(self) -> None:
        """Block until the window has capacity, then record this request."""
        now = self._clock()
        self._prune(now)
        while len(self._timestamps) >= self.max_requests:
            wait_ms = self.window_ms - (now - self._timestamps[0])
            if wait_ms > 0:
                app_logger.info(f"Rate limit reached, waiting {int(wait_ms)}ms")
                await self._sleep(wait_ms / 1000)
            now = self._clock()
            self._prune(now)
        self._timestamps.append(self._clock())

    def usage_percentage(self) -> float:
        self._prune(self._clock())
        return len(self._timestamps) / self.max_requests * 100

    def remaining_requests(self) -> int:
        self._prune(self._clock())
        return max(0, self.max_requests - len(self._timestamps))

    def reset(self) -> None:
        self._timestamps.clear()

    @classmethod
    def for_openai(cls, requests_per_minute: int = 5000) -> "RateLimiter":
        return cls(max_requests=requests_per_minute, window_ms=60_000)

    @classmethod
    def for_drive(cls) -> "RateLimiter":
        # 90% of the 1000 queries / 100 s per-user quota
        return cls(max_requests=900, window_ms=100_000)

    @classmethod
    def for_qdrant(cls, requests_per_minute: int = 1000) -> "RateLimiter":
        return cls(max_requests=requests_per_minute, window_ms=60_000)
