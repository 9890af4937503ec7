"""Per-client rate limiting using a sliding window.

Each key may make at most ``max_requests`` requests within any
``window_seconds`` span. State is in memory and per process.
"""

import asyncio
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable

from multirouter.errors import RateLimitExceeded


@dataclass
class RateLimitInfo:
    """Information about current rate limit state."""

    remaining: int
    limit: int
    reset_at: float  # Unix timestamp
    retry_after: float | None = None


class SlidingWindowRateLimiter:
    """Sliding window rate limiter with in-memory storage.

    Attributes:
        max_requests: Requests allowed per window.
        window_seconds: Window length in seconds.
    """

    def __init__(
        self,
        max_requests: int = 100,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the rate limiter.

        Args:
            max_requests: Requests allowed per key per window.
            window_seconds: Window length in seconds.
            clock: Wall-clock source in epoch seconds.
        """
        if max_requests <= 0:
            raise ValueError("max_requests must be positive")

        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: dict[str, deque[float]] = {}
        self._last_sweep = clock()
        self._lock = asyncio.Lock()

    def _expire(self, window: deque[float], now: float) -> None:
        cutoff = now - self.window_seconds
        while window and window[0] <= cutoff:
            window.popleft()

    def _sweep(self, now: float) -> None:
        """Forget keys with no request inside the current window."""
        if now - self._last_sweep < self.window_seconds:
            return
        self._last_sweep = now
        cutoff = now - self.window_seconds
        stale = [key for key, window in self._windows.items() if not window or window[-1] <= cutoff]
        for key in stale:
            del self._windows[key]

    async def acquire(self, key: str) -> RateLimitInfo:
        """Record one request for ``key``.

        Args:
            key: Rate limit key (client host).

        Returns:
            RateLimitInfo with the state after this request.

        Raises:
            RateLimitExceeded: If the key is over its budget.
        """
        async with self._lock:
            now = self._clock()
            self._sweep(now)

            window = self._windows.setdefault(key, deque())
            self._expire(window, now)

            if len(window) >= self.max_requests:
                retry_after = max(window[0] + self.window_seconds - now, 0.0)
                raise RateLimitExceeded(
                    key=key,
                    limit=self.max_requests,
                    retry_after=retry_after,
                )

            window.append(now)
            return RateLimitInfo(
                remaining=self.max_requests - len(window),
                limit=self.max_requests,
                reset_at=window[0] + self.window_seconds,
            )

    async def reset(self, key: str) -> None:
        """Reset rate limit for a key.

        Args:
            key: Rate limit key to reset.
        """
        async with self._lock:
            self._windows.pop(key, None)
