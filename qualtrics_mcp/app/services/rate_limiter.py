"""Outbound rate limiting for Qualtrics API calls.

Qualtrics enforces a per-token request budget, so every call the server
makes passes through a sliding window limiter first. Unlike a fixed window
that resets on the minute, a sliding window never lets 2x the budget through
across a window boundary.
"""

import asyncio
import time
from collections import deque
from typing import Awaitable, Callable, Deque

from qualtrics_mcp.app.core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_WINDOW_SECONDS = 60.0
# Guards against clock granularity at the window edge
DEFAULT_BUFFER_SECONDS = 0.1


class RateLimiter:
    """Sliding window limiter admitting at most ``max_per_window`` calls.

    ``acquire()`` never fails; it only delays. Pruning, waiting and
    appending happen under one asyncio.Lock, so callers that resume after a
    wait cannot interleave and over-admit.

    Attributes:
        enabled: When False, acquire() returns immediately
        max_per_window: Admitted calls allowed within the trailing window
        window_seconds: Window length in seconds
    """

    def __init__(
        self,
        enabled: bool = True,
        max_per_window: int = 50,
        window_seconds: float = DEFAULT_WINDOW_SECONDS,
        buffer_seconds: float = DEFAULT_BUFFER_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.window_seconds = window_seconds
        self.buffer_seconds = buffer_seconds
        self._clock = clock
        self._sleep = sleep
        self._timestamps: Deque[float] = deque()
        self._lock = asyncio.Lock()
        self.configure(enabled, max_per_window)

    def configure(self, enabled: bool, max_per_window: int) -> None:
        """Update the limiter settings.

        Raises:
            ValueError: If max_per_window is not positive.
        """
        if max_per_window < 1:
            raise ValueError("max_per_window must be at least 1")
        self.enabled = enabled
        self.max_per_window = max_per_window

    @property
    def admitted(self) -> int:
        """Number of admissions currently recorded in the window."""
        return len(self._timestamps)

    def _prune(self, now: float) -> None:
        while self._timestamps and now - self._timestamps[0] >= self.window_seconds:
            self._timestamps.popleft()

    async def acquire(self) -> None:
        """Wait until a request may be sent, then record its admission."""
        if not self.enabled:
            return

        async with self._lock:
            now = self._clock()
            self._prune(now)

            while len(self._timestamps) >= self.max_per_window:
                oldest = self._timestamps[0]
                wait = self.window_seconds - (now - oldest) + self.buffer_seconds
                logger.info(f"Rate limit reached. Waiting {wait:.2f}s...")
                await self._sleep(wait)
                now = self._clock()
                self._prune(now)

            self._timestamps.append(now)
