"""Minimum-interval throttle for oracle calls (a token bucket of one)."""

from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Callable


class CallThrottle:
    """Spaces calls at least `min_interval_s` apart.

    clock and sleep are injectable so throttling can be tested without
    real delays.
    """

    def __init__(
        self,
        min_interval_s: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.min_interval_s = min_interval_s
        self._clock = clock
        self._sleep = sleep
        self._last: float | None = None

    def wait_time(self) -> float:
        if self._last is None:
            return 0.0
        return max(0.0, self.min_interval_s - (self._clock() - self._last))

    async def acquire(self):
        delay = self.wait_time()
        if delay > 0:
            await self._sleep(delay)
        self._last = self._clock()
