"""Token bucket gating how fast jobs enter the pipeline."""
from __future__ import annotations

import asyncio
import logging
import math
import time
from typing import Awaitable, Callable, Optional

from ..config import DEFAULT_RATE

logger = logging.getLogger('aemeye.ratelimit')

# float slack so a sleep computed from the deficit always ends in an admission
_EPSILON = 1e-9


class RateLimiter:
    """Continuous-refill token bucket.

    Capacity and refill rate are both ``rate`` tokens per second. The bucket
    starts with a single token, so on a fresh limiter the Nth admission
    happens no earlier than ``(N - 1) / rate`` seconds after the first; after
    an idle period it holds at most one second's worth of tokens.

    ``admit()`` suspends only the calling task. Callers are admitted in the
    order they arrive.
    """

    def __init__(
        self,
        rate: float,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if not isinstance(rate, (int, float)) or not math.isfinite(rate) or rate <= 0:
            logger.warning('invalid rate %r, using default of %d/s', rate, DEFAULT_RATE)
            rate = DEFAULT_RATE
        self.rate = float(rate)
        self.capacity = float(rate)
        self._clock = clock
        self._sleep = sleep
        self._tokens = 1.0
        self._updated = clock()
        self._lock: Optional[asyncio.Lock] = None

    def _refill(self) -> None:
        now = self._clock()
        elapsed = now - self._updated
        if elapsed > 0:
            self._tokens = min(self.capacity, self._tokens + elapsed * self.rate)
        self._updated = now

    @property
    def tokens(self) -> float:
        self._refill()
        return self._tokens

    def try_admit(self) -> bool:
        """Consume a token if one is available right now."""
        self._refill()
        if self._tokens >= 1.0 - _EPSILON:
            self._tokens = max(0.0, self._tokens - 1.0)
            return True
        return False

    async def admit(self) -> None:
        """Wait until a token is available, then consume it."""
        if self._lock is None:
            self._lock = asyncio.Lock()
        async with self._lock:
            while not self.try_admit():
                await self._sleep((1.0 - self._tokens) / self.rate)
