"""Token bucket admission control."""

from __future__ import annotations

import math
import time
from typing import Awaitable, Callable, Optional, TypeVar

from .errors import RateLimitExceededError

T = TypeVar('T')


class RateLimiter:
    """
    Token bucket with ``capacity`` tokens refilled at ``refill_rate``
    tokens per second.

    Refill is computed lazily from the elapsed time on every access, so an
    idle limiter needs no timer.
    """

    def __init__(
        self,
        capacity: float,
        refill_rate: float,
        clock: Optional[Callable[[], float]] = None,
    ):
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        if refill_rate < 0:
            raise ValueError("refill_rate must not be negative")
        self.capacity = capacity
        self.refill_rate = refill_rate
        self._clock = clock or time.monotonic
        self._tokens = float(capacity)
        self._last_refill = self._clock()

    async def execute(self, func: Callable[[], Awaitable[T]]) -> T:
        """Run ``func`` if a token is available, else raise RateLimitExceededError."""
        if not self.try_acquire():
            raise RateLimitExceededError()
        return await func()

    def try_acquire(self) -> bool:
        """Consume one token if available."""
        self._refill()
        if self._tokens >= 1:
            self._tokens -= 1
            return True
        return False

    def get_available_tokens(self) -> int:
        self._refill()
        return math.floor(self._tokens)

    def _refill(self):
        now = self._clock()
        elapsed = now - self._last_refill
        self._tokens = min(self.capacity, self._tokens + elapsed * self.refill_rate)
        self._last_refill = now
