"""
Token bucket rate limiter for outbound registry calls.
"""

import asyncio
import time
from typing import Awaitable, Callable, Optional


class TokenBucket:
    """
    Async token bucket.

    Holds up to `capacity` tokens, refilled continuously at `rate` tokens per
    second. `acquire()` waits until a token is available, so callers sharing
    one bucket never exceed the configured requests-per-second ceiling.

    Example:
        bucket = TokenBucket(rate=10)

        async def fetch():
            await bucket.acquire()
            return await make_registry_call()
    """

    def __init__(
        self,
        rate: float,
        capacity: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Args:
            rate: Tokens added per second (the requests-per-second ceiling)
            capacity: Burst size; defaults to max(1, rate)

        Raises:
            ValueError: if rate is not positive
        """
        if rate <= 0:
            raise ValueError(f"rate must be positive, got {rate}")

        self.rate = rate
        self.capacity = capacity if capacity is not None else max(1.0, rate)
        self._clock = clock
        self._sleep = sleep
        self._tokens = self.capacity
        self._updated_at = clock()
        self._lock: Optional[asyncio.Lock] = None

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._updated_at)
        self._tokens = min(self.capacity, self._tokens + elapsed * self.rate)
        self._updated_at = now

    def try_acquire(self) -> bool:
        """Take a token without waiting; False when the bucket is empty."""
        self._refill()
        if self._tokens >= 1:
            self._tokens -= 1
            return True
        return False

    async def acquire(self) -> None:
        """Wait for and take one token."""
        if self._lock is None:
            self._lock = asyncio.Lock()

        # One waiter at a time keeps refills FIFO-fair
        async with self._lock:
            while not self.try_acquire():
                await self._sleep((1 - self._tokens) / self.rate)

    @property
    def available(self) -> float:
        """Tokens currently in the bucket (for monitoring only)."""
        self._refill()
        return self._tokens
