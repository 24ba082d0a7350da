"""
Rate Limiting

Token-bucket limiter for outbound provider requests. Each provider instance
owns one bucket so a burst against one upstream never starves another.
"""

import asyncio
import logging
import time

logger = logging.getLogger(__name__)


class TokenBucket:
    """
    Async token bucket.

    Tokens refill continuously at ``requests_per_second`` up to
    ``burst_size``. ``acquire()`` waits until a token is available.
    """

    def __init__(self, requests_per_second: float, burst_size: int):
        """
        Initialize the bucket full.

        Args:
            requests_per_second: Sustained refill rate
            burst_size: Maximum tokens held at once
        """
        if requests_per_second <= 0:
            raise ValueError("requests_per_second must be positive")
        if burst_size < 1:
            raise ValueError("burst_size must be at least 1")

        self.requests_per_second = requests_per_second
        self.burst_size = burst_size
        self._tokens = float(burst_size)
        self._updated_at = time.monotonic()
        self._lock = asyncio.Lock()

    def _refill(self) -> None:
        now = time.monotonic()
        elapsed = now - self._updated_at
        self._updated_at = now
        self._tokens = min(
            float(self.burst_size),
            self._tokens + elapsed * self.requests_per_second,
        )

    @property
    def available(self) -> float:
        """Tokens currently available (after refill)."""
        self._refill()
        return self._tokens

    async def acquire(self) -> None:
        """Take one token, sleeping until one is available."""
        async with self._lock:
            while True:
                self._refill()
                if self._tokens >= 1:
                    self._tokens -= 1
                    return
                wait = (1 - self._tokens) / self.requests_per_second
                logger.debug(f"Rate limiter waiting {wait:.3f}s for a token")
                await asyncio.sleep(wait)
