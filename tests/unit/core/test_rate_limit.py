"""
Unit tests for the token-bucket rate limiter.
"""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from collekt.core.rate_limit import TokenBucket


class TestTokenBucket:
    """Tests for TokenBucket"""

    def test_starts_full(self):
        bucket = TokenBucket(requests_per_second=10, burst_size=5)
        assert bucket.available == pytest.approx(5, abs=0.1)

    @pytest.mark.parametrize(
        "rate,burst",
        [(0, 5), (-1, 5), (10, 0)],
    )
    def test_invalid_configuration(self, rate, burst):
        with pytest.raises(ValueError):
            TokenBucket(requests_per_second=rate, burst_size=burst)

    async def test_burst_is_served_without_waiting(self):
        bucket = TokenBucket(requests_per_second=1, burst_size=3)

        with patch("collekt.core.rate_limit.asyncio.sleep", new_callable=AsyncMock) as sleep:
            for _ in range(3):
                await bucket.acquire()

        sleep.assert_not_called()
        assert bucket.available < 1

    async def test_waits_when_exhausted(self):
        """An empty bucket sleeps roughly one refill interval."""
        bucket = TokenBucket(requests_per_second=100, burst_size=1)
        await bucket.acquire()

        loop = asyncio.get_running_loop()
        start = loop.time()
        await bucket.acquire()
        elapsed = loop.time() - start

        assert elapsed >= 0.005

    def test_refill_is_capped_at_burst(self):
        bucket = TokenBucket(requests_per_second=1000, burst_size=2)
        bucket._updated_at -= 60
        assert bucket.available == 2
