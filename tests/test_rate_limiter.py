"""Tests for rate limiter module."""

import asyncio
import pytest

from maildispatch.utils.rate_limiter import SlidingWindowRateLimiter


class TestSlidingWindowRateLimiter:
    """Tests for SlidingWindowRateLimiter admission."""

    @pytest.mark.asyncio
    async def test_admits_up_to_limit(self, clock):
        limiter = SlidingWindowRateLimiter(limit=3, window_seconds=10.0, clock=clock)
        results = [await limiter.try_admit("client") for _ in range(4)]
        assert results == [True, True, True, False]
        assert limiter.total_admitted == 3
        assert limiter.total_rejected == 1

    @pytest.mark.asyncio
    async def test_rejection_does_not_consume_window(self, clock):
        limiter = SlidingWindowRateLimiter(limit=1, window_seconds=10.0, clock=clock)
        assert await limiter.try_admit("client") is True
        for _ in range(5):
            assert await limiter.try_admit("client") is False
        assert limiter.window_count("client") == 1

    @pytest.mark.asyncio
    async def test_admits_again_after_window_elapses(self, clock):
        limiter = SlidingWindowRateLimiter(limit=3, window_seconds=10.0, clock=clock)
        for _ in range(3):
            await limiter.try_admit("client")
        clock.advance(9.0)
        assert await limiter.try_admit("client") is False
        clock.advance(1.0)
        # Exactly one window later the admissions still count
        assert await limiter.try_admit("client") is False
        clock.advance(0.5)
        assert await limiter.try_admit("client") is True

    @pytest.mark.asyncio
    async def test_window_slides(self, clock):
        limiter = SlidingWindowRateLimiter(limit=2, window_seconds=10.0, clock=clock)
        await limiter.try_admit("client")  # t=0
        clock.advance(6.0)
        await limiter.try_admit("client")  # t=6
        clock.advance(4.0)
        # t=10: the first admission is exactly one window old and still counts
        assert await limiter.try_admit("client") is False
        clock.advance(0.5)
        # t=10.5: the first admission has left the window, the second has not
        assert await limiter.try_admit("client") is True
        assert await limiter.try_admit("client") is False

    @pytest.mark.asyncio
    async def test_boundary_single_slot(self, clock):
        limiter = SlidingWindowRateLimiter(limit=1, window_seconds=60.0, clock=clock)
        assert await limiter.try_admit("client") is True
        clock.advance(60.0)
        assert await limiter.try_admit("client") is False
        clock.advance(0.001)
        assert await limiter.try_admit("client") is True

    @pytest.mark.asyncio
    async def test_keys_are_independent(self, clock):
        limiter = SlidingWindowRateLimiter(limit=1, window_seconds=10.0, clock=clock)
        assert await limiter.try_admit("a") is True
        assert await limiter.try_admit("a") is False
        assert await limiter.try_admit("b") is True
        assert limiter.tracked_keys == 2

    @pytest.mark.asyncio
    async def test_concurrent_admissions_respect_limit(self, clock):
        limiter = SlidingWindowRateLimiter(limit=5, window_seconds=60.0, clock=clock)
        results = await asyncio.gather(*(limiter.try_admit("client") for _ in range(20)))
        assert results.count(True) == 5

    @pytest.mark.asyncio
    async def test_sweep_idle_keys(self, clock):
        limiter = SlidingWindowRateLimiter(limit=2, window_seconds=10.0, clock=clock)
        await limiter.try_admit("old")
        clock.advance(8.0)
        await limiter.try_admit("recent")
        clock.advance(3.0)
        assert limiter.sweep_idle_keys() == 1
        assert limiter.tracked_keys == 1
        assert limiter.window_count("recent") == 1

    def test_window_count_unknown_key(self, clock):
        limiter = SlidingWindowRateLimiter(limit=2, window_seconds=10.0, clock=clock)
        assert limiter.window_count("nobody") == 0

    def test_invalid_limit(self):
        with pytest.raises(ValueError, match="limit must be >= 1"):
            SlidingWindowRateLimiter(limit=0, window_seconds=1.0)

    def test_invalid_window(self):
        with pytest.raises(ValueError, match="window_seconds must be > 0"):
            SlidingWindowRateLimiter(limit=1, window_seconds=0)

    def test_repr(self):
        limiter = SlidingWindowRateLimiter(limit=5, window_seconds=60.0)
        r = repr(limiter)
        assert "limit=5" in r
        assert "window_seconds=60.0" in r
