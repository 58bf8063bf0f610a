"""Tests for the token-bucket rate limiter."""

from __future__ import annotations

import asyncio

import pytest

from depinconnect.contracts import RateLimitConfig
from depinconnect.errors import RateLimitError, RateLimitKind
from depinconnect.resilience import TokenBucketLimiter


class FakeClock:
    """Millisecond clock advanced by hand."""

    def __init__(self, now_ms: int = 0) -> None:
        self.now_ms = now_ms

    def __call__(self) -> int:
        return self.now_ms


class TestImmediateAcquire:
    """Acquisition without waiting (fake clock)."""

    @pytest.mark.asyncio
    async def test_burst_up_to_capacity(self) -> None:
        """A full bucket admits `requests` calls at once."""
        clock = FakeClock()
        limiter = TokenBucketLimiter(
            RateLimitConfig(requests=3, window_ms=1000), _time_fn=clock
        )
        for _ in range(3):
            await limiter.acquire()
        assert limiter.metrics.allowed == 3
        assert limiter.can_acquire() is False

    @pytest.mark.asyncio
    async def test_refill_over_window(self) -> None:
        """Tokens refill continuously across the window."""
        clock = FakeClock()
        limiter = TokenBucketLimiter(
            RateLimitConfig(requests=10, window_ms=1000), _time_fn=clock
        )
        for _ in range(10):
            await limiter.acquire()
        clock.now_ms += 500
        assert limiter.get_info().remaining == 5
        clock.now_ms += 5000
        assert limiter.get_info().remaining == 10

    def test_info_reset_time(self) -> None:
        """reset_at_ms is when the bucket is full again."""
        clock = FakeClock(now_ms=1_000)
        limiter = TokenBucketLimiter(
            RateLimitConfig(requests=4, window_ms=4000), _time_fn=clock
        )
        info = limiter.get_info()
        assert info.remaining == 4
        assert info.reset_at_ms == 1_000
        assert info.limit == 4

    def test_status_snapshot(self) -> None:
        """get_status exposes capacity and queue settings."""
        limiter = TokenBucketLimiter(
            RateLimitConfig(requests=5, max_queue_depth=7), name="ionet", _time_fn=FakeClock()
        )
        status = limiter.get_status()
        assert status["capacity"] == 5
        assert status["queue_max"] == 7
        assert status["queue_depth"] == 0

    @pytest.mark.asyncio
    async def test_reset(self) -> None:
        """reset() refills the bucket and clears metrics."""
        limiter = TokenBucketLimiter(RateLimitConfig(requests=1), _time_fn=FakeClock())
        await limiter.acquire()
        limiter.reset()
        assert limiter.can_acquire() is True
        assert limiter.metrics.allowed == 0


class TestRejection:
    """Queue-full and timeout rejections."""

    @pytest.mark.asyncio
    async def test_queue_full_rejects_immediately(self) -> None:
        """With no queue capacity an empty bucket rejects at once."""
        limiter = TokenBucketLimiter(
            RateLimitConfig(requests=1, window_ms=60_000, max_queue_depth=0),
            _time_fn=FakeClock(),
        )
        await limiter.acquire()
        with pytest.raises(RateLimitError) as exc_info:
            await limiter.acquire()
        assert exc_info.value.kind is RateLimitKind.QUEUE_FULL
        assert exc_info.value.retryable is False
        assert exc_info.value.retry_after_ms == pytest.approx(60_000, abs=1)
        assert limiter.metrics.rejected_queue_full == 1

    @pytest.mark.asyncio
    async def test_wait_times_out(self) -> None:
        """A waiter that cannot get a token within max_wait_ms is rejected."""
        limiter = TokenBucketLimiter(
            RateLimitConfig(requests=1, window_ms=60_000, max_wait_ms=50)
        )
        await limiter.acquire()
        with pytest.raises(RateLimitError) as exc_info:
            await limiter.acquire()
        assert exc_info.value.kind is RateLimitKind.BUCKET_TIMEOUT
        assert exc_info.value.waited_ms >= 40
        assert limiter.metrics.rejected_timeout == 1
        assert limiter.get_status()["queue_depth"] == 0

    @pytest.mark.asyncio
    async def test_explicit_timeout_overrides_config(self) -> None:
        """acquire(timeout_ms=0) fails without waiting."""
        limiter = TokenBucketLimiter(
            RateLimitConfig(requests=1, window_ms=60_000, max_wait_ms=30_000)
        )
        await limiter.acquire()
        with pytest.raises(RateLimitError):
            await limiter.acquire(timeout_ms=0)


class TestQueuedAcquire:
    """Waiting for refills (real clock, short windows)."""

    @pytest.mark.asyncio
    async def test_deferred_until_refill(self) -> None:
        """A caller waits for the next token instead of failing."""
        limiter = TokenBucketLimiter(
            RateLimitConfig(requests=1, window_ms=50, max_wait_ms=2_000)
        )
        await limiter.acquire()
        await limiter.acquire()
        assert limiter.metrics.allowed == 2
        assert limiter.metrics.deferred == 1
        assert limiter.metrics.max_wait_ms > 0

    @pytest.mark.asyncio
    async def test_fifo_order(self) -> None:
        """Queued callers are served in arrival order."""
        limiter = TokenBucketLimiter(
            RateLimitConfig(requests=1, window_ms=30, max_wait_ms=2_000)
        )
        await limiter.acquire()
        order: list[int] = []

        async def worker(n: int) -> None:
            await limiter.acquire()
            order.append(n)

        await asyncio.gather(*(worker(n) for n in range(3)))
        assert order == [0, 1, 2]

    @pytest.mark.asyncio
    async def test_permit_context_manager(self) -> None:
        """permit() acquires a token before the block runs."""
        limiter = TokenBucketLimiter(RateLimitConfig(requests=2))
        async with limiter.permit():
            pass
        assert limiter.metrics.allowed == 1
