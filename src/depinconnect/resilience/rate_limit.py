"""
Token-bucket rate limiter for outbound API calls.

Each connector owns one bucket holding up to ``requests`` tokens that refill
continuously over ``window_ms``. Callers that find the bucket empty wait in
a bounded FIFO queue; a caller is rejected when the queue is full or when it
has waited ``max_wait_ms`` without reaching a token.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import math
import time
from collections import deque
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from depinconnect.contracts import RateLimitConfig, RateLimitInfo
from depinconnect.errors import RateLimitError, RateLimitKind

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable

logger = logging.getLogger(__name__)

# Upper bound on a single wait between queue checks.
_MAX_POLL_MS = 100


@dataclass
class TokenBucketMetrics:
    """Counters for limiter observability."""

    allowed: int = 0
    deferred: int = 0  # waited in queue, then allowed
    rejected_queue_full: int = 0
    rejected_timeout: int = 0
    total_wait_ms: int = 0
    max_wait_ms: int = 0

    @property
    def rejected(self) -> int:
        return self.rejected_queue_full + self.rejected_timeout


@dataclass
class _Waiter:
    enqueue_time_ms: int


@dataclass
class TokenBucketLimiter:
    """
    Token bucket with a bounded FIFO wait queue.

    A new caller takes a token immediately only when one is available and
    nobody is queued, so waiters are served in arrival order.

    Usage:
        limiter = TokenBucketLimiter(RateLimitConfig(requests=60, window_ms=60_000))
        async with limiter.permit():
            await session.get(url)
    """

    config: RateLimitConfig = field(default_factory=RateLimitConfig)
    name: str = "default"

    _tokens: float = field(default=0.0, init=False)
    _last_refill_ms: int = field(default=0, init=False)
    _queue: deque[_Waiter] = field(default_factory=deque, init=False)

    metrics: TokenBucketMetrics = field(default_factory=TokenBucketMetrics, init=False)

    _time_fn: Callable[[], int] | None = field(default=None)

    def __post_init__(self) -> None:
        self._tokens = float(self.config.requests)
        self._last_refill_ms = self._now_ms()

    def _now_ms(self) -> int:
        if self._time_fn is not None:
            return self._time_fn()
        return int(time.time() * 1000)

    @property
    def _tokens_per_ms(self) -> float:
        return self.config.requests / self.config.window_ms

    def _refill(self, now_ms: int) -> None:
        elapsed_ms = now_ms - self._last_refill_ms
        if elapsed_ms <= 0:
            return
        self._tokens = min(
            self._tokens + elapsed_ms * self._tokens_per_ms, float(self.config.requests)
        )
        self._last_refill_ms = now_ms

    def _ms_until_token(self) -> float:
        if self._tokens >= 1:
            return 0.0
        return (1 - self._tokens) / self._tokens_per_ms

    def can_acquire(self) -> bool:
        """True when ``acquire`` would return without waiting."""
        self._refill(self._now_ms())
        return self._tokens >= 1 and not self._queue

    async def acquire(self, timeout_ms: int | None = None) -> None:
        """
        Take one token, waiting in the queue if necessary.

        Args:
            timeout_ms: Max time to wait (None = config.max_wait_ms).

        Raises:
            RateLimitError: QUEUE_FULL when the queue is at depth,
                BUCKET_TIMEOUT when the wait exceeds the timeout.
        """
        now_ms = self._now_ms()
        max_wait_ms = self.config.max_wait_ms if timeout_ms is None else timeout_ms
        self._refill(now_ms)

        if self._tokens >= 1 and not self._queue:
            self._tokens -= 1
            self.metrics.allowed += 1
            return

        if len(self._queue) >= self.config.max_queue_depth:
            self.metrics.rejected_queue_full += 1
            logger.warning(
                "Rate limit queue full",
                extra={"limiter": self.name, "queue_depth": len(self._queue)},
            )
            raise RateLimitError(
                f"Rate limit queue full ({self.config.max_queue_depth}), request rejected",
                kind=RateLimitKind.QUEUE_FULL,
                retry_after_ms=math.ceil(self._ms_until_token()),
            )

        waiter = _Waiter(enqueue_time_ms=now_ms)
        self._queue.append(waiter)
        deadline_ms = now_ms + max_wait_ms

        try:
            while True:
                now_ms = self._now_ms()
                self._refill(now_ms)

                if self._queue and self._queue[0] is waiter and self._tokens >= 1:
                    self._tokens -= 1
                    waited_ms = now_ms - waiter.enqueue_time_ms
                    self.metrics.allowed += 1
                    self.metrics.deferred += 1
                    self.metrics.total_wait_ms += waited_ms
                    self.metrics.max_wait_ms = max(self.metrics.max_wait_ms, waited_ms)
                    return

                remaining_ms = deadline_ms - now_ms
                if remaining_ms <= 0:
                    waited_ms = now_ms - waiter.enqueue_time_ms
                    self.metrics.rejected_timeout += 1
                    raise RateLimitError(
                        f"Timed out after {waited_ms}ms waiting for a rate limit token",
                        kind=RateLimitKind.BUCKET_TIMEOUT,
                        retry_after_ms=math.ceil(self._ms_until_token()),
                        waited_ms=waited_ms,
                    )

                wait_ms = min(remaining_ms, _MAX_POLL_MS, max(1.0, self._ms_until_token()))
                await asyncio.sleep(wait_ms / 1000.0)
        finally:
            if waiter in self._queue:
                self._queue.remove(waiter)

    @contextlib.asynccontextmanager
    async def permit(self, timeout_ms: int | None = None) -> AsyncIterator[None]:
        """Acquire a token, then run the block."""
        await self.acquire(timeout_ms)
        yield

    def get_info(self) -> RateLimitInfo:
        """Remaining whole tokens and when the bucket will be full again."""
        now_ms = self._now_ms()
        self._refill(now_ms)
        missing = self.config.requests - self._tokens
        return RateLimitInfo(
            remaining=max(0, math.floor(self._tokens)),
            reset_at_ms=now_ms + math.ceil(missing / self._tokens_per_ms),
            limit=self.config.requests,
        )

    def get_status(self) -> dict[str, int | float]:
        self._refill(self._now_ms())
        return {
            "available": round(self._tokens, 2),
            "capacity": self.config.requests,
            "queue_depth": len(self._queue),
            "queue_max": self.config.max_queue_depth,
            "allowed": self.metrics.allowed,
            "deferred": self.metrics.deferred,
            "rejected": self.metrics.rejected,
        }

    def reset(self) -> None:
        self._tokens = float(self.config.requests)
        self._last_refill_ms = self._now_ms()
        self._queue.clear()
        self.metrics = TokenBucketMetrics()
