"""
Retry with exponential backoff and jitter.

An operation is attempted at most ``retries + 1`` times. A non-retryable
error stops the loop immediately and is raised unchanged; when retries are
exhausted the last error is raised.

Delay before retry ``n`` (1-based) is ``min_timeout * factor ** (n - 1)``,
multiplied by a jitter factor in [0.5, 1.5] when randomized, then capped at
``max_timeout``.
"""

from __future__ import annotations

import asyncio
import errno
import functools
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, TypeVar

import aiohttp

logger = logging.getLogger(__name__)

T = TypeVar("T")

_TRANSIENT_ERRNOS = frozenset({errno.ECONNRESET, errno.ETIMEDOUT, errno.ECONNREFUSED})
_TRANSIENT_MESSAGES = (
    "econnreset",
    "enotfound",
    "etimedout",
    "connection reset",
    "timed out",
    "timeout",
)


def default_should_retry(error: BaseException) -> bool:
    """
    Classify an error as transient.

    An explicit boolean ``retryable`` attribute wins. Otherwise connection
    resets, unresolvable hosts, timeouts and HTTP 5xx are retried; anything
    else (4xx, validation, programming errors) is fatal.
    """
    retryable = getattr(error, "retryable", None)
    if isinstance(retryable, bool):
        return retryable

    if isinstance(error, aiohttp.ClientResponseError):
        return 500 <= error.status < 600
    status = getattr(error, "status", None)
    if isinstance(status, int):
        return 500 <= status < 600

    if isinstance(error, (TimeoutError, aiohttp.ClientConnectionError)):
        return True
    if isinstance(error, OSError) and error.errno in _TRANSIENT_ERRNOS:
        return True

    message = str(error).lower()
    return any(fragment in message for fragment in _TRANSIENT_MESSAGES)


@dataclass
class RetryOptions:
    """Retry policy settings. Times are in milliseconds."""

    retries: int = 3
    factor: float = 2.0
    min_timeout_ms: int = 1000
    max_timeout_ms: int = 30000
    randomize: bool = True
    should_retry: Callable[[BaseException], bool] = field(default=default_should_retry)

    def __post_init__(self) -> None:
        if self.retries < 0:
            raise ValueError(f"retries must be >= 0, got {self.retries}")
        if self.factor < 1:
            raise ValueError(f"factor must be >= 1, got {self.factor}")
        if self.min_timeout_ms < 0 or self.max_timeout_ms < self.min_timeout_ms:
            raise ValueError("need 0 <= min_timeout_ms <= max_timeout_ms")


@dataclass(frozen=True)
class FailedAttempt:
    """Passed to ``on_failed_attempt`` before each retry."""

    attempt: int
    retries_left: int
    delay_ms: int
    error: BaseException


def compute_backoff_delay(
    options: RetryOptions,
    attempt: int,
    *,
    rng: random.Random | None = None,
) -> int:
    """
    Delay in ms before retry number ``attempt`` (1-based). 0 for attempt 0.

    Args:
        options: Retry settings.
        attempt: Retry number.
        rng: Seeded Random for reproducible jitter; module random otherwise.
    """
    if attempt <= 0:
        return 0
    delay = options.min_timeout_ms * (options.factor ** (attempt - 1))
    if options.randomize:
        source = rng if rng is not None else random
        delay *= source.uniform(0.5, 1.5)
    return int(min(delay, options.max_timeout_ms))


class RetryPolicy:
    """
    Executes async operations under ``RetryOptions``.

    Usage:
        policy = RetryPolicy(RetryOptions(retries=2))
        data = await policy.execute(lambda: client.get("/api/v1/nodes"), operation="nodes")
    """

    def __init__(
        self,
        options: RetryOptions | None = None,
        *,
        rng: random.Random | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        on_failed_attempt: Callable[[FailedAttempt], None] | None = None,
    ) -> None:
        self.options = options or RetryOptions()
        self._rng = rng
        self._sleep = sleep
        self._on_failed_attempt = on_failed_attempt

    @property
    def max_attempts(self) -> int:
        return self.options.retries + 1

    async def execute(self, fn: Callable[[], Awaitable[T]], *, operation: str = "operation") -> T:
        """Run ``fn`` until it succeeds, fails fatally, or retries run out."""
        attempt = 0
        while True:
            attempt += 1
            try:
                return await fn()
            except Exception as exc:
                retries_left = self.max_attempts - attempt
                if retries_left <= 0 or not self.options.should_retry(exc):
                    if attempt > 1:
                        logger.warning(
                            "Giving up after retries",
                            extra={"operation": operation, "attempts": attempt, "error": str(exc)},
                        )
                    raise

                delay_ms = compute_backoff_delay(self.options, attempt, rng=self._rng)
                if self._on_failed_attempt is not None:
                    self._on_failed_attempt(
                        FailedAttempt(
                            attempt=attempt,
                            retries_left=retries_left,
                            delay_ms=delay_ms,
                            error=exc,
                        )
                    )
                logger.info(
                    "Retrying after transient failure",
                    extra={
                        "operation": operation,
                        "attempt": attempt,
                        "retries_left": retries_left,
                        "delay_ms": delay_ms,
                        "error": str(exc),
                    },
                )
                if delay_ms > 0:
                    await self._sleep(delay_ms / 1000)

    def wrap(
        self, fn: Callable[..., Awaitable[T]], *, operation: str | None = None
    ) -> Callable[..., Awaitable[T]]:
        """Return a retrying version of ``fn``."""
        name = operation or getattr(fn, "__name__", "operation")

        @functools.wraps(fn)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            return await self.execute(lambda: fn(*args, **kwargs), operation=name)

        return wrapper
