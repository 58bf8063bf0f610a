"""Retry and rate-limit primitives used by every connector."""

from depinconnect.resilience.rate_limit import TokenBucketLimiter, TokenBucketMetrics
from depinconnect.resilience.retry import (
    FailedAttempt,
    RetryOptions,
    RetryPolicy,
    compute_backoff_delay,
    default_should_retry,
)

__all__ = [
    "FailedAttempt",
    "RetryOptions",
    "RetryPolicy",
    "TokenBucketLimiter",
    "TokenBucketMetrics",
    "compute_backoff_delay",
    "default_should_retry",
]
