"""
Error taxonomy for connectors.

Every error raised by this package derives from ConnectorError and carries a
machine-readable ``code``, a ``retryable`` flag consulted by the retry policy,
and a ``details`` dict for structured logging.
"""

from __future__ import annotations

import asyncio
import errno
from dataclasses import dataclass
from enum import Enum
from typing import Any

import aiohttp


class ConnectorError(Exception):
    """Base class for all connector failures."""

    default_code = "CONNECTOR_ERROR"

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        retryable: bool = False,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.retryable = retryable
        self.details: dict[str, Any] = dict(details or {})

    def to_dict(self) -> dict[str, Any]:
        """Structured form for logs and health reports."""
        return {
            "code": self.code,
            "message": self.message,
            "retryable": self.retryable,
            "details": self.details,
        }


class ConfigError(ConnectorError):
    """Invalid or incomplete connector configuration. Never retryable."""

    default_code = "CONFIG_ERROR"

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(message, retryable=False, details=details)


class ValidationError(ConnectorError):
    """A single field failed validation."""

    default_code = "VALIDATION_ERROR"

    def __init__(self, field: str, value: Any, reason: str) -> None:
        super().__init__(
            f"Validation failed for field '{field}': {reason}",
            retryable=False,
            details={"field": field, "reason": reason},
        )
        self.field = field
        self.value = value
        self.reason = reason


def _code_for_status(status: int | None) -> str:
    if status is None:
        return "NETWORK_ERROR"
    if status == 401:
        return "AUTHENTICATION_ERROR"
    if status == 403:
        return "AUTHORIZATION_ERROR"
    if status == 503:
        return "SERVICE_UNAVAILABLE"
    return f"HTTP_{status}"


class ApiError(ConnectorError):
    """Live API call failed.

    ``status`` is the HTTP status, or None for transport failures (connection
    reset, DNS, timeouts). Transport failures and 5xx are retryable.
    """

    def __init__(
        self,
        message: str,
        *,
        status: int | None = None,
        code: str | None = None,
        retryable: bool | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        if retryable is None:
            retryable = status is None or 500 <= status < 600
        super().__init__(
            message,
            code=code or _code_for_status(status),
            retryable=retryable,
            details=details,
        )
        self.status = status

    @classmethod
    def timeout(cls, operation: str, timeout_ms: int) -> ApiError:
        """Timeout raised by the HTTP client for ``operation``."""
        return cls(
            f"Operation '{operation}' timed out after {timeout_ms}ms",
            code="TIMEOUT_ERROR",
            retryable=True,
            details={"operation": operation, "timeout_ms": timeout_ms},
        )


class ScraperError(ConnectorError):
    """Headless-browser scraping failed.

    Navigation failures, timeouts and page crashes are retryable.
    """

    default_code = "SCRAPER_ERROR"

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        retryable: bool = True,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code=code, retryable=retryable, details=details)


class SelectorNotFoundError(ScraperError):
    """Page loaded but expected selectors are missing: the dashboard layout changed."""

    def __init__(self, url: str, selectors: list[str]) -> None:
        super().__init__(
            f"Selectors not found after navigation: {', '.join(selectors)}",
            code="SCRAPER_SELECTOR_NOT_FOUND",
            retryable=False,
            details={"endpoint": url, "missing": selectors},
        )
        self.missing = selectors


class ScraperNotEnabledError(ScraperError):
    """Scraping requested on a connector configured without a scraper."""

    def __init__(self, connector: str) -> None:
        super().__init__(
            f"Scraper is not enabled for connector '{connector}'",
            code="SCRAPER_NOT_ENABLED",
            retryable=False,
        )


class RateLimitKind(str, Enum):
    """Why a rate-limited call was rejected."""

    BUCKET_TIMEOUT = "BUCKET_TIMEOUT"  # waited max_wait_ms for a token
    QUEUE_FULL = "QUEUE_FULL"  # wait queue at max depth
    UPSTREAM_429 = "UPSTREAM_429"  # remote API answered 429


class RateLimitError(ConnectorError):
    """Local token bucket or remote API refused the call. Not retryable by default."""

    default_code = "RATE_LIMIT_ERROR"

    def __init__(
        self,
        message: str,
        *,
        retry_after_ms: int | None = None,
        kind: RateLimitKind = RateLimitKind.BUCKET_TIMEOUT,
        retryable: bool = False,
        waited_ms: int = 0,
    ) -> None:
        super().__init__(
            message,
            retryable=retryable,
            details={"kind": kind.value, "retry_after_ms": retry_after_ms, "waited_ms": waited_ms},
        )
        self.retry_after_ms = retry_after_ms
        self.kind = kind
        self.waited_ms = waited_ms


class CacheError(ConnectorError):
    """Cache store malfunction. Connectors treat it as a miss."""

    default_code = "CACHE_ERROR"

    def __init__(self, operation: str, cause: BaseException | None = None) -> None:
        reason = str(cause) if cause is not None else "unknown error"
        super().__init__(
            f"Cache {operation} failed: {reason}",
            retryable=False,
            details={"operation": operation},
        )
        self.operation = operation


class ConnectorDisposedError(ConnectorError):
    """Capability called on a connector that has been disposed."""

    default_code = "CONNECTOR_DISPOSED"

    def __init__(self, connector: str) -> None:
        super().__init__(f"Connector '{connector}' has been disposed")


class ErrorCategory(str, Enum):
    NETWORK = "network"
    AUTH = "auth"
    VALIDATION = "validation"
    SERVER = "server"
    CLIENT = "client"
    RATE_LIMIT = "rate_limit"
    SCRAPER = "scraper"
    UNKNOWN = "unknown"


class ErrorSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass(frozen=True)
class ErrorClassification:
    """Coarse classification of an error for health reporting."""

    category: ErrorCategory
    severity: ErrorSeverity
    retryable: bool


_TEMPORARY_PATTERNS = (
    "timeout",
    "timed out",
    "econnreset",
    "connection reset",
    "enotfound",
    "name or service not known",
    "service unavailable",
    "rate limit",
    "too many requests",
    "temporarily unavailable",
    "navigation failed",
    "page crashed",
)

_TRANSIENT_ERRNOS = frozenset({errno.ECONNRESET, errno.ETIMEDOUT, errno.ECONNREFUSED, errno.EPIPE})


def is_temporary_error(error: BaseException) -> bool:
    """Return True when ``error`` looks transient.

    ConnectorError answers with its own ``retryable`` flag; anything else is
    matched by type (aiohttp connection errors, timeouts, transient errnos)
    and finally by message.
    """
    if isinstance(error, ConnectorError):
        return error.retryable
    if isinstance(error, (asyncio.TimeoutError, TimeoutError, aiohttp.ClientConnectionError)):
        return True
    if isinstance(error, aiohttp.ClientResponseError):
        return error.status >= 500 or error.status == 429
    if isinstance(error, OSError) and error.errno in _TRANSIENT_ERRNOS:
        return True
    message = str(error).lower()
    return any(pattern in message for pattern in _TEMPORARY_PATTERNS)


def classify_error(error: BaseException) -> ErrorClassification:
    """Map an error onto (category, severity, retryable)."""
    if isinstance(error, RateLimitError):
        return ErrorClassification(ErrorCategory.RATE_LIMIT, ErrorSeverity.MEDIUM, error.retryable)
    if isinstance(error, ScraperError):
        return ErrorClassification(ErrorCategory.SCRAPER, ErrorSeverity.MEDIUM, error.retryable)
    if isinstance(error, ConnectorError):
        code = error.code
        if "NETWORK" in code or "TIMEOUT" in code:
            return ErrorClassification(ErrorCategory.NETWORK, ErrorSeverity.MEDIUM, True)
        if "AUTH" in code:
            return ErrorClassification(ErrorCategory.AUTH, ErrorSeverity.HIGH, False)
        if "VALIDATION" in code or "CONFIG" in code:
            return ErrorClassification(ErrorCategory.VALIDATION, ErrorSeverity.MEDIUM, False)
        if code.startswith("HTTP_5") or code == "SERVICE_UNAVAILABLE":
            return ErrorClassification(ErrorCategory.SERVER, ErrorSeverity.MEDIUM, True)
        if code.startswith("HTTP_4"):
            return ErrorClassification(ErrorCategory.CLIENT, ErrorSeverity.MEDIUM, False)
    elif is_temporary_error(error):
        return ErrorClassification(ErrorCategory.NETWORK, ErrorSeverity.MEDIUM, True)
    return ErrorClassification(ErrorCategory.UNKNOWN, ErrorSeverity.LOW, False)
