"""Connector configuration checks run before a connector is created."""

from __future__ import annotations

from typing import TYPE_CHECKING

from depinconnect.contracts import ValidationResult

if TYPE_CHECKING:
    from depinconnect.contracts import ConnectorConfig, ConnectorInfo

TIMEOUT_RANGE_MS = (1_000, 300_000)
RETRY_ATTEMPTS_RANGE = (0, 10)
RATE_LIMIT_REQUESTS_RANGE = (1, 10_000)
RATE_LIMIT_WINDOW_RANGE_MS = (1_000, 3_600_000)


def validate_connector_config(
    info: ConnectorInfo,
    config: ConnectorConfig,
    *,
    use_mock_data: bool = False,
) -> ValidationResult:
    """
    Errors block strict creation; warnings are advisory.

    A missing API key on a network that requires one is an error unless the
    connector can still serve data another way: dashboard scraping with
    credentials, or forced mock data.
    """
    errors: list[str] = []
    warnings: list[str] = []
    name = info.type.value

    if info.requires_api_key and not config.api_key:
        can_scrape = (
            info.supports_scraping and config.scraper.enabled and config.scraper.has_credentials
        )
        if not (can_scrape or use_mock_data):
            errors.append(f"{name} requires an API key")

    if not config.base_url:
        warnings.append(f"{name} should specify a base URL")

    lo, hi = TIMEOUT_RANGE_MS
    if not lo <= config.timeout_ms <= hi:
        warnings.append(f"Timeout should be between {lo}ms and {hi}ms")

    lo, hi = RETRY_ATTEMPTS_RANGE
    if not lo <= config.retry_attempts <= hi:
        warnings.append(f"Retry attempts should be between {lo} and {hi}")

    lo, hi = RATE_LIMIT_REQUESTS_RANGE
    if not lo <= config.rate_limit.requests <= hi:
        warnings.append(f"Rate limit requests should be between {lo} and {hi}")

    lo, hi = RATE_LIMIT_WINDOW_RANGE_MS
    if not lo <= config.rate_limit.window_ms <= hi:
        warnings.append(f"Rate limit window should be between {lo}ms and {hi}ms")

    if config.scraper.enabled and not info.supports_scraping:
        warnings.append(f"{name} has no dashboard scraper; scraper settings are ignored")

    return ValidationResult(valid=not errors, errors=errors, warnings=warnings)
