"""
Process-wide settings read from the environment.

Per-network credentials follow the ``${NETWORK}_API_KEY`` convention
(``IONET_API_KEY``, ``HUDDLE01_API_KEY``, ...), with optional
``${NETWORK}_BASE_URL``, ``${NETWORK}_SCRAPER_USERNAME`` and
``${NETWORK}_SCRAPER_PASSWORD``.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from depinconnect.contracts import ConnectorType

# Never log these values (see logging_config.BLOCKED_FIELDS).
REDACTED_ENV_SUFFIXES = frozenset({"_API_KEY", "_SCRAPER_PASSWORD"})

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})
_FALSE_VALUES = frozenset({"0", "false", "no", "off", ""})
_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


def _parse_bool(name: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ValueError(f"{name} must be a boolean, got {raw!r}")


def env_prefix(connector_type: ConnectorType) -> str:
    """``ConnectorType.IONET`` -> ``"IONET"``."""
    return connector_type.value.upper()


@dataclass
class FrameworkSettings:
    """Framework-wide knobs shared by the registry and every connector."""

    log_level: str = "INFO"
    log_json: bool = True
    # Skip live and scraper tiers; every read is served by the simulator.
    use_mock_data: bool = False
    cache_ttl_s: float = 300.0
    metrics_port: int | None = None

    def __post_init__(self) -> None:
        self.log_level = self.log_level.upper()
        if self.log_level not in _LOG_LEVELS:
            raise ValueError(
                f"log_level must be one of {sorted(_LOG_LEVELS)}, got {self.log_level}"
            )
        if self.cache_ttl_s <= 0:
            raise ValueError(f"cache_ttl_s must be > 0, got {self.cache_ttl_s}")
        if self.metrics_port is not None and not 0 <= self.metrics_port <= 65535:
            raise ValueError(f"metrics_port must be in 0..65535, got {self.metrics_port}")

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> FrameworkSettings:
        """Build settings from ``DEPIN_*`` variables; unset ones keep defaults."""
        source = os.environ if env is None else env
        kwargs: dict[str, Any] = {}
        if "DEPIN_LOG_LEVEL" in source:
            kwargs["log_level"] = source["DEPIN_LOG_LEVEL"]
        if "DEPIN_LOG_JSON" in source:
            kwargs["log_json"] = _parse_bool("DEPIN_LOG_JSON", source["DEPIN_LOG_JSON"])
        if "DEPIN_USE_MOCK_DATA" in source:
            kwargs["use_mock_data"] = _parse_bool(
                "DEPIN_USE_MOCK_DATA", source["DEPIN_USE_MOCK_DATA"]
            )
        if "DEPIN_CACHE_TTL_S" in source:
            kwargs["cache_ttl_s"] = float(source["DEPIN_CACHE_TTL_S"])
        if source.get("DEPIN_METRICS_PORT"):
            kwargs["metrics_port"] = int(source["DEPIN_METRICS_PORT"])
        return cls(**kwargs)


def network_env_overrides(
    connector_type: ConnectorType, env: Mapping[str, str] | None = None
) -> dict[str, Any]:
    """
    Config overrides for one network taken from the environment.

    Returns a nested dict suitable for ``ConnectorConfig.with_overrides``.
    Scraping is switched on when both dashboard credentials are present.
    """
    source = os.environ if env is None else env
    prefix = env_prefix(connector_type)
    overrides: dict[str, Any] = {}

    api_key = source.get(f"{prefix}_API_KEY")
    if api_key:
        overrides["api_key"] = api_key
    base_url = source.get(f"{prefix}_BASE_URL")
    if base_url:
        overrides["base_url"] = base_url

    username = source.get(f"{prefix}_SCRAPER_USERNAME")
    password = source.get(f"{prefix}_SCRAPER_PASSWORD")
    if username and password:
        overrides["scraper"] = {"enabled": True, "username": username, "password": password}
    return overrides
