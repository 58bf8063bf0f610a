"""Tests for environment-driven settings."""

from __future__ import annotations

import pytest

from depinconnect.contracts import ConnectorType
from depinconnect.settings import FrameworkSettings, env_prefix, network_env_overrides


class TestFrameworkSettings:
    """FrameworkSettings defaults and validation."""

    def test_defaults(self) -> None:
        """Defaults: INFO, JSON logs, live mode, 5 minute cache."""
        settings = FrameworkSettings()
        assert settings.log_level == "INFO"
        assert settings.log_json is True
        assert settings.use_mock_data is False
        assert settings.cache_ttl_s == 300.0
        assert settings.metrics_port is None

    def test_log_level_normalized(self) -> None:
        """Lower-case levels are accepted."""
        assert FrameworkSettings(log_level="debug").log_level == "DEBUG"

    def test_invalid_log_level(self) -> None:
        """Unknown levels are rejected."""
        with pytest.raises(ValueError, match="log_level"):
            FrameworkSettings(log_level="LOUD")

    def test_invalid_ttl(self) -> None:
        """TTL must be positive."""
        with pytest.raises(ValueError, match="cache_ttl_s"):
            FrameworkSettings(cache_ttl_s=0)

    def test_invalid_port(self) -> None:
        """Port must fit in 0..65535."""
        with pytest.raises(ValueError, match="metrics_port"):
            FrameworkSettings(metrics_port=70000)


class TestFromEnv:
    """FrameworkSettings.from_env."""

    def test_empty_env_gives_defaults(self) -> None:
        """Unset variables keep defaults."""
        assert FrameworkSettings.from_env({}) == FrameworkSettings()

    def test_reads_all_variables(self) -> None:
        """Every DEPIN_* variable is honoured."""
        settings = FrameworkSettings.from_env(
            {
                "DEPIN_LOG_LEVEL": "warning",
                "DEPIN_LOG_JSON": "false",
                "DEPIN_USE_MOCK_DATA": "1",
                "DEPIN_CACHE_TTL_S": "60",
                "DEPIN_METRICS_PORT": "9100",
            }
        )
        assert settings.log_level == "WARNING"
        assert settings.log_json is False
        assert settings.use_mock_data is True
        assert settings.cache_ttl_s == 60.0
        assert settings.metrics_port == 9100

    def test_bad_boolean(self) -> None:
        """Unparseable booleans raise with the variable name."""
        with pytest.raises(ValueError, match="DEPIN_USE_MOCK_DATA"):
            FrameworkSettings.from_env({"DEPIN_USE_MOCK_DATA": "maybe"})

    def test_empty_metrics_port_ignored(self) -> None:
        """An empty port variable means disabled."""
        assert FrameworkSettings.from_env({"DEPIN_METRICS_PORT": ""}).metrics_port is None


class TestNetworkEnvOverrides:
    """Per-network credential variables."""

    def test_prefix(self) -> None:
        """Prefix is the upper-cased connector type."""
        assert env_prefix(ConnectorType.HUDDLE01) == "HUDDLE01"

    def test_api_key_and_base_url(self) -> None:
        """Key and base URL are picked up for the right network only."""
        env = {
            "IONET_API_KEY": "io-key",
            "IONET_BASE_URL": "https://staging.io.net",
            "RENDER_API_KEY": "rndr-key",
        }
        overrides = network_env_overrides(ConnectorType.IONET, env)
        assert overrides == {"api_key": "io-key", "base_url": "https://staging.io.net"}

    def test_scraper_needs_both_credentials(self) -> None:
        """Scraping is only enabled when username and password are both set."""
        partial = network_env_overrides(ConnectorType.GRASS, {"GRASS_SCRAPER_USERNAME": "op"})
        assert "scraper" not in partial

        full = network_env_overrides(
            ConnectorType.GRASS,
            {"GRASS_SCRAPER_USERNAME": "op", "GRASS_SCRAPER_PASSWORD": "pw"},
        )
        assert full["scraper"] == {"enabled": True, "username": "op", "password": "pw"}

    def test_nothing_set(self) -> None:
        """No variables, no overrides."""
        assert network_env_overrides(ConnectorType.NOSANA, {}) == {}
