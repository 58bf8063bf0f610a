"""
Tests for the connector Prometheus exporter.

- No forbidden high-cardinality labels
- Every required metric name is exported
- Connectors feed the counters as they resolve reads
"""

from __future__ import annotations

import re
from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest
from prometheus_client import generate_latest
from prometheus_client.registry import CollectorRegistry

from depinconnect.connectors import ApiClient, IoNetConnector
from depinconnect.contracts import ConnectorConfig, RateLimitConfig
from depinconnect.errors import ApiError
from depinconnect.observability import (
    FORBIDDEN_LABELS,
    REQUIRED_METRIC_NAMES,
    ConnectorMetricsExporter,
)
from depinconnect.resilience import TokenBucketLimiter

NOW_MS = int(datetime(2025, 9, 24, 14, 0, tzinfo=UTC).timestamp() * 1000)


def clock() -> int:
    return NOW_MS


def _populate(exporter: ConnectorMetricsExporter) -> None:
    exporter.record_result("ionet", "live")
    exporter.record_result("grass", "simulated")
    exporter.record_cache_lookup("render", "hit")
    exporter.record_rate_limit_rejection("nosana")
    exporter.record_retry("ownai")
    exporter.set_tokens_remaining("natix", 12)
    exporter.set_registry_instances(2)


def _label_names(output: str) -> set[str]:
    found: set[str] = set()
    for match in re.finditer(r"\{([^}]+)\}", output):
        for pair in match.group(1).split(","):
            if "=" in pair:
                found.add(pair.split("=")[0].strip())
    return found


class TestNoForbiddenLabels:
    """Labels stay low-cardinality."""

    def test_exporter_has_no_forbidden_labels(self) -> None:
        """No node ids, URLs or keys appear as labels."""
        registry = CollectorRegistry()
        exporter = ConnectorMetricsExporter(registry=registry)
        _populate(exporter)

        output = generate_latest(registry).decode("utf-8")

        found = _label_names(output)
        assert found == {"connector", "tier", "outcome"}
        assert not found & FORBIDDEN_LABELS

    @pytest.mark.parametrize(
        ("method", "args"),
        [
            ("record_result", ("ionet", "cached")),
            ("record_result", ("filecoin", "live")),
            ("record_cache_lookup", ("ionet", "stale")),
            ("record_retry", ("https://api.io.net",)),
        ],
    )
    def test_unknown_label_values_rejected(self, method: str, args: tuple[str, ...]) -> None:
        """Label values are restricted to the closed sets."""
        exporter = ConnectorMetricsExporter(registry=CollectorRegistry())
        with pytest.raises(ValueError):
            getattr(exporter, method)(*args)


class TestMetricNames:
    """Exported names are stable."""

    def test_required_names_exported(self) -> None:
        """Every required metric name appears in the output."""
        registry = CollectorRegistry()
        _populate(ConnectorMetricsExporter(registry=registry))

        output = generate_latest(registry).decode("utf-8")

        for name in REQUIRED_METRIC_NAMES:
            assert re.search(rf"^{name}[{{ ]", output, re.MULTILINE), name

    def test_separate_registries(self) -> None:
        """Exporters on separate registries do not collide."""
        a = ConnectorMetricsExporter(registry=CollectorRegistry())
        b = ConnectorMetricsExporter(registry=CollectorRegistry())
        a.record_retry("ionet")
        assert b.registry.get_sample_value(
            "depin_retry_attempts_total", {"connector": "ionet"}
        ) is None


class TestConnectorFeed:
    """Connectors push events into the exporter."""

    @pytest.fixture
    def registry(self) -> CollectorRegistry:
        return CollectorRegistry()

    @pytest.fixture
    def exporter(self, registry: CollectorRegistry) -> ConnectorMetricsExporter:
        return ConnectorMetricsExporter(registry=registry)

    @pytest.mark.asyncio
    async def test_results_and_cache(
        self, registry: CollectorRegistry, exporter: ConnectorMetricsExporter
    ) -> None:
        """One miss then one hit; one simulated result."""
        connector = IoNetConnector(exporter=exporter, time_fn=clock)

        await connector.get_node_status("n1")
        await connector.get_node_status("n1")

        def sample(name: str, labels: dict[str, str]) -> float | None:
            return registry.get_sample_value(name, labels)

        results = {"connector": "ionet", "tier": "simulated"}
        assert sample("depin_connector_results_total", results) == 1
        hits = {"connector": "ionet", "outcome": "hit"}
        misses = {"connector": "ionet", "outcome": "miss"}
        assert sample("depin_cache_lookups_total", hits) == 1
        assert sample("depin_cache_lookups_total", misses) == 1

    @pytest.mark.asyncio
    async def test_retries_and_rejections(
        self, registry: CollectorRegistry, exporter: ConnectorMetricsExporter
    ) -> None:
        """Retries and local rejections are counted separately."""
        api = MagicMock(spec=ApiClient)
        api.get = AsyncMock(side_effect=ApiError("unavailable", status=503))
        api.close = AsyncMock()
        limiter = TokenBucketLimiter(
            RateLimitConfig(requests=2, window_ms=60_000, max_queue_depth=0), _time_fn=clock
        )
        connector = IoNetConnector(
            ConnectorConfig(
                api_key="k", retry_attempts=2, retry_delay_ms=0, cache={"enabled": False}
            ),
            exporter=exporter,
            api_client=api,
            limiter=limiter,
            time_fn=clock,
        )

        await connector.get_node_status("n1")  # credential check + this call drain the bucket
        await connector.get_node_status("n1")

        labels = {"connector": "ionet"}
        # two failed credential attempts and two failed status attempts are retried
        assert registry.get_sample_value("depin_retry_attempts_total", labels) == 4
        assert registry.get_sample_value("depin_ratelimit_rejections_total", labels) == 1
        assert registry.get_sample_value("depin_ratelimit_tokens_remaining", labels) == 0
