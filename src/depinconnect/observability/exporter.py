"""
Prometheus metrics exporter for connectors.

Labels are low-cardinality only: ``connector`` (seven values), ``tier``
(live/scraped/simulated) and ``outcome`` (hit/miss). Node ids, device ids,
URLs and selectors never appear as labels.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from prometheus_client import Counter, Gauge
from prometheus_client.registry import CollectorRegistry

from depinconnect.contracts import ConnectorType, Provenance

if TYPE_CHECKING:
    from depinconnect.registry import ConnectorRegistry

# Labels that would cause cardinality explosion
FORBIDDEN_LABELS = frozenset(
    {
        "node_id",
        "device_id",
        "external_id",
        "url",
        "endpoint",
        "selector",
        "path",
        "api_key",
    }
)

_CONNECTORS = frozenset(t.value for t in ConnectorType)
_TIERS = frozenset(p.value for p in Provenance)
_CACHE_OUTCOMES = frozenset({"hit", "miss", "coalesced"})


class ConnectorMetricsExporter:
    """
    Counters and gauges fed by connectors and the registry.

    Connectors push events as they happen (results, cache lookups, retries,
    rate-limit rejections); the registry sets the instance gauge.

    Usage:
        registry = CollectorRegistry()
        exporter = ConnectorMetricsExporter(registry=registry)
        connector = IoNetConnector(config, exporter=exporter)
        # generate_latest(registry) -> bytes for /metrics endpoint
    """

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self._registry = registry or CollectorRegistry()

        self._results = Counter(
            "depin_connector_results",
            "Results returned by connectors, by fallback tier",
            ["connector", "tier"],
            registry=self._registry,
        )
        self._cache_lookups = Counter(
            "depin_cache_lookups",
            "Connector cache lookups by outcome",
            ["connector", "outcome"],
            registry=self._registry,
        )
        self._ratelimit_rejections = Counter(
            "depin_ratelimit_rejections",
            "Calls rejected by the local token bucket (queue full or wait timeout)",
            ["connector"],
            registry=self._registry,
        )
        self._retry_attempts = Counter(
            "depin_retry_attempts",
            "Live API retries after a transient failure",
            ["connector"],
            registry=self._registry,
        )
        self._registry_instances = Gauge(
            "depin_registry_instances",
            "Connector instances held by the registry",
            registry=self._registry,
        )
        self._tokens_remaining = Gauge(
            "depin_ratelimit_tokens_remaining",
            "Whole tokens left in the connector's bucket after the last acquire",
            ["connector"],
            registry=self._registry,
        )

    @property
    def registry(self) -> CollectorRegistry:
        """Get the Prometheus CollectorRegistry."""
        return self._registry

    @staticmethod
    def _check(value: str, allowed: frozenset[str], label: str) -> str:
        if value not in allowed:
            raise ValueError(f"unknown {label} label value: {value!r}")
        return value

    def record_result(self, connector: str, tier: str) -> None:
        self._results.labels(
            connector=self._check(connector, _CONNECTORS, "connector"),
            tier=self._check(tier, _TIERS, "tier"),
        ).inc()

    def record_cache_lookup(self, connector: str, outcome: str) -> None:
        self._cache_lookups.labels(
            connector=self._check(connector, _CONNECTORS, "connector"),
            outcome=self._check(outcome, _CACHE_OUTCOMES, "outcome"),
        ).inc()

    def record_rate_limit_rejection(self, connector: str) -> None:
        self._ratelimit_rejections.labels(
            connector=self._check(connector, _CONNECTORS, "connector")
        ).inc()

    def record_retry(self, connector: str) -> None:
        label = self._check(connector, _CONNECTORS, "connector")
        self._retry_attempts.labels(connector=label).inc()

    def set_tokens_remaining(self, connector: str, remaining: int) -> None:
        self._tokens_remaining.labels(
            connector=self._check(connector, _CONNECTORS, "connector")
        ).set(remaining)

    def set_registry_instances(self, count: int) -> None:
        self._registry_instances.set(count)

    def update_from_registry(self, connector_registry: ConnectorRegistry) -> None:
        """Sync gauges from a registry snapshot (call on each scrape or on a timer)."""
        self.set_registry_instances(connector_registry.get_stats()["total_instances"])


# Counters are exported with the _total suffix by prometheus_client
REQUIRED_METRIC_NAMES: frozenset[str] = frozenset(
    {
        "depin_connector_results_total",
        "depin_cache_lookups_total",
        "depin_ratelimit_rejections_total",
        "depin_retry_attempts_total",
        "depin_registry_instances",
        "depin_ratelimit_tokens_remaining",
    }
)
