"""Prometheus metrics for connectors and the registry."""

from depinconnect.observability.exporter import (
    FORBIDDEN_LABELS,
    REQUIRED_METRIC_NAMES,
    ConnectorMetricsExporter,
)
from depinconnect.observability.metrics_server import (
    collect_connector_health,
    create_metrics_app,
    registry_health_fn,
    start_metrics_server,
    stop_metrics_server,
)

__all__ = [
    "FORBIDDEN_LABELS",
    "REQUIRED_METRIC_NAMES",
    "ConnectorMetricsExporter",
    "collect_connector_health",
    "create_metrics_app",
    "registry_health_fn",
    "start_metrics_server",
    "stop_metrics_server",
]
