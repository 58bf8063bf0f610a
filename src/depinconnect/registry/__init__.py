"""Connector registry and configuration validation."""

from depinconnect.registry.connector_registry import (
    ConnectorFactory,
    ConnectorRegistry,
    ConnectorSpec,
    DisposeFailure,
    builtin_specs,
)
from depinconnect.registry.validation import validate_connector_config

__all__ = [
    "ConnectorFactory",
    "ConnectorRegistry",
    "ConnectorSpec",
    "DisposeFailure",
    "builtin_specs",
    "validate_connector_config",
]
