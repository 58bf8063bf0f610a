"""Network connectors built on the shared fallback chain."""

from depinconnect.connectors.base import BaseConnector
from depinconnect.connectors.http import ApiClient
from depinconnect.connectors.networks import (
    CONNECTOR_CLASSES,
    GrassConnector,
    Huddle01Connector,
    IoNetConnector,
    NatixConnector,
    NosanaConnector,
    OwnAIConnector,
    RenderConnector,
)
from depinconnect.connectors.profile import Endpoints, NetworkProfile

__all__ = [
    "CONNECTOR_CLASSES",
    "ApiClient",
    "BaseConnector",
    "Endpoints",
    "GrassConnector",
    "Huddle01Connector",
    "IoNetConnector",
    "NatixConnector",
    "NetworkProfile",
    "NosanaConnector",
    "OwnAIConnector",
    "RenderConnector",
]
