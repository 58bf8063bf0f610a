"""Static per-network description consumed by BaseConnector."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

from depinconnect.contracts import ConnectorInfo, ConnectorType

Category = Literal["gpu", "cpu", "bandwidth", "mapping", "video", "ai"]


@dataclass(frozen=True)
class Endpoints:
    """API paths relative to the base URL. ``{id}`` is substituted where present."""

    nodes: str = "/api/v1/nodes"
    earnings: str = "/api/v1/earnings"
    metrics: str = "/api/v1/metrics"
    pricing: str | None = "/api/v1/pricing"
    health: str = "/api/v1/health"
    auth: str = "/api/v1/auth/validate"
    device_metrics: str = "/api/v1/nodes/{id}/metrics"
    occupancy: str = "/api/v1/nodes/{id}/occupancy"
    pricing_suggestion: str | None = "/api/v1/pricing/suggest"
    pricing_write: str | None = None


@dataclass(frozen=True)
class NetworkProfile:
    """
    Everything network-specific that is data rather than behavior.

    ``selectors`` maps the standard dashboard fields (``node_status``,
    ``total_earnings``, ``utilization``, ``uptime``, ``jobs``) to CSS
    selectors; ``required_selectors`` must be present for a scrape to count.
    """

    type: ConnectorType
    display_name: str
    description: str
    category: Category
    currency: str
    default_base_url: str
    dashboard_url: str
    login_url: str | None = None
    requires_api_key: bool = True
    endpoints: Endpoints = field(default_factory=Endpoints)
    selectors: dict[str, str] = field(default_factory=dict)
    required_selectors: tuple[str, ...] = ()
    permissions: tuple[str, ...] = ("read_nodes", "read_earnings", "read_metrics")
    limitations: tuple[str, ...] = ()

    @property
    def supports_pricing_write(self) -> bool:
        return self.endpoints.pricing_write is not None

    @property
    def supports_scraping(self) -> bool:
        return bool(self.selectors)

    def info(self) -> ConnectorInfo:
        return ConnectorInfo(
            type=self.type,
            name=self.display_name,
            description=self.description,
            category=self.category,
            currency=self.currency,
            requires_api_key=self.requires_api_key,
            supports_scraping=self.supports_scraping,
            supports_pricing_write=self.supports_pricing_write,
        )
