"""
Per-network adapters.

Most networks differ only in data: endpoints, dashboard selectors, currency
and which optional APIs exist. Those live in the profiles below. Adapters
override mapping hooks only where a network's payload shape differs.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from depinconnect.connectors import mapping
from depinconnect.connectors.base import BaseConnector
from depinconnect.connectors.profile import Endpoints, NetworkProfile
from depinconnect.contracts import ConnectorType

if TYPE_CHECKING:
    from datetime import datetime

    from depinconnect.contracts import Earnings, NodeStatus, Period

# Grass reports earnings in points; tokens per point.
GRASS_POINTS_RATE = 0.001

_GPU_PRICING_WRITE = "/api/v1/devices/{id}/pricing"

IONET_PROFILE = NetworkProfile(
    type=ConnectorType.IONET,
    display_name="IO.NET",
    description="Decentralized GPU cloud for AI/ML compute",
    category="gpu",
    currency="IO",
    default_base_url="https://api.io.net",
    dashboard_url="https://cloud.io.net/dashboard",
    login_url="https://cloud.io.net/login",
    endpoints=Endpoints(pricing_write=_GPU_PRICING_WRITE),
    selectors={
        "node_status": ".node-status-card",
        "total_earnings": ".total-earnings .amount",
        "active_nodes": ".active-nodes-count",
        "utilization": ".gpu-utilization",
    },
    required_selectors=("total_earnings",),
    permissions=("read_nodes", "read_earnings", "read_metrics", "write_pricing"),
)

NOSANA_PROFILE = NetworkProfile(
    type=ConnectorType.NOSANA,
    display_name="Nosana",
    description="Decentralized CPU/GPU compute for AI inference",
    category="cpu",
    currency="NOS",
    default_base_url="https://explorer.nosana.io",
    dashboard_url="https://dashboard.nosana.com",
    requires_api_key=False,
    endpoints=Endpoints(pricing=None, pricing_suggestion=None),
    limitations=("No pricing API",),
)

RENDER_PROFILE = NetworkProfile(
    type=ConnectorType.RENDER,
    display_name="Render Network",
    description="Distributed GPU rendering",
    category="gpu",
    currency="RNDR",
    default_base_url="https://api.rendertoken.com",
    dashboard_url="https://rendernetwork.com/dashboard",
    login_url="https://rendernetwork.com/login",
    endpoints=Endpoints(pricing_write=_GPU_PRICING_WRITE),
    selectors={
        "node_status": ".node-stats",
        "total_earnings": ".total-rndr",
        "jobs": ".completed-jobs",
        "utilization": ".gpu-specs",
    },
    required_selectors=("total_earnings",),
    permissions=("read_nodes", "read_earnings", "read_metrics", "write_pricing"),
)

GRASS_PROFILE = NetworkProfile(
    type=ConnectorType.GRASS,
    display_name="Grass",
    description="Bandwidth sharing network",
    category="bandwidth",
    currency="GRASS",
    default_base_url="https://api.grass.io",
    dashboard_url="https://app.getgrass.io/dashboard",
    login_url="https://app.getgrass.io/login",
    endpoints=Endpoints(
        nodes="/api/v1/devices",
        metrics="/api/v1/bandwidth-stats",
        auth="/api/v1/user",
        device_metrics="/api/v1/devices/{id}/metrics",
        occupancy="/api/v1/devices/{id}/occupancy",
        pricing=None,
        pricing_suggestion=None,
    ),
    selectors={
        "total_earnings": ".earnings-display",
        "node_status": ".device-list",
        "utilization": ".bandwidth-stats",
    },
    required_selectors=("total_earnings",),
    permissions=("read_devices", "read_earnings", "read_bandwidth"),
    limitations=("Earnings reported in points", "No pricing API"),
)

NATIX_PROFILE = NetworkProfile(
    type=ConnectorType.NATIX,
    display_name="Natix",
    description="Crowd-sourced mapping and camera data",
    category="mapping",
    currency="NATIX",
    default_base_url="https://api.natix.network",
    dashboard_url="https://app.natix.network",
    endpoints=Endpoints(pricing=None, pricing_suggestion=None),
    limitations=("No pricing API",),
)

HUDDLE01_PROFILE = NetworkProfile(
    type=ConnectorType.HUDDLE01,
    display_name="Huddle01",
    description="Decentralized real-time video infrastructure",
    category="video",
    currency="HUD01",
    default_base_url="https://api.huddle01.com",
    dashboard_url="https://dashboard.huddle01.com",
    login_url="https://dashboard.huddle01.com/login",
    endpoints=Endpoints(earnings="/api/v1/rewards", pricing=None, pricing_suggestion=None),
    selectors={
        "node_status": ".node-statistics",
        "total_earnings": ".huddle-rewards",
        "utilization": ".bandwidth-usage",
    },
    required_selectors=("total_earnings",),
    permissions=("read_nodes", "read_rewards", "read_sessions"),
    limitations=("No pricing API",),
)

OWNAI_PROFILE = NetworkProfile(
    type=ConnectorType.OWNAI,
    display_name="OwnAI",
    description="Decentralized AI model hosting and inference",
    category="ai",
    currency="OWN",
    default_base_url="https://api.ownai.network",
    dashboard_url="https://app.ownai.network/dashboard",
    login_url="https://app.ownai.network/login",
    selectors={
        "node_status": ".compute-node-status",
        "total_earnings": ".earnings-dashboard",
        "jobs": ".job-statistics",
    },
    required_selectors=("total_earnings",),
    permissions=("read_nodes", "read_earnings", "read_metrics", "read_pricing"),
)


class IoNetConnector(BaseConnector):
    profile = IONET_PROFILE


class NosanaConnector(BaseConnector):
    profile = NOSANA_PROFILE


class RenderConnector(BaseConnector):
    profile = RENDER_PROFILE


class GrassConnector(BaseConnector):
    """Devices instead of nodes; earnings in points."""

    profile = GRASS_PROFILE

    def map_node_list(self, payload: Any, now: datetime) -> list[NodeStatus]:
        items = mapping.unwrap_list(payload, "devices", "nodes")
        return [self.map_node_status(item, now) for item in items]

    def map_earnings(self, payload: Any, period: Period, now: datetime) -> Earnings:
        return mapping.map_points_earnings(
            payload,
            period=period,
            currency=self.profile.currency,
            weights=self.earnings_weights,
            now=now,
            points_rate=GRASS_POINTS_RATE,
        )


class NatixConnector(BaseConnector):
    profile = NATIX_PROFILE


class Huddle01Connector(BaseConnector):
    """Earnings arrive as a list of per-session reward payouts."""

    profile = HUDDLE01_PROFILE

    def map_earnings(self, payload: Any, period: Period, now: datetime) -> Earnings:
        return mapping.map_reward_list_earnings(
            payload,
            period=period,
            currency=self.profile.currency,
            weights=self.earnings_weights,
            now=now,
        )


class OwnAIConnector(BaseConnector):
    profile = OWNAI_PROFILE


CONNECTOR_CLASSES: dict[ConnectorType, type[BaseConnector]] = {
    cls.profile.type: cls
    for cls in (
        IoNetConnector,
        NosanaConnector,
        RenderConnector,
        GrassConnector,
        NatixConnector,
        Huddle01Connector,
        OwnAIConnector,
    )
}
