"""Deterministic simulator: the last tier of the fallback chain. Never raises for valid input."""

from depinconnect.simulator.devices import (
    CUSTOM_METRICS,
    STATUS_BASE_TIME,
    generate_mock_device_status,
    generate_mock_metrics,
    generate_mock_occupancy,
    generate_mock_pricing_suggestion,
    mock_apply_pricing,
    normalize_utilization,
)
from depinconnect.simulator.nodes import (
    EARNINGS_WEIGHTS,
    GPU_NETWORKS,
    generate_earnings,
    generate_node_ids,
    generate_node_metrics,
    generate_node_specs,
    generate_node_status,
    generate_pricing_strategy,
)
from depinconnect.simulator.seeded import (
    round_half_up,
    seeded_choice,
    seeded_random,
    seeded_random_boolean,
    seeded_random_in_range,
    string_hash,
    to_base36,
)

__all__ = [
    "CUSTOM_METRICS",
    "EARNINGS_WEIGHTS",
    "GPU_NETWORKS",
    "STATUS_BASE_TIME",
    "generate_earnings",
    "generate_mock_device_status",
    "generate_mock_metrics",
    "generate_mock_occupancy",
    "generate_mock_pricing_suggestion",
    "generate_node_ids",
    "generate_node_metrics",
    "generate_node_specs",
    "generate_node_status",
    "generate_pricing_strategy",
    "mock_apply_pricing",
    "normalize_utilization",
    "round_half_up",
    "seeded_choice",
    "seeded_random",
    "seeded_random_boolean",
    "seeded_random_in_range",
    "string_hash",
    "to_base36",
]
