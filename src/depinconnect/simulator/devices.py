"""
Device-level simulated data.

Every generator is a pure function of its arguments: the device id seeds all
draws, and "now" is passed in rather than read from the clock. Index offsets
keep the individual fields uncorrelated with each other.
"""

from __future__ import annotations

import math
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

from depinconnect.contracts import (
    ConnectorType,
    DeviceMetricsSample,
    DeviceOccupancy,
    DeviceStatus,
    PricingImpact,
    PricingSuggestion,
)
from depinconnect.simulator.seeded import (
    round_half_up,
    seeded_choice,
    seeded_int,
    seeded_random,
    seeded_random_boolean,
    seeded_random_in_range,
)

# Fixed reference time for last_seen so status never drifts between runs.
STATUS_BASE_TIME = datetime(2025, 9, 24, 14, 0, 0, tzinfo=UTC)

MAX_METRIC_POINTS = 20
MAX_METRIC_INTERVAL_MS = 300_000

CustomMetricsFn = Callable[[str, int], dict[str, Any]]


def generate_mock_device_status(external_id: str) -> DeviceStatus:
    """Online with probability 0.85; version reported for roughly 30% of devices."""
    online = seeded_random_boolean(external_id, 0.85, 0)
    offset_ms = seeded_random_in_range(external_id, 0, 3_600_000, 1)
    version = None
    if seeded_random(external_id, 100) > 0.7:
        major = math.floor(seeded_random_in_range(external_id, 1, 5, 2))
        minor = math.floor(seeded_random_in_range(external_id, 0, 10, 3))
        version = f"v{major}.{minor}"
    return DeviceStatus(
        online=online,
        last_seen=STATUS_BASE_TIME - timedelta(milliseconds=offset_ms),
        version=version,
    )


def generate_mock_metrics(
    external_id: str,
    since: datetime,
    now: datetime,
    custom_metrics: CustomMetricsFn | None = None,
) -> list[DeviceMetricsSample]:
    """
    Evenly spaced samples from ``since`` toward ``now``.

    The interval is ``min(5 minutes, span / 20)``, so there are at most 20
    points and none at or after ``now``. Empty when ``since >= now``.
    """
    span_ms = (now - since).total_seconds() * 1000
    if span_ms <= 0:
        return []
    interval_ms = min(MAX_METRIC_INTERVAL_MS, span_ms / MAX_METRIC_POINTS)

    samples: list[DeviceMetricsSample] = []
    for i in range(MAX_METRIC_POINTS):
        timestamp = since + timedelta(milliseconds=i * interval_ms)
        if timestamp >= now:
            break
        base_cpu = seeded_random_in_range(external_id, 10, 80, i)
        base_memory = seeded_random_in_range(external_id, 20, 70, i + 100)
        samples.append(
            DeviceMetricsSample(
                timestamp=timestamp,
                cpu_usage=min(
                    100.0, base_cpu + seeded_random_in_range(external_id, -10, 10, i + 200)
                ),
                memory_usage=min(
                    100.0, base_memory + seeded_random_in_range(external_id, -5, 15, i + 300)
                ),
                disk_usage=seeded_random_in_range(external_id, 40, 95, i + 400),
                network_in=seeded_random_in_range(external_id, 0, 1000, i + 500),
                network_out=seeded_random_in_range(external_id, 0, 500, i + 600),
                custom_metrics=custom_metrics(external_id, i) if custom_metrics else {},
            )
        )
    return samples


def generate_mock_occupancy(
    external_id: str, period_start: datetime, period_end: datetime
) -> DeviceOccupancy:
    """Occupancy at a per-device base utilization in [30%, 90%]."""
    if period_end < period_start:
        raise ValueError("period_end precedes period_start")
    total_hours = (period_end - period_start).total_seconds() / 3600
    utilization = seeded_random_in_range(external_id, 0.3, 0.9, 1000)
    return DeviceOccupancy(
        period_start=period_start,
        period_end=period_end,
        occupied_hours=round_half_up(total_hours * utilization),
        total_hours=round_half_up(total_hours),
        utilization_rate=round_half_up(utilization * 100),
    )


def normalize_utilization(target: float) -> float:
    """Accept 0..1 fractions or 1..100 percentages; return a fraction."""
    if target < 0 or target > 100:
        raise ValueError(f"target utilization out of range: {target}")
    return target / 100 if target > 1 else target


def generate_mock_pricing_suggestion(
    external_id: str, target_utilization: float, network_name: str
) -> PricingSuggestion:
    """Raise the price 10% when the target is above current utilization, else cut 10%."""
    target = normalize_utilization(target_utilization)
    current_price = seeded_random_in_range(external_id, 0.1, 2.0, 2000)
    current_utilization = seeded_random_in_range(external_id, 0.2, 0.8, 2001)

    factor = 1.1 if target > current_utilization else 0.9
    suggested_price = round_half_up(current_price * factor)

    utilization_change = (target - current_utilization) * 100
    revenue_change = (suggested_price / current_price - 1) * 100
    direction = "increasing" if utilization_change > 0 else "decreasing"
    target_pct = math.floor(target * 100 + 0.5)

    return PricingSuggestion(
        current_price=current_price,
        suggested_price=suggested_price,
        reasoning=(
            f"Based on {network_name} market analysis, {direction} price "
            f"to achieve target utilization of {target_pct}%"
        ),
        estimated_impact=PricingImpact(
            utilization_change_pct=round_half_up(utilization_change),
            revenue_change_pct=round_half_up(revenue_change),
        ),
    )


def mock_apply_pricing(external_id: str, price_per_hour: float, dry_run: bool) -> bool:
    """Dry runs always succeed; real applies succeed for about 95% of devices."""
    if price_per_hour < 0:
        raise ValueError("price_per_hour must be >= 0")
    if dry_run:
        return True
    return seeded_random_boolean(external_id, 0.95, 3000)


# === Network-specific custom metrics ===


def _gpu_metrics(external_id: str, i: int) -> dict[str, Any]:
    return {
        "gpu_utilization": seeded_random_in_range(external_id, 20, 100, i + 4000),
        "gpu_memory_used_gb": seeded_random_in_range(external_id, 2, 80, i + 4001),
        "gpu_temperature_c": seeded_random_in_range(external_id, 40, 85, i + 4002),
        "power_draw_w": seeded_random_in_range(external_id, 100, 450, i + 4003),
        "jobs_completed": seeded_int(external_id, 0, 25, i + 4004),
    }


def _nosana_metrics(external_id: str, i: int) -> dict[str, Any]:
    return {
        "cpu_cores": seeded_int(external_id, 4, 32, i + 2000),
        "cpu_frequency_ghz": seeded_random_in_range(external_id, 2.0, 4.5, i + 2001),
        "cpu_temperature_c": seeded_random_in_range(external_id, 35, 75, i + 2002),
        "inference_jobs_completed": seeded_int(external_id, 10, 100, i + 2003),
        "avg_inference_ms": seeded_random_in_range(external_id, 50, 500, i + 2004),
        "models_loaded": seeded_int(external_id, 1, 8, i + 2005),
        "nos_earned": seeded_random_in_range(external_id, 0.5, 10.0, i + 2006),
        "stake_amount": seeded_random_in_range(external_id, 100, 5000, i + 2007),
        "reputation_score": seeded_random_in_range(external_id, 0.7, 1.0, i + 2008),
        "queue_wait_s": seeded_random_in_range(external_id, 1, 30, i + 2010),
        "container_count": seeded_int(external_id, 1, 12, i + 2012),
    }


def _natix_metrics(external_id: str, i: int) -> dict[str, Any]:
    return {
        "distance_driven_km": seeded_random_in_range(external_id, 10, 500, i + 5000),
        "trips_completed": seeded_int(external_id, 5, 50, i + 5001),
        "photos_collected": seeded_int(external_id, 100, 2000, i + 5004),
        "gps_points_collected": seeded_int(external_id, 1000, 20000, i + 5006),
        "map_data_uploaded_mb": seeded_random_in_range(external_id, 50, 2000, i + 5007),
        "natix_earned": seeded_random_in_range(external_id, 0.1, 20.0, i + 5011),
        "quality_score": seeded_random_in_range(external_id, 0.6, 1.0, i + 5012),
        "upload_success_rate": seeded_random_in_range(external_id, 0.85, 1.0, i + 5018),
        "weather": seeded_choice(external_id, ("clear", "cloudy", "rain", "fog"), i + 5021),
        "road_type": seeded_choice(external_id, ("highway", "urban", "rural"), i + 5022),
    }


def _grass_metrics(external_id: str, i: int) -> dict[str, Any]:
    return {
        "bandwidth_shared_mb": seeded_random_in_range(external_id, 100, 5000, i + 7000),
        "requests_served": seeded_int(external_id, 100, 10000, i + 7001),
        "connection_quality": seeded_random_in_range(external_id, 0.5, 1.0, i + 7002),
        "grass_points": seeded_random_in_range(external_id, 10, 500, i + 7003),
        "ip_reputation": seeded_random_in_range(external_id, 0.6, 1.0, i + 7004),
    }


def _huddle01_metrics(external_id: str, i: int) -> dict[str, Any]:
    return {
        "sessions_hosted": seeded_int(external_id, 0, 40, i + 8000),
        "participants_served": seeded_int(external_id, 0, 400, i + 8001),
        "video_minutes": seeded_random_in_range(external_id, 0, 1200, i + 8002),
        "avg_bitrate_kbps": seeded_random_in_range(external_id, 500, 4000, i + 8003),
        "packet_loss_pct": seeded_random_in_range(external_id, 0, 3, i + 8004),
    }


def _ownai_metrics(external_id: str, i: int) -> dict[str, Any]:
    return {
        "inference_requests": seeded_int(external_id, 50, 5000, i + 9000),
        "tokens_generated": seeded_int(external_id, 1000, 500000, i + 9001),
        "avg_latency_ms": seeded_random_in_range(external_id, 20, 800, i + 9002),
        "models_served": seeded_int(external_id, 1, 6, i + 9003),
        "gpu_utilization": seeded_random_in_range(external_id, 10, 100, i + 9004),
    }


CUSTOM_METRICS: dict[ConnectorType, CustomMetricsFn] = {
    ConnectorType.IONET: _gpu_metrics,
    ConnectorType.RENDER: _gpu_metrics,
    ConnectorType.NOSANA: _nosana_metrics,
    ConnectorType.NATIX: _natix_metrics,
    ConnectorType.GRASS: _grass_metrics,
    ConnectorType.HUDDLE01: _huddle01_metrics,
    ConnectorType.OWNAI: _ownai_metrics,
}
