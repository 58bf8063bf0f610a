"""
Mappers from network API payloads and scraped dashboard values to contracts.

API payloads are loosely typed: fields may be missing, null, strings holding
numbers, or timestamps as ISO strings or epoch values. Mappers default
missing numbers to 0 and never invent ids.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from depinconnect.contracts import (
    CpuSpec,
    DeviceMetricsSample,
    DeviceOccupancy,
    DeviceStatus,
    Earnings,
    EarningsBreakdown,
    EarningsRate,
    GpuSpec,
    MarketPrices,
    MemorySpec,
    NetworkStats,
    NodeHealth,
    NodeLocation,
    NodeMetrics,
    NodeSpecs,
    NodeStatus,
    OptimizationAdvice,
    PerformanceMetrics,
    PricingImpact,
    PricingStrategy,
    PricingSuggestion,
    RecommendedPrices,
    Reputation,
    ResourceUtilization,
    StorageSpec,
    Transaction,
)
from depinconnect.errors import ApiError
from depinconnect.scraper.parsing import parse_int, parse_number

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from depinconnect.contracts import Period

STATUS_ALIASES: dict[str, str] = {
    "active": "online",
    "running": "online",
    "online": "online",
    "healthy": "online",
    "maintenance": "maintenance",
    "updating": "maintenance",
    "error": "error",
    "failed": "error",
}

_TRANSACTION_TYPES = frozenset({"earnings", "penalty", "bonus", "staking_reward"})
_STORAGE_TYPES = frozenset({"SSD", "HDD", "NVMe"})


def _num(value: Any, default: float = 0.0) -> float:
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        return parse_number(value, default)
    return default


def _opt_num(value: Any) -> float | None:
    return None if value is None else _num(value)


def _dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _percent(value: Any) -> float:
    """Percent in [0, 100]; fractions in [0, 1] are scaled."""
    number = _num(value)
    if 0 < number <= 1:
        number *= 100
    return min(max(number, 0.0), 100.0)


def parse_timestamp(value: Any, default: datetime) -> datetime:
    """
    Parse ISO strings or epoch numbers into aware UTC datetimes.

    Epoch values above 1e12 are taken as milliseconds, otherwise seconds.
    """
    if value is None or value == "":
        return default
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=UTC)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        seconds = value / 1000 if value > 1e12 else value
        return datetime.fromtimestamp(seconds, tz=UTC)
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return default
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)
    return default


def map_status(raw: Any, aliases: Mapping[str, str] | None = None) -> str:
    """Unknown or missing statuses map to "offline"."""
    table = aliases or STATUS_ALIASES
    if not isinstance(raw, str):
        return "offline"
    return table.get(raw.strip().lower(), "offline")


def unwrap_list(payload: Any, *keys: str) -> list[dict[str, Any]]:
    """Return the list under the first matching key, or the payload itself if it is a list."""
    if isinstance(payload, list):
        return [item for item in payload if isinstance(item, dict)]
    if isinstance(payload, dict):
        for key in keys:
            items = payload.get(key)
            if isinstance(items, list):
                return [item for item in items if isinstance(item, dict)]
        return []
    raise ApiError(
        f"Unexpected payload type {type(payload).__name__}",
        code="INVALID_RESPONSE",
        retryable=False,
    )


def _require_dict(payload: Any, what: str) -> dict[str, Any]:
    if not isinstance(payload, dict):
        raise ApiError(
            f"Expected an object for {what}, got {type(payload).__name__}",
            code="INVALID_RESPONSE",
            retryable=False,
        )
    return payload


# === Node-level ===


def _map_specs(raw: Any) -> NodeSpecs | None:
    specs = _dict(raw)
    if not specs:
        return None
    gpu_raw = _dict(specs.get("gpu"))
    storage_type = specs.get("storage_type", "SSD")
    return NodeSpecs(
        cpu=CpuSpec(
            cores=int(_num(specs.get("cpu_cores"))),
            model=str(specs.get("cpu_model") or "Unknown"),
            frequency_ghz=_num(specs.get("cpu_frequency")),
        ),
        memory=MemorySpec(
            total_gb=_num(specs.get("memory_total")),
            available_gb=_num(specs.get("memory_available")),
        ),
        storage=StorageSpec(
            total_gb=_num(specs.get("storage_total")),
            available_gb=_num(specs.get("storage_available")),
            type=storage_type if storage_type in _STORAGE_TYPES else "SSD",
        ),
        gpu=(
            GpuSpec(
                model=str(gpu_raw.get("model") or "Unknown"),
                memory_gb=_num(gpu_raw.get("memory")),
                compute_tflops=_num(gpu_raw.get("compute_power")),
            )
            if gpu_raw
            else None
        ),
    )


def map_node_status(
    payload: Any,
    *,
    display_name: str,
    now: datetime,
    aliases: Mapping[str, str] | None = None,
) -> NodeStatus:
    raw = _require_dict(payload, "node status")
    node_id = raw.get("node_id") or raw.get("id") or raw.get("address")
    if not node_id:
        raise ApiError("Node payload has no id", code="INVALID_RESPONSE", retryable=False)
    node_id = str(node_id)
    location = _dict(raw.get("location"))
    return NodeStatus(
        id=node_id,
        name=str(raw.get("name") or f"{display_name} Node {node_id}"),
        status=map_status(raw.get("status"), aliases),
        uptime_seconds=max(0.0, _num(raw.get("uptime_seconds"))),
        last_seen=parse_timestamp(raw.get("last_seen"), now),
        health=NodeHealth(
            cpu=max(0.0, _num(raw.get("cpu_usage"))),
            memory=max(0.0, _num(raw.get("memory_usage"))),
            storage=max(0.0, _num(raw.get("storage_usage"))),
            network=max(0.0, _num(raw.get("network_speed"))),
        ),
        location=(
            NodeLocation(
                country=str(location.get("country") or "Unknown"),
                region=str(location.get("region") or "Unknown"),
                latitude=_opt_num(location.get("lat")),
                longitude=_opt_num(location.get("lng")),
            )
            if location
            else None
        ),
        version=raw.get("version"),
        specs=_map_specs(raw.get("specs")),
    )


def map_transactions(
    items: Any,
    *,
    now: datetime,
    amount_fn: Callable[[dict[str, Any]], float] | None = None,
    description_fn: Callable[[dict[str, Any]], str] | None = None,
) -> list[Transaction]:
    transactions = []
    for n, item in enumerate(unwrap_list(items or [])):
        tx_type = item.get("type")
        transactions.append(
            Transaction(
                id=str(item.get("id") or f"tx-{n}"),
                timestamp=parse_timestamp(item.get("timestamp"), now),
                amount=amount_fn(item) if amount_fn else _num(item.get("amount")),
                type=tx_type if tx_type in _TRANSACTION_TYPES else "earnings",
                description=(
                    description_fn(item) if description_fn else str(item.get("description") or "")
                ),
                tx_hash=item.get("tx_hash") or item.get("transaction_hash"),
            )
        )
    return transactions


def split_by_weights(total: float, weights: Mapping[str, float]) -> EarningsBreakdown:
    return EarningsBreakdown(**{stream: total * share for stream, share in weights.items()})


def _earnings(
    period: Period,
    currency: str,
    breakdown: EarningsBreakdown,
    transactions: list[Transaction],
    raw: dict[str, Any],
) -> Earnings:
    total = breakdown.total()
    days = period.days
    monthly = raw.get("projected_monthly")
    yearly = raw.get("projected_yearly")
    return Earnings(
        period=period,
        total=total,
        currency=currency,
        breakdown=breakdown,
        transactions=transactions,
        projected_monthly=_num(monthly) if monthly is not None else total * 30 / days,
        projected_yearly=_num(yearly) if yearly is not None else total * 365 / days,
    )


def map_earnings(
    payload: Any,
    *,
    period: Period,
    currency: str,
    weights: Mapping[str, float],
    now: datetime,
) -> Earnings:
    """
    Map a breakdown-style earnings payload.

    When the payload carries no per-stream fields, ``total_earnings`` is
    split by ``weights``. The reported total is always the breakdown sum.
    """
    raw = _require_dict(payload, "earnings")
    streams = {
        "compute": raw.get("compute_earnings"),
        "storage": raw.get("storage_earnings"),
        "bandwidth": raw.get("bandwidth_earnings"),
        "staking": raw.get("staking_rewards", raw.get("staking_earnings")),
        "rewards": raw.get("rewards"),
    }
    present = {k: _num(v) for k, v in streams.items() if v is not None and not isinstance(v, list)}
    if present:
        breakdown = EarningsBreakdown(**present)
    else:
        breakdown = split_by_weights(_num(raw.get("total_earnings")), weights)
    transactions = map_transactions(raw.get("transactions"), now=now)
    return _earnings(period, currency, breakdown, transactions, raw)


def map_reward_list_earnings(
    payload: Any,
    *,
    period: Period,
    currency: str,
    weights: Mapping[str, float],
    now: datetime,
) -> Earnings:
    """Earnings reported as a list of reward payouts; the total is their sum."""
    raw = _require_dict(payload, "rewards")
    rewards = unwrap_list(raw, "rewards")
    total = sum(_num(r.get("amount")) for r in rewards)
    transactions = map_transactions(
        rewards,
        now=now,
        description_fn=lambda r: f"Video session hosting: {_num(r.get('session_duration')):g}min",
    )
    return _earnings(period, currency, split_by_weights(total, weights), transactions, raw)


def map_points_earnings(
    payload: Any,
    *,
    period: Period,
    currency: str,
    weights: Mapping[str, float],
    now: datetime,
    points_rate: float,
) -> Earnings:
    """Earnings reported in network points, converted at ``points_rate`` tokens per point."""
    raw = _require_dict(payload, "earnings")
    value = _num(raw.get("total_points")) * points_rate
    transactions = map_transactions(
        raw.get("earnings"),
        now=now,
        amount_fn=lambda e: _num(e.get("points")) * points_rate,
        description_fn=lambda e: f"Bandwidth sharing: {_num(e.get('bandwidth_gb')):g}GB",
    )
    return _earnings(period, currency, split_by_weights(value, weights), transactions, raw)


def map_metrics(payload: Any) -> NodeMetrics:
    raw = _require_dict(payload, "metrics")
    earnings = _dict(raw.get("earnings"))
    network = _dict(raw.get("network"))
    reputation = _dict(raw.get("reputation"))
    return NodeMetrics(
        performance=PerformanceMetrics(
            tasks_completed=max(0, int(_num(raw.get("tasks_completed")))),
            tasks_active=max(0, int(_num(raw.get("tasks_active")))),
            tasks_failed=max(0, int(_num(raw.get("tasks_failed")))),
            avg_duration_sec=max(0.0, _num(raw.get("avg_task_duration"))),
            success_rate_pct=_percent(raw.get("success_rate")),
        ),
        resource_utilization=ResourceUtilization(
            cpu=_num(raw.get("cpu_utilization")),
            memory=_num(raw.get("memory_utilization")),
            storage=_num(raw.get("storage_utilization")),
            bandwidth=_num(raw.get("bandwidth_utilization")),
            gpu=_opt_num(raw.get("gpu_utilization")),
        ),
        earnings=EarningsRate(
            hourly=_num(earnings.get("hourly")),
            daily=_num(earnings.get("daily")),
            weekly=_num(earnings.get("weekly")),
            monthly=_num(earnings.get("monthly")),
        ),
        network=NetworkStats(
            latency=_num(network.get("latency")),
            throughput=_num(network.get("throughput")),
            uptime_pct=_percent(network.get("uptime")),
        ),
        reputation=(
            Reputation(
                score=_num(reputation.get("score")),
                rank=int(_num(reputation.get("rank"))),
                total_nodes=int(_num(reputation.get("total_nodes"))),
            )
            if reputation
            else None
        ),
    )


def map_pricing_strategy(payload: Any) -> PricingStrategy:
    raw = _require_dict(payload, "pricing strategy")
    recommended = _dict(raw.get("recommended"))
    market = _dict(raw.get("market"))
    optimization = _dict(raw.get("optimization"))
    confidence = _num(optimization.get("confidence"))
    return PricingStrategy(
        recommended=RecommendedPrices(
            cpu=_num(recommended.get("cpu_price")),
            memory=_num(recommended.get("memory_price")),
            storage=_num(recommended.get("storage_price")),
            bandwidth=_num(recommended.get("bandwidth_price")),
            gpu=_opt_num(recommended.get("gpu_price")),
        ),
        market=MarketPrices(
            average=_num(market.get("average")),
            minimum=_num(market.get("minimum")),
            maximum=_num(market.get("maximum")),
        ),
        optimization=OptimizationAdvice(
            suggestion=str(optimization.get("suggestion") or "No optimization available"),
            expected_increase_pct=_num(optimization.get("expected_increase")),
            confidence_score=min(max(confidence, 0.0), 1.0),
        ),
    )


# === Device-level ===


def map_device_status(
    payload: Any, *, now: datetime, aliases: Mapping[str, str] | None = None
) -> DeviceStatus:
    raw = _require_dict(payload, "device status")
    if isinstance(raw.get("online"), bool):
        online = raw["online"]
    else:
        online = map_status(raw.get("status"), aliases) == "online"
    return DeviceStatus(
        online=online,
        last_seen=parse_timestamp(raw.get("last_seen"), now),
        version=raw.get("version"),
    )


def map_device_metrics(payload: Any, *, now: datetime) -> list[DeviceMetricsSample]:
    samples = []
    for item in unwrap_list(payload, "samples", "metrics"):
        samples.append(
            DeviceMetricsSample(
                timestamp=parse_timestamp(item.get("timestamp"), now),
                cpu_usage=_num(item.get("cpu_usage")),
                memory_usage=_num(item.get("memory_usage")),
                disk_usage=_num(item.get("disk_usage")),
                network_in=_num(item.get("network_in")),
                network_out=_num(item.get("network_out")),
                custom_metrics=_dict(item.get("custom_metrics")),
            )
        )
    return samples


def map_occupancy(payload: Any, *, period_start: datetime, period_end: datetime) -> DeviceOccupancy:
    raw = _require_dict(payload, "occupancy")
    window_hours = (period_end - period_start).total_seconds() / 3600
    total_hours = _num(raw.get("total_hours"), window_hours)
    occupied_hours = min(max(_num(raw.get("occupied_hours")), 0.0), total_hours)
    if raw.get("utilization_rate") is not None:
        rate = _percent(raw.get("utilization_rate"))
    else:
        rate = occupied_hours / total_hours * 100 if total_hours else 0.0
    return DeviceOccupancy(
        period_start=period_start,
        period_end=period_end,
        occupied_hours=occupied_hours,
        total_hours=total_hours,
        utilization_rate=rate,
    )


def map_pricing_suggestion(payload: Any) -> PricingSuggestion:
    raw = _require_dict(payload, "pricing suggestion")
    impact = _dict(raw.get("estimated_impact"))
    return PricingSuggestion(
        current_price=max(0.0, _num(raw.get("current_price"))),
        suggested_price=max(0.0, _num(raw.get("suggested_price"))),
        reasoning=str(raw.get("reasoning") or "Suggested by network pricing service"),
        estimated_impact=PricingImpact(
            utilization_change_pct=_num(impact.get("utilization_change")),
            revenue_change_pct=_num(impact.get("revenue_change")),
        ),
    )


# === Scraped dashboards ===


def node_status_from_scrape(
    values: Mapping[str, str | None],
    *,
    node_id: str,
    display_name: str,
    now: datetime,
) -> NodeStatus:
    """Dashboard text carries status and utilization only; other fields default."""
    status_text = (values.get("node_status") or "").lower()
    status = "offline"
    for word, mapped in STATUS_ALIASES.items():
        if word in status_text:
            status = mapped
            break
    utilization = parse_number(values.get("utilization"))
    return NodeStatus(
        id=node_id,
        name=f"{display_name} Node {node_id}",
        status=status,
        uptime_seconds=parse_number(values.get("uptime")),
        last_seen=now,
        health=NodeHealth(cpu=utilization, memory=0, storage=0, network=0),
    )


def earnings_from_scrape(
    values: Mapping[str, str | None],
    *,
    period: Period,
    currency: str,
    weights: Mapping[str, float],
) -> Earnings:
    total = parse_number(values.get("total_earnings"))
    return _earnings(period, currency, split_by_weights(total, weights), [], {})


def metrics_from_scrape(values: Mapping[str, str | None]) -> NodeMetrics:
    utilization = parse_number(values.get("utilization"))
    return NodeMetrics(
        performance=PerformanceMetrics(tasks_completed=parse_int(values.get("jobs"))),
        resource_utilization=ResourceUtilization(cpu=utilization),
        earnings=EarningsRate(),
        network=NetworkStats(),
    )
