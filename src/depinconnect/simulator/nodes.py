"""
Node-level simulated data (status, specs, metrics, earnings, pricing).

Seeds combine the connector type and node id, so two networks never produce
the same node. Callers pass ``now``; nothing here reads the clock.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from depinconnect.contracts import (
    ConnectorType,
    CpuSpec,
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
    OptimizationParams,
    PerformanceMetrics,
    PricingStrategy,
    RecommendedPrices,
    Reputation,
    ResourceUtilization,
    StorageSpec,
    Transaction,
)
from depinconnect.simulator.seeded import (
    round_half_up,
    seeded_choice,
    seeded_int,
    seeded_random,
    seeded_random_in_range,
    string_hash,
    to_base36,
)

if TYPE_CHECKING:
    from depinconnect.contracts import Period

NODE_ID_PREFIXES: dict[ConnectorType, str] = {
    ConnectorType.IONET: "IO-gpu-node",
    ConnectorType.NOSANA: "NOS-node",
    ConnectorType.RENDER: "RNDR-node",
    ConnectorType.GRASS: "GRASS-node",
    ConnectorType.NATIX: "NATIX-node",
    ConnectorType.HUDDLE01: "HUD01-node",
    ConnectorType.OWNAI: "OWN-node",
}

GPU_NETWORKS = frozenset({ConnectorType.IONET, ConnectorType.RENDER, ConnectorType.OWNAI})

# Share of earnings per revenue stream. Each row sums to 1.
EARNINGS_WEIGHTS: dict[ConnectorType, dict[str, float]] = {
    ConnectorType.IONET: {"compute": 0.8, "rewards": 0.2},
    ConnectorType.RENDER: {"compute": 0.8, "rewards": 0.2},
    ConnectorType.OWNAI: {"compute": 0.8, "rewards": 0.2},
    ConnectorType.GRASS: {"bandwidth": 0.9, "rewards": 0.1},
    ConnectorType.NOSANA: {"compute": 0.7, "staking": 0.3},
    ConnectorType.HUDDLE01: {"bandwidth": 0.6, "compute": 0.3, "rewards": 0.1},
}
DEFAULT_EARNINGS_WEIGHTS: dict[str, float] = {"compute": 0.6, "storage": 0.2, "rewards": 0.2}

_LOCATIONS = (
    ("United States", "California", 37.77, -122.42),
    ("Germany", "Hesse", 50.11, 8.68),
    ("Singapore", "Central", 1.29, 103.85),
    ("Japan", "Tokyo", 35.68, 139.69),
    ("Brazil", "Sao Paulo", -23.55, -46.63),
    ("Netherlands", "North Holland", 52.37, 4.90),
)
_CPU_MODELS = ("AMD EPYC 7543", "Intel Xeon Gold 6338", "AMD Ryzen 9 7950X", "Intel Core i9-13900K")
_GPU_MODELS = (
    ("NVIDIA RTX 4090", 24, 82.6),
    ("NVIDIA A100", 80, 156.0),
    ("NVIDIA H100", 80, 267.0),
    ("NVIDIA RTX 3090", 24, 35.6),
)


def _seed(connector_type: ConnectorType, node_id: str) -> str:
    return f"{connector_type.value}:{node_id}"


def generate_node_ids(connector_type: ConnectorType, count: int = 3) -> list[str]:
    prefix = NODE_ID_PREFIXES[connector_type]
    return [f"{prefix}-{n:03d}" for n in range(1, count + 1)]


def generate_node_specs(connector_type: ConnectorType, node_id: str) -> NodeSpecs:
    seed = _seed(connector_type, node_id)
    memory_total = float(seeded_choice(seed, (16, 32, 64, 128, 256), 20))
    storage_total = float(seeded_choice(seed, (256, 512, 1024, 2048, 4096), 21))
    gpu = None
    if connector_type in GPU_NETWORKS:
        model, memory_gb, tflops = seeded_choice(seed, _GPU_MODELS, 22)
        gpu = GpuSpec(model=model, memory_gb=memory_gb, compute_tflops=tflops)
    return NodeSpecs(
        cpu=CpuSpec(
            cores=seeded_choice(seed, (4, 8, 16, 32, 64), 23),
            model=seeded_choice(seed, _CPU_MODELS, 24),
            frequency_ghz=round_half_up(seeded_random_in_range(seed, 2.0, 4.5, 25)),
        ),
        memory=MemorySpec(
            total_gb=memory_total,
            available_gb=round_half_up(memory_total * seeded_random_in_range(seed, 0.2, 0.8, 26)),
        ),
        storage=StorageSpec(
            total_gb=storage_total,
            available_gb=round_half_up(storage_total * seeded_random_in_range(seed, 0.1, 0.9, 27)),
            type=seeded_choice(seed, ("SSD", "NVMe", "HDD"), 28),
        ),
        gpu=gpu,
    )


def generate_node_status(
    connector_type: ConnectorType, node_id: str, now: datetime
) -> NodeStatus:
    seed = _seed(connector_type, node_id)
    roll = seeded_random(seed, 0)
    if roll < 0.8:
        status = "online"
    elif roll < 0.9:
        status = "offline"
    elif roll < 0.95:
        status = "maintenance"
    else:
        status = "error"

    if status == "online":
        last_seen = now - timedelta(seconds=seeded_random_in_range(seed, 0, 300, 1))
    else:
        last_seen = now - timedelta(seconds=seeded_random_in_range(seed, 300, 86_400, 1))

    country, region, lat, lng = seeded_choice(seed, _LOCATIONS, 2)
    major = seeded_int(seed, 1, 4, 8)
    minor = seeded_int(seed, 0, 10, 9)
    patch = seeded_int(seed, 0, 20, 10)
    return NodeStatus(
        id=node_id,
        name=f"{connector_type.value.upper()} Node {node_id[-3:]}",
        status=status,
        uptime_seconds=round(seeded_random_in_range(seed, 3_600, 30 * 86_400, 3)),
        last_seen=last_seen,
        health=NodeHealth(
            cpu=round_half_up(seeded_random_in_range(seed, 5, 95, 4)),
            memory=round_half_up(seeded_random_in_range(seed, 10, 90, 5)),
            storage=round_half_up(seeded_random_in_range(seed, 20, 85, 6)),
            network=round_half_up(seeded_random_in_range(seed, 50, 1000, 7)),
        ),
        location=NodeLocation(country=country, region=region, latitude=lat, longitude=lng),
        version=f"v{major}.{minor}.{patch}",
        specs=generate_node_specs(connector_type, node_id),
    )


def generate_node_metrics(connector_type: ConnectorType, node_id: str) -> NodeMetrics:
    seed = _seed(connector_type, node_id)
    completed = seeded_int(seed, 50, 5000, 30)
    failed = seeded_int(seed, 0, max(1, completed // 20), 31)
    hourly = round_half_up(seeded_random_in_range(seed, 0.05, 2.5, 32), 4)
    return NodeMetrics(
        performance=PerformanceMetrics(
            tasks_completed=completed,
            tasks_active=seeded_int(seed, 0, 10, 33),
            tasks_failed=failed,
            avg_duration_sec=round_half_up(seeded_random_in_range(seed, 30, 3600, 34)),
            success_rate_pct=round_half_up(completed / (completed + failed) * 100),
        ),
        resource_utilization=ResourceUtilization(
            cpu=round_half_up(seeded_random_in_range(seed, 10, 95, 35)),
            memory=round_half_up(seeded_random_in_range(seed, 10, 90, 36)),
            storage=round_half_up(seeded_random_in_range(seed, 20, 85, 37)),
            bandwidth=round_half_up(seeded_random_in_range(seed, 5, 80, 38)),
            gpu=(
                round_half_up(seeded_random_in_range(seed, 20, 100, 39))
                if connector_type in GPU_NETWORKS
                else None
            ),
        ),
        earnings=EarningsRate(
            hourly=hourly,
            daily=round_half_up(hourly * 24, 4),
            weekly=round_half_up(hourly * 24 * 7, 4),
            monthly=round_half_up(hourly * 24 * 30, 4),
        ),
        network=NetworkStats(
            latency=round_half_up(seeded_random_in_range(seed, 5, 250, 40)),
            throughput=round_half_up(seeded_random_in_range(seed, 50, 1000, 41)),
            uptime_pct=round_half_up(seeded_random_in_range(seed, 90, 100, 42)),
        ),
        reputation=Reputation(
            score=round_half_up(seeded_random_in_range(seed, 5, 10, 43)),
            rank=seeded_int(seed, 1, 5000, 44),
            total_nodes=5000,
        ),
    )


def _transaction_type(connector_type: ConnectorType, n: int) -> str:
    # Nosana pays every third transfer as a staking reward.
    if connector_type == ConnectorType.NOSANA and n % 3 == 2:
        return "staking_reward"
    return "earnings"


def generate_earnings(
    connector_type: ConnectorType,
    period: Period,
    currency: str,
    node_id: str | None = None,
) -> Earnings:
    """
    Earnings for ``period`` split by the network's revenue weights.

    ``total`` is computed as the sum of the rounded breakdown parts, so the
    total/breakdown invariant holds exactly.
    """
    seed = f"{_seed(connector_type, node_id or 'all')}:{period.start.isoformat()}"
    days = period.days
    daily_rate = seeded_random_in_range(seed, 5, 50, 50)
    gross = daily_rate * days

    weights = EARNINGS_WEIGHTS.get(connector_type, DEFAULT_EARNINGS_WEIGHTS)
    parts = {stream: round_half_up(gross * share, 4) for stream, share in weights.items()}
    total = sum(parts.values())

    transactions: list[Transaction] = []
    tx_count = min(days, 10)
    if tx_count:
        per_tx = total / tx_count
        step = (period.end - period.start) / tx_count
        for n in range(tx_count):
            tx_seed = f"{seed}:{n}"
            transactions.append(
                Transaction(
                    id=f"tx-{to_base36(abs(string_hash(tx_seed)))}",
                    timestamp=period.start + step * n,
                    amount=round_half_up(per_tx, 4),
                    type=_transaction_type(connector_type, n),
                    description=f"{connector_type.value} payout {n + 1}/{tx_count}",
                    tx_hash="0x" + to_base36(abs(string_hash(tx_seed + ":hash"))).rjust(12, "0"),
                )
            )

    return Earnings(
        period=period,
        total=total,
        currency=currency,
        breakdown=EarningsBreakdown(**parts),
        transactions=transactions,
        projected_monthly=round_half_up(total * 30 / days, 4),
        projected_yearly=round_half_up(total * 365 / days, 4),
    )


_STRATEGY_MULTIPLIER = {"aggressive": 1.15, "balanced": 1.0, "conservative": 0.9}


def generate_pricing_strategy(
    connector_type: ConnectorType,
    params: OptimizationParams,
    node_id: str | None = None,
) -> PricingStrategy:
    seed = _seed(connector_type, node_id or "all")
    multiplier = _STRATEGY_MULTIPLIER[params.strategy]

    average = seeded_random_in_range(seed, 0.2, 2.0, 60)
    minimum = average * seeded_random_in_range(seed, 0.4, 0.8, 61)
    maximum = average * seeded_random_in_range(seed, 1.2, 2.0, 62)
    recommended_base = average * multiplier
    if params.min_price is not None:
        recommended_base = max(recommended_base, params.min_price)
    if params.max_price is not None:
        recommended_base = min(recommended_base, params.max_price)

    expected = round_half_up((multiplier - 1) * 100 + seeded_random_in_range(seed, 2, 12, 63))
    return PricingStrategy(
        recommended=RecommendedPrices(
            cpu=round_half_up(recommended_base * 0.25, 4),
            memory=round_half_up(recommended_base * 0.1, 4),
            storage=round_half_up(recommended_base * 0.02, 4),
            bandwidth=round_half_up(recommended_base * 0.05, 4),
            gpu=round_half_up(recommended_base, 4) if connector_type in GPU_NETWORKS else None,
        ),
        market=MarketPrices(
            average=round_half_up(average, 4),
            minimum=round_half_up(minimum, 4),
            maximum=round_half_up(maximum, 4),
        ),
        optimization=OptimizationAdvice(
            suggestion=(
                f"Set {params.strategy} pricing near {round_half_up(recommended_base, 4)} "
                f"per hour to track the {connector_type.value} market average"
            ),
            expected_increase_pct=max(0.0, expected),
            confidence_score=round_half_up(seeded_random_in_range(seed, 0.6, 0.95, 64)),
        ),
    )
