"""
Data contracts shared by connectors, the simulator and the registry.

All models are frozen pydantic models; JSON round-trips go through orjson.
Timestamps are timezone-aware datetimes (UTC).
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Generic, Literal, TypeVar

import orjson
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

T = TypeVar("T")


class _Contract(BaseModel):
    """Frozen model with orjson helpers."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    def to_json(self) -> bytes:
        """Serialize to JSON bytes using orjson."""
        return orjson.dumps(self.model_dump(mode="json"))

    @classmethod
    def from_json(cls, data: bytes | str) -> Any:
        """Deserialize from JSON."""
        if isinstance(data, str):
            data = data.encode()
        return cls.model_validate(orjson.loads(data))


class ConnectorType(str, Enum):
    """Supported DePIN networks."""

    IONET = "ionet"
    NOSANA = "nosana"
    RENDER = "render"
    GRASS = "grass"
    NATIX = "natix"
    HUDDLE01 = "huddle01"
    OWNAI = "ownai"


class ConnectorState(str, Enum):
    """Connector lifecycle: uninitialized -> initializing -> ready -> disposed."""

    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    DISPOSED = "disposed"


class Provenance(str, Enum):
    """Which tier of the fallback chain produced a value."""

    LIVE = "live"
    SCRAPED = "scraped"
    SIMULATED = "simulated"


# === Configuration ===


class RateLimitConfig(_Contract):
    """Token bucket: ``requests`` tokens refill over ``window_ms``."""

    requests: int = Field(default=60, ge=1, description="Tokens per window")
    window_ms: int = Field(default=60_000, ge=1, description="Refill window (ms)")
    max_wait_ms: int = Field(default=30_000, ge=0, description="Max time queued for a token")
    max_queue_depth: int = Field(default=100, ge=0, description="Max waiters before rejecting")


class CacheConfig(_Contract):
    enabled: bool = True
    ttl_seconds: float = Field(default=300, gt=0, description="Entry time-to-live (s)")


class ScraperConfig(_Contract):
    """Headless browser fallback settings."""

    enabled: bool = False
    headless: bool = True
    timeout_ms: int = Field(default=30_000, ge=1)
    browser: Literal["chromium", "firefox", "webkit"] = "chromium"
    username: str | None = None
    password: str | None = Field(default=None, repr=False)

    @property
    def has_credentials(self) -> bool:
        return bool(self.username and self.password)


class ConnectorConfig(_Contract):
    """
    Per-connector configuration. Immutable once the connector exists.

    Attributes:
        api_key: Network API credential (optional for some networks).
        base_url: API root, e.g. "https://api.io.net".
        timeout_ms: Per-request timeout for HTTP and browser operations.
        retry_attempts: Retries after the first attempt for live calls.
        retry_delay_ms: Base (minimum) backoff delay.
        rate_limit: Token bucket settings.
        cache: Result cache settings.
        scraper: Dashboard scraper settings.
    """

    api_key: str | None = Field(default=None, repr=False)
    base_url: str | None = None
    timeout_ms: int = Field(default=30_000, ge=1)
    retry_attempts: int = Field(default=3, ge=0)
    retry_delay_ms: int = Field(default=1_000, ge=0)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    scraper: ScraperConfig = Field(default_factory=ScraperConfig)

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str | None) -> str | None:
        """Store base URLs without a trailing slash."""
        if v is None:
            return None
        v = v.strip()
        return v.rstrip("/") or None

    def with_overrides(self, **overrides: Any) -> ConnectorConfig:
        """Return a copy with ``overrides`` merged in (nested dicts merged per key)."""
        merged = _deep_merge(self.model_dump(), overrides)
        return ConnectorConfig.model_validate(merged)

    def fingerprint(self, connector_type: ConnectorType | str) -> str:
        """Instance key: type, API-key presence and base URL. Never the key itself."""
        name = connector_type.value if isinstance(connector_type, ConnectorType) else connector_type
        key_part = "key" if self.api_key else "no-key"
        return f"{name}:{key_part}:{self.base_url or 'no-url'}"


def _deep_merge(base: dict[str, Any], overrides: dict[str, Any]) -> dict[str, Any]:
    result = dict(base)
    for key, value in overrides.items():
        if isinstance(value, BaseModel):
            value = value.model_dump()
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


# === Node-level contracts ===


class NodeHealth(_Contract):
    cpu: float = Field(..., ge=0, description="CPU usage %")
    memory: float = Field(..., ge=0, description="Memory usage %")
    storage: float = Field(..., ge=0, description="Storage usage %")
    network: float = Field(..., ge=0, description="Network speed (Mbps)")


class NodeLocation(_Contract):
    country: str = "Unknown"
    region: str = "Unknown"
    latitude: float | None = None
    longitude: float | None = None


class CpuSpec(_Contract):
    cores: int = Field(..., ge=0)
    model: str
    frequency_ghz: float = Field(..., ge=0)


class MemorySpec(_Contract):
    total_gb: float = Field(..., ge=0)
    available_gb: float = Field(..., ge=0)


class StorageSpec(_Contract):
    total_gb: float = Field(..., ge=0)
    available_gb: float = Field(..., ge=0)
    type: Literal["SSD", "HDD", "NVMe"] = "SSD"


class GpuSpec(_Contract):
    model: str
    memory_gb: float = Field(..., ge=0)
    compute_tflops: float = Field(..., ge=0)


class NodeSpecs(_Contract):
    cpu: CpuSpec
    memory: MemorySpec
    storage: StorageSpec
    gpu: GpuSpec | None = None


NodeStatusValue = Literal["online", "offline", "maintenance", "error"]


class NodeStatus(_Contract):
    """Operational status of one node on a network."""

    id: str = Field(..., min_length=1)
    name: str
    status: NodeStatusValue
    uptime_seconds: float = Field(default=0, ge=0)
    last_seen: datetime
    health: NodeHealth
    location: NodeLocation | None = None
    version: str | None = None
    specs: NodeSpecs | None = None


class PeriodKind(str, Enum):
    HOUR = "hour"
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"
    CUSTOM = "custom"


_PERIOD_SPANS: dict[PeriodKind, timedelta] = {
    PeriodKind.HOUR: timedelta(hours=1),
    PeriodKind.DAY: timedelta(days=1),
    PeriodKind.WEEK: timedelta(weeks=1),
    PeriodKind.MONTH: timedelta(days=30),
    PeriodKind.YEAR: timedelta(days=365),
}


class Period(_Contract):
    """Reporting window [start, end]."""

    start: datetime
    end: datetime
    kind: PeriodKind = PeriodKind.CUSTOM

    @model_validator(mode="after")
    def check_order(self) -> Period:
        if self.end < self.start:
            raise ValueError("period end precedes start")
        return self

    @classmethod
    def last(cls, kind: PeriodKind, now: datetime) -> Period:
        """Window of one ``kind`` ending at ``now``."""
        if kind == PeriodKind.CUSTOM:
            raise ValueError("custom periods need explicit bounds")
        return cls(start=now - _PERIOD_SPANS[kind], end=now, kind=kind)

    @property
    def days(self) -> int:
        """Length in whole days, at least 1."""
        return max(1, math.ceil((self.end - self.start).total_seconds() / 86_400))


class Transaction(_Contract):
    id: str
    timestamp: datetime
    amount: float
    type: Literal["earnings", "penalty", "bonus", "staking_reward"] = "earnings"
    description: str = ""
    tx_hash: str | None = None


class EarningsBreakdown(_Contract):
    compute: float | None = None
    storage: float | None = None
    bandwidth: float | None = None
    staking: float | None = None
    rewards: float | None = None

    def total(self) -> float:
        return sum(
            v
            for v in (self.compute, self.storage, self.bandwidth, self.staking, self.rewards)
            if v is not None
        )


class Earnings(_Contract):
    """Earnings over a period. ``total`` always equals the breakdown sum."""

    period: Period
    total: float
    currency: str = Field(..., min_length=1)
    breakdown: EarningsBreakdown
    transactions: list[Transaction] = Field(default_factory=list)
    projected_monthly: float | None = None
    projected_yearly: float | None = None

    @model_validator(mode="after")
    def check_total(self) -> Earnings:
        expected = self.breakdown.total()
        if not math.isclose(self.total, expected, rel_tol=1e-6, abs_tol=1e-9):
            raise ValueError(f"total {self.total} does not match breakdown sum {expected}")
        return self


class PerformanceMetrics(_Contract):
    tasks_completed: int = Field(default=0, ge=0)
    tasks_active: int = Field(default=0, ge=0)
    tasks_failed: int = Field(default=0, ge=0)
    avg_duration_sec: float = Field(default=0, ge=0)
    success_rate_pct: float = Field(default=0, ge=0, le=100)


class ResourceUtilization(_Contract):
    cpu: float = 0
    memory: float = 0
    storage: float = 0
    bandwidth: float = 0
    gpu: float | None = None


class EarningsRate(_Contract):
    hourly: float = 0
    daily: float = 0
    weekly: float = 0
    monthly: float = 0


class NetworkStats(_Contract):
    latency: float = 0
    throughput: float = 0
    uptime_pct: float = Field(default=0, ge=0, le=100)


class Reputation(_Contract):
    score: float
    rank: int
    total_nodes: int


class NodeMetrics(_Contract):
    performance: PerformanceMetrics
    resource_utilization: ResourceUtilization
    earnings: EarningsRate
    network: NetworkStats
    reputation: Reputation | None = None


class OptimizationParams(_Contract):
    """Inputs to pricing optimization."""

    target_utilization: float | None = Field(default=None, ge=0, le=100)
    min_price: float | None = Field(default=None, ge=0)
    max_price: float | None = Field(default=None, ge=0)
    strategy: Literal["aggressive", "balanced", "conservative"] = "balanced"


class RecommendedPrices(_Contract):
    cpu: float = 0
    memory: float = 0
    storage: float = 0
    bandwidth: float = 0
    gpu: float | None = None


class MarketPrices(_Contract):
    average: float = 0
    minimum: float = 0
    maximum: float = 0


class OptimizationAdvice(_Contract):
    suggestion: str
    expected_increase_pct: float = 0
    confidence_score: float = Field(default=0, ge=0, le=1)


class PricingStrategy(_Contract):
    recommended: RecommendedPrices
    market: MarketPrices
    optimization: OptimizationAdvice


# === Device-level contracts ===


class DeviceStatus(_Contract):
    online: bool
    last_seen: datetime
    version: str | None = None


class DeviceMetricsSample(_Contract):
    timestamp: datetime
    cpu_usage: float
    memory_usage: float
    disk_usage: float
    network_in: float
    network_out: float
    custom_metrics: dict[str, Any] = Field(default_factory=dict)


class DeviceOccupancy(_Contract):
    period_start: datetime
    period_end: datetime
    occupied_hours: float = Field(..., ge=0)
    total_hours: float = Field(..., ge=0)
    utilization_rate: float = Field(..., ge=0, le=100, description="Occupied share (%)")


class PricingImpact(_Contract):
    utilization_change_pct: float
    revenue_change_pct: float


class PricingSuggestion(_Contract):
    current_price: float = Field(..., ge=0)
    suggested_price: float = Field(..., ge=0)
    reasoning: str = Field(..., min_length=1)
    estimated_impact: PricingImpact


class PricingResult(_Contract):
    """Outcome of applying a price to a device."""

    success: bool
    device_id: str
    new_price: float = Field(..., ge=0)
    dry_run: bool
    message: str | None = None
    applied_at: datetime | None = None


# === Reports ===


class HealthReport(_Contract):
    status: Literal["healthy", "degraded", "unhealthy"]
    last_check: datetime
    latency_ms: float = Field(..., ge=0)
    errors: list[str] = Field(default_factory=list)
    provenance: dict[str, int] = Field(default_factory=dict)


class CredentialReport(_Contract):
    valid: bool
    permissions: list[str] = Field(default_factory=list)
    limitations: list[str] = Field(default_factory=list)


class ValidationResult(_Contract):
    valid: bool
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class RateLimitInfo(_Contract):
    remaining: int = Field(..., ge=0)
    reset_at_ms: int = Field(..., ge=0, description="When the bucket is full again (ms)")
    limit: int = Field(..., ge=1)


class ConnectorInfo(_Contract):
    """Static description of a registered connector type."""

    type: ConnectorType
    name: str
    description: str
    category: Literal["gpu", "cpu", "bandwidth", "mapping", "video", "ai"]
    currency: str
    requires_api_key: bool
    supports_scraping: bool
    supports_pricing_write: bool


# === Generic result wrappers ===


class CacheEntry(BaseModel, Generic[T]):
    """Cached value with its write time. Dead once age >= ttl."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    data: T
    written_at_ms: int
    ttl_seconds: float

    def is_expired(self, now_ms: int) -> bool:
        return now_ms - self.written_at_ms >= self.ttl_seconds * 1000

    def remaining_seconds(self, now_ms: int) -> float:
        return max(0.0, (self.written_at_ms + self.ttl_seconds * 1000 - now_ms) / 1000)


class Sourced(BaseModel, Generic[T]):
    """Result of the fallback chain, tagged with where it came from."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    data: T
    provenance: Provenance
    cached: bool = False
    fetched_at_ms: int = 0
    errors: list[str] = Field(default_factory=list)

    @property
    def is_live(self) -> bool:
        return self.provenance == Provenance.LIVE
