"""Data contracts for depinconnect."""

from depinconnect.contracts.models import (
    CacheConfig,
    CacheEntry,
    ConnectorConfig,
    ConnectorInfo,
    ConnectorState,
    ConnectorType,
    CpuSpec,
    CredentialReport,
    DeviceMetricsSample,
    DeviceOccupancy,
    DeviceStatus,
    Earnings,
    EarningsBreakdown,
    EarningsRate,
    GpuSpec,
    HealthReport,
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
    Period,
    PeriodKind,
    PricingImpact,
    PricingResult,
    PricingStrategy,
    PricingSuggestion,
    Provenance,
    RateLimitConfig,
    RateLimitInfo,
    RecommendedPrices,
    Reputation,
    ResourceUtilization,
    ScraperConfig,
    Sourced,
    StorageSpec,
    Transaction,
    ValidationResult,
)

__all__ = [
    "CacheConfig",
    "CacheEntry",
    "ConnectorConfig",
    "ConnectorInfo",
    "ConnectorState",
    "ConnectorType",
    "CpuSpec",
    "CredentialReport",
    "DeviceMetricsSample",
    "DeviceOccupancy",
    "DeviceStatus",
    "Earnings",
    "EarningsBreakdown",
    "EarningsRate",
    "GpuSpec",
    "HealthReport",
    "MarketPrices",
    "MemorySpec",
    "NetworkStats",
    "NodeHealth",
    "NodeLocation",
    "NodeMetrics",
    "NodeSpecs",
    "NodeStatus",
    "OptimizationAdvice",
    "OptimizationParams",
    "PerformanceMetrics",
    "Period",
    "PeriodKind",
    "PricingImpact",
    "PricingResult",
    "PricingStrategy",
    "PricingSuggestion",
    "Provenance",
    "RateLimitConfig",
    "RateLimitInfo",
    "RecommendedPrices",
    "Reputation",
    "ResourceUtilization",
    "ScraperConfig",
    "Sourced",
    "StorageSpec",
    "Transaction",
    "ValidationResult",
]
