"""
BaseConnector: the fallback chain shared by every network adapter.

Read capabilities resolve through:

1. Cache (per connector type + method + params, single-flight on misses)
2. Live API: one rate-limit token, then the HTTP call under the retry policy
3. Dashboard scraper (own retry policy), when configured
4. Simulator, which never fails

Each ``fetch_*`` method returns the value wrapped in ``Sourced`` with the
tier that produced it; the plain ``get_*`` methods return only the value.
Cache and rate-limiter trouble never blocks a read: a CacheError is treated
as a miss and a RateLimitError skips the live tier.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import Counter, deque
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, ClassVar

from depinconnect.cache import CacheOutcome, CacheStore
from depinconnect.connectors import mapping
from depinconnect.connectors.http import ApiClient
from depinconnect.contracts import (
    ConnectorConfig,
    ConnectorInfo,
    ConnectorState,
    ConnectorType,
    CredentialReport,
    DeviceMetricsSample,
    DeviceOccupancy,
    DeviceStatus,
    Earnings,
    HealthReport,
    NodeMetrics,
    NodeStatus,
    OptimizationParams,
    Period,
    PricingResult,
    PricingStrategy,
    PricingSuggestion,
    Provenance,
    RateLimitInfo,
    Sourced,
)
from depinconnect.errors import (
    ApiError,
    CacheError,
    ConfigError,
    ConnectorDisposedError,
    ConnectorError,
    RateLimitError,
    RateLimitKind,
    ScraperError,
    ScraperNotEnabledError,
    ValidationError,
)
from depinconnect.resilience import RetryOptions, RetryPolicy, TokenBucketLimiter
from depinconnect.scraper import DashboardScraper, ScraperOptions
from depinconnect.settings import FrameworkSettings
from depinconnect.simulator import (
    CUSTOM_METRICS,
    EARNINGS_WEIGHTS,
    generate_earnings,
    generate_mock_device_status,
    generate_mock_metrics,
    generate_mock_occupancy,
    generate_mock_pricing_suggestion,
    generate_node_ids,
    generate_node_metrics,
    generate_node_status,
    generate_pricing_strategy,
    mock_apply_pricing,
)
from depinconnect.simulator.nodes import DEFAULT_EARNINGS_WEIGHTS

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from depinconnect.connectors.profile import NetworkProfile
    from depinconnect.observability.exporter import ConnectorMetricsExporter
    from depinconnect.resilience.retry import FailedAttempt
    from depinconnect.simulator.devices import CustomMetricsFn

logger = logging.getLogger(__name__)

_MAX_RECENT_ERRORS = 20
_SCRAPED_NODE_ID = "dashboard"


class BaseConnector:
    """
    Resilient access to one DePIN network.

    Subclasses set ``profile`` and may override the ``map_*`` hooks when the
    network's payloads differ from the common shape.

    Args:
        config: Connector configuration; base URL defaults to the profile's.
        cache: Shared cache store. A private one is created when omitted and
            caching is enabled.
        exporter: Prometheus exporter receiving tier/cache/retry counters.
        settings: Framework settings (``use_mock_data`` forces the simulator).
        api_client, scraper, retry_policy, limiter: Injectable collaborators.
        time_fn: Clock in milliseconds.
    """

    profile: ClassVar[NetworkProfile]

    def __init__(
        self,
        config: ConnectorConfig | None = None,
        *,
        cache: CacheStore | None = None,
        exporter: ConnectorMetricsExporter | None = None,
        settings: FrameworkSettings | None = None,
        api_client: ApiClient | None = None,
        scraper: DashboardScraper | None = None,
        retry_policy: RetryPolicy | None = None,
        limiter: TokenBucketLimiter | None = None,
        time_fn: Callable[[], int] | None = None,
    ) -> None:
        config = config or ConnectorConfig()
        if config.base_url is None:
            config = config.with_overrides(base_url=self.profile.default_base_url)
        self.config = config
        self._settings = settings or FrameworkSettings()
        self._exporter = exporter
        self._time_fn = time_fn
        self._state = ConnectorState.UNINITIALIZED
        self._init_lock = asyncio.Lock()

        self._owns_cache = cache is None and config.cache.enabled
        if not config.cache.enabled:
            self._cache: CacheStore | None = None
        elif cache is not None:
            self._cache = cache
        else:
            self._cache = CacheStore(default_ttl_seconds=config.cache.ttl_seconds, time_fn=time_fn)

        self._limiter = limiter or TokenBucketLimiter(
            config.rate_limit, name=self.type.value, _time_fn=time_fn
        )
        self._retry = retry_policy or RetryPolicy(
            RetryOptions(
                retries=config.retry_attempts,
                min_timeout_ms=config.retry_delay_ms,
                max_timeout_ms=max(config.retry_delay_ms, 30_000),
            ),
            on_failed_attempt=self._on_failed_attempt,
        )
        self._api = api_client
        self._scraper = scraper
        if self._scraper is None and config.scraper.enabled and self.profile.supports_scraping:
            self._scraper = DashboardScraper(
                ScraperOptions(
                    headless=config.scraper.headless,
                    timeout_ms=config.scraper.timeout_ms,
                    browser=config.scraper.browser,
                )
            )
        self._logged_in = False
        self._provenance: Counter[str] = Counter()
        self._recent_errors: deque[str] = deque(maxlen=_MAX_RECENT_ERRORS)

    # === Identity and state ===

    @property
    def type(self) -> ConnectorType:
        return self.profile.type

    @property
    def name(self) -> str:
        return self.profile.display_name

    @property
    def state(self) -> ConnectorState:
        return self._state

    def is_ready(self) -> bool:
        return self._state is ConnectorState.READY

    @property
    def has_live_access(self) -> bool:
        """Live tier is usable: not in mock mode, base URL set, key present if required."""
        if self._settings.use_mock_data or not self.config.base_url:
            return False
        return bool(self.config.api_key) or not self.profile.requires_api_key

    @property
    def has_scraper(self) -> bool:
        return self._scraper is not None and not self._settings.use_mock_data

    @property
    def earnings_weights(self) -> dict[str, float]:
        return EARNINGS_WEIGHTS.get(self.type, DEFAULT_EARNINGS_WEIGHTS)

    @property
    def custom_metrics(self) -> CustomMetricsFn | None:
        return CUSTOM_METRICS.get(self.type)

    def _now_ms(self) -> int:
        if self._time_fn is not None:
            return self._time_fn()
        return int(time.time() * 1000)

    def _now(self) -> datetime:
        return datetime.fromtimestamp(self._now_ms() / 1000, tz=UTC)

    # === Lifecycle ===

    async def __aenter__(self) -> BaseConnector:
        await self.initialize()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.dispose()

    def _validate_shape(self) -> None:
        base_url = self.config.base_url or ""
        if not base_url.startswith(("http://", "https://")):
            raise ConfigError(
                f"{self.name}: base_url must start with http:// or https://",
                details={"connector": self.type.value},
            )

    async def initialize(self) -> None:
        """
        Move to READY.

        Raises ConfigError for malformed configuration. The live credential
        check is best effort: a failed check is logged and reads fall back.
        """
        async with self._init_lock:
            if self._state is ConnectorState.DISPOSED:
                raise ConnectorDisposedError(self.type.value)
            if self._state is ConnectorState.READY:
                return
            self._state = ConnectorState.INITIALIZING
            try:
                self._validate_shape()
            except ConfigError:
                self._state = ConnectorState.UNINITIALIZED
                raise

            if self._cache is not None and self._owns_cache:
                self._cache.start()
            if self.has_live_access:
                report = await self.validate_credentials()
                if not report.valid:
                    logger.warning(
                        "Credential check failed, live calls may fall back",
                        extra={"connector": self.type.value, "limitations": report.limitations},
                    )
            self._state = ConnectorState.READY
            logger.info(
                "Connector ready",
                extra={
                    "connector": self.type.value,
                    "live": self.has_live_access,
                    "scraper": self.has_scraper,
                },
            )

    async def _ensure_ready(self) -> None:
        if self._state is ConnectorState.DISPOSED:
            raise ConnectorDisposedError(self.type.value)
        if self._state is not ConnectorState.READY:
            await self.initialize()

    def _ensure_not_disposed(self) -> None:
        if self._state is ConnectorState.DISPOSED:
            raise ConnectorDisposedError(self.type.value)

    async def dispose(self) -> None:
        """Close the HTTP session and the browser. Idempotent."""
        if self._state is ConnectorState.DISPOSED:
            return
        self._state = ConnectorState.DISPOSED
        try:
            if self._api is not None:
                await self._api.close()
        finally:
            try:
                if self._scraper is not None:
                    await self._scraper.dispose()
            finally:
                if self._owns_cache and self._cache is not None:
                    await self._cache.close()
        logger.info("Connector disposed", extra={"connector": self.type.value})

    # === Fallback chain ===

    def _client(self) -> ApiClient:
        if self._api is None:
            self._api = ApiClient(
                self.config.base_url or self.profile.default_base_url,
                api_key=self.config.api_key,
                timeout_ms=self.config.timeout_ms,
            )
        return self._api

    def _on_failed_attempt(self, attempt: FailedAttempt) -> None:
        if self._exporter is not None:
            self._exporter.record_retry(self.type.value)

    async def _call_live(self, method: str, fn: Callable[[], Awaitable[Any]]) -> Any:
        """One rate-limit token, then ``fn`` under the retry policy."""
        try:
            await self._limiter.acquire()
        finally:
            if self._exporter is not None:
                self._exporter.set_tokens_remaining(
                    self.type.value, self._limiter.get_info().remaining
                )
        return await self._retry.execute(fn, operation=f"{self.type.value}.{method}")

    def _note_failure(self, method: str, tier: str, error: Exception, errors: list[str]) -> None:
        message = f"{tier}: {error}"
        errors.append(message)
        self._recent_errors.append(f"{method} {message}")
        if (
            isinstance(error, RateLimitError)
            and error.kind is not RateLimitKind.UPSTREAM_429
            and self._exporter is not None
        ):
            self._exporter.record_rate_limit_rejection(self.type.value)
        logger.warning(
            "Tier failed, falling back",
            extra={
                "connector": self.type.value,
                "method": method,
                "tier": tier,
                "error": str(error),
                "error_code": getattr(error, "code", type(error).__name__),
            },
        )

    def _sourced(self, data: Any, provenance: Provenance, errors: list[str]) -> Sourced[Any]:
        self._provenance[provenance.value] += 1
        if self._exporter is not None:
            self._exporter.record_result(self.type.value, provenance.value)
        return Sourced(
            data=data, provenance=provenance, fetched_at_ms=self._now_ms(), errors=errors
        )

    async def _run_chain(
        self,
        method: str,
        live: Callable[[], Awaitable[Any]] | None,
        scrape: Callable[[], Awaitable[Any]] | None,
        simulate: Callable[[], Any],
    ) -> Sourced[Any]:
        errors: list[str] = []
        if live is not None and self.has_live_access:
            try:
                data = await self._call_live(method, live)
            except Exception as exc:
                self._note_failure(method, Provenance.LIVE.value, exc, errors)
            else:
                return self._sourced(data, Provenance.LIVE, errors)

        if scrape is not None and self.has_scraper:
            try:
                data = await scrape()
            except Exception as exc:
                self._note_failure(method, Provenance.SCRAPED.value, exc, errors)
            else:
                return self._sourced(data, Provenance.SCRAPED, errors)

        return self._sourced(simulate(), Provenance.SIMULATED, errors)

    async def _resolve(
        self,
        method: str,
        params: dict[str, Any] | None,
        *,
        live: Callable[[], Awaitable[Any]] | None,
        simulate: Callable[[], Any],
        scrape: Callable[[], Awaitable[Any]] | None = None,
    ) -> Sourced[Any]:
        await self._ensure_ready()
        produced: list[Sourced[Any]] = []

        async def produce() -> Sourced[Any]:
            result = await self._run_chain(method, live, scrape, simulate)
            produced.append(result)
            return result

        if self._cache is None:
            return await produce()
        # Instances of one network may share the store; scope keys per instance.
        scoped = {**(params or {}), "instance": self.config.fingerprint(self.type)}
        try:
            result, outcome = await self._cache.get_or_set_with_outcome(
                self.type, method, produce, ttl=self.config.cache.ttl_seconds, params=scoped
            )
        except CacheError as exc:
            logger.warning(
                "Cache unavailable, resolving uncached",
                extra={"connector": self.type.value, "method": method, "error": str(exc)},
            )
            return produced[0] if produced else await produce()

        if self._exporter is not None:
            self._exporter.record_cache_lookup(self.type.value, outcome.value)
        if outcome is CacheOutcome.HIT:
            return result.model_copy(update={"cached": True})
        return result

    # === Scraper helpers ===

    async def _ensure_logged_in(self, scraper: DashboardScraper) -> None:
        login_url = self.profile.login_url
        scraper_config = self.config.scraper
        if self._logged_in or login_url is None or not scraper_config.has_credentials:
            return
        result = await scraper.login(
            login_url, scraper_config.username or "", scraper_config.password or ""
        )
        if not result.success:
            raise ScraperError(
                f"{self.name} dashboard login failed: {result.error or 'unknown reason'}",
                code="SCRAPER_LOGIN_FAILED",
                retryable=False,
            )
        self._logged_in = True

    async def _scrape_dashboard(self) -> dict[str, str | None]:
        if self._scraper is None:
            raise ScraperNotEnabledError(self.type.value)
        await self._ensure_logged_in(self._scraper)
        return await self._scraper.extract_data(
            self.profile.dashboard_url,
            self.profile.selectors,
            required=list(self.profile.required_selectors),
        )

    # === Mapping hooks ===

    def map_node_status(self, payload: Any, now: datetime) -> NodeStatus:
        return mapping.map_node_status(payload, display_name=self.name, now=now)

    def map_node_list(self, payload: Any, now: datetime) -> list[NodeStatus]:
        return [self.map_node_status(item, now) for item in mapping.unwrap_list(payload, "nodes")]

    def map_earnings(self, payload: Any, period: Period, now: datetime) -> Earnings:
        return mapping.map_earnings(
            payload,
            period=period,
            currency=self.profile.currency,
            weights=self.earnings_weights,
            now=now,
        )

    def map_metrics(self, payload: Any) -> NodeMetrics:
        return mapping.map_metrics(payload)

    def map_pricing_strategy(self, payload: Any) -> PricingStrategy:
        return mapping.map_pricing_strategy(payload)

    def earnings_params(self, period: Period, node_id: str | None) -> dict[str, Any]:
        return {
            "start": period.start.isoformat(),
            "end": period.end.isoformat(),
            "nodeId": node_id,
        }

    # === Node-level capabilities ===

    async def fetch_node_status(
        self, node_id: str | None = None
    ) -> Sourced[NodeStatus | list[NodeStatus]]:
        endpoints = self.profile.endpoints

        async def live() -> NodeStatus | list[NodeStatus]:
            now = self._now()
            if node_id:
                return self.map_node_status(
                    await self._client().get(f"{endpoints.nodes}/{node_id}"), now
                )
            return self.map_node_list(await self._client().get(endpoints.nodes), now)

        async def scrape() -> NodeStatus | list[NodeStatus]:
            status = mapping.node_status_from_scrape(
                await self._scrape_dashboard(),
                node_id=node_id or _SCRAPED_NODE_ID,
                display_name=self.name,
                now=self._now(),
            )
            return status if node_id else [status]

        def simulate() -> NodeStatus | list[NodeStatus]:
            now = self._now()
            if node_id:
                return generate_node_status(self.type, node_id, now)
            node_ids = generate_node_ids(self.type)
            return [generate_node_status(self.type, nid, now) for nid in node_ids]

        return await self._resolve(
            "get_node_status",
            {"node_id": node_id},
            live=live,
            scrape=scrape if self.profile.supports_scraping else None,
            simulate=simulate,
        )

    async def get_node_status(self, node_id: str | None = None) -> NodeStatus | list[NodeStatus]:
        result = await self.fetch_node_status(node_id)
        return result.data  # type: ignore[no-any-return]

    async def fetch_earnings(self, period: Period, node_id: str | None = None) -> Sourced[Earnings]:
        async def live() -> Earnings:
            payload = await self._client().get(
                self.profile.endpoints.earnings, params=self.earnings_params(period, node_id)
            )
            return self.map_earnings(payload, period, self._now())

        async def scrape() -> Earnings:
            return mapping.earnings_from_scrape(
                await self._scrape_dashboard(),
                period=period,
                currency=self.profile.currency,
                weights=self.earnings_weights,
            )

        return await self._resolve(
            "get_earnings",
            {"period": period, "node_id": node_id},
            live=live,
            scrape=scrape if self.profile.supports_scraping else None,
            simulate=lambda: generate_earnings(self.type, period, self.profile.currency, node_id),
        )

    async def get_earnings(self, period: Period, node_id: str | None = None) -> Earnings:
        result = await self.fetch_earnings(period, node_id)
        return result.data  # type: ignore[no-any-return]

    async def fetch_metrics(
        self, node_id: str | None = None
    ) -> Sourced[NodeMetrics | list[NodeMetrics]]:
        endpoints = self.profile.endpoints

        async def live() -> NodeMetrics | list[NodeMetrics]:
            if node_id:
                return self.map_metrics(await self._client().get(f"{endpoints.metrics}/{node_id}"))
            payload = await self._client().get(endpoints.metrics)
            return [self.map_metrics(item) for item in mapping.unwrap_list(payload, "metrics")]

        async def scrape() -> NodeMetrics | list[NodeMetrics]:
            metrics = mapping.metrics_from_scrape(await self._scrape_dashboard())
            return metrics if node_id else [metrics]

        def simulate() -> NodeMetrics | list[NodeMetrics]:
            if node_id:
                return generate_node_metrics(self.type, node_id)
            return [generate_node_metrics(self.type, nid) for nid in generate_node_ids(self.type)]

        return await self._resolve(
            "get_metrics",
            {"node_id": node_id},
            live=live,
            scrape=scrape if self.profile.supports_scraping else None,
            simulate=simulate,
        )

    async def get_metrics(self, node_id: str | None = None) -> NodeMetrics | list[NodeMetrics]:
        result = await self.fetch_metrics(node_id)
        return result.data  # type: ignore[no-any-return]

    async def fetch_pricing_strategy(
        self, params: OptimizationParams | None = None, node_id: str | None = None
    ) -> Sourced[PricingStrategy]:
        params = params or OptimizationParams()
        endpoint = self.profile.endpoints.pricing

        async def live() -> PricingStrategy:
            body = params.model_dump(exclude_none=True)
            if node_id:
                body["node_id"] = node_id
            return self.map_pricing_strategy(await self._client().post(endpoint or "", body))

        return await self._resolve(
            "optimize_pricing",
            {"params": params, "node_id": node_id},
            live=live if endpoint else None,
            simulate=lambda: generate_pricing_strategy(self.type, params, node_id),
        )

    async def optimize_pricing(
        self, params: OptimizationParams | None = None, node_id: str | None = None
    ) -> PricingStrategy:
        result = await self.fetch_pricing_strategy(params, node_id)
        return result.data  # type: ignore[no-any-return]

    # === Device-level capabilities ===

    async def fetch_device_status(self, external_id: str) -> Sourced[DeviceStatus]:
        async def live() -> DeviceStatus:
            payload = await self._client().get(f"{self.profile.endpoints.nodes}/{external_id}")
            return mapping.map_device_status(payload, now=self._now())

        async def scrape() -> DeviceStatus:
            status = mapping.node_status_from_scrape(
                await self._scrape_dashboard(),
                node_id=external_id,
                display_name=self.name,
                now=self._now(),
            )
            return DeviceStatus(online=status.status == "online", last_seen=status.last_seen)

        return await self._resolve(
            "get_device_status",
            {"external_id": external_id},
            live=live,
            scrape=scrape if self.profile.supports_scraping else None,
            simulate=lambda: generate_mock_device_status(external_id),
        )

    async def get_device_status(self, external_id: str) -> DeviceStatus:
        result = await self.fetch_device_status(external_id)
        return result.data  # type: ignore[no-any-return]

    async def fetch_device_metrics(
        self, external_id: str, since: datetime
    ) -> Sourced[list[DeviceMetricsSample]]:
        async def live() -> list[DeviceMetricsSample]:
            payload = await self._client().get(
                self.profile.endpoints.device_metrics.format(id=external_id),
                params={"since": since.isoformat()},
            )
            return mapping.map_device_metrics(payload, now=self._now())

        return await self._resolve(
            "get_device_metrics",
            {"external_id": external_id, "since": since},
            live=live,
            simulate=lambda: generate_mock_metrics(
                external_id, since, self._now(), self.custom_metrics
            ),
        )

    async def get_device_metrics(
        self, external_id: str, since: datetime
    ) -> list[DeviceMetricsSample]:
        result = await self.fetch_device_metrics(external_id, since)
        return result.data  # type: ignore[no-any-return]

    async def fetch_occupancy(
        self, external_id: str, period_start: datetime, period_end: datetime
    ) -> Sourced[DeviceOccupancy]:
        if period_end < period_start:
            raise ValidationError("period_end", period_end, "must not precede period_start")

        async def live() -> DeviceOccupancy:
            payload = await self._client().get(
                self.profile.endpoints.occupancy.format(id=external_id),
                params={"start": period_start.isoformat(), "end": period_end.isoformat()},
            )
            return mapping.map_occupancy(
                payload, period_start=period_start, period_end=period_end
            )

        return await self._resolve(
            "get_occupancy",
            {"external_id": external_id, "start": period_start, "end": period_end},
            live=live,
            simulate=lambda: generate_mock_occupancy(external_id, period_start, period_end),
        )

    async def get_occupancy(
        self, external_id: str, period_start: datetime, period_end: datetime
    ) -> DeviceOccupancy:
        result = await self.fetch_occupancy(external_id, period_start, period_end)
        return result.data  # type: ignore[no-any-return]

    async def fetch_pricing_suggestion(
        self, external_id: str, target_utilization: float
    ) -> Sourced[PricingSuggestion]:
        """``target_utilization`` accepts a fraction (0.75) or a percentage (75)."""
        if not 0 <= target_utilization <= 100:
            raise ValidationError(
                "target_utilization", target_utilization, "must be within 0..1 or 0..100"
            )
        endpoint = self.profile.endpoints.pricing_suggestion

        async def live() -> PricingSuggestion:
            payload = await self._client().post(
                endpoint or "",
                {"device_id": external_id, "target_utilization": target_utilization},
            )
            return mapping.map_pricing_suggestion(payload)

        return await self._resolve(
            "suggest_pricing",
            {"external_id": external_id, "target": target_utilization},
            live=live if endpoint else None,
            simulate=lambda: generate_mock_pricing_suggestion(
                external_id, target_utilization, self.name
            ),
        )

    async def suggest_pricing(
        self, external_id: str, target_utilization: float
    ) -> PricingSuggestion:
        result = await self.fetch_pricing_suggestion(external_id, target_utilization)
        return result.data  # type: ignore[no-any-return]

    async def apply_pricing_detailed(
        self, external_id: str, price_per_hour: float, dry_run: bool = True
    ) -> PricingResult:
        """
        Apply a price to one device.

        Dry runs touch neither the network nor the cache nor the limiter.
        Networks without a pricing write API return success=False with a
        manual-action message. Without live credentials the write is
        simulated. Results are never cached.
        """
        self._ensure_not_disposed()
        if price_per_hour < 0:
            raise ValidationError("price_per_hour", price_per_hour, "must be >= 0")
        if dry_run:
            return PricingResult(
                success=True,
                device_id=external_id,
                new_price=price_per_hour,
                dry_run=True,
                message="Dry run: price validated, nothing applied",
            )

        await self._ensure_ready()
        endpoint = self.profile.endpoints.pricing_write
        if endpoint is None:
            return PricingResult(
                success=False,
                device_id=external_id,
                new_price=price_per_hour,
                dry_run=False,
                message=(
                    f"{self.name} has no pricing API; set {price_per_hour} per hour "
                    f"manually in the {self.name} dashboard"
                ),
            )

        if not self.has_live_access:
            applied = mock_apply_pricing(external_id, price_per_hour, dry_run=False)
            self._provenance[Provenance.SIMULATED.value] += 1
            return PricingResult(
                success=applied,
                device_id=external_id,
                new_price=price_per_hour,
                dry_run=False,
                message="Simulated apply (no live credentials)",
                applied_at=self._now() if applied else None,
            )

        try:
            await self._call_live(
                "apply_pricing",
                lambda: self._client().put(
                    endpoint.format(id=external_id), {"price_per_hour": price_per_hour}
                ),
            )
        except ConnectorError as exc:
            self._recent_errors.append(f"apply_pricing live: {exc}")
            logger.warning(
                "Pricing write failed",
                extra={"connector": self.type.value, "error": str(exc), "error_code": exc.code},
            )
            return PricingResult(
                success=False,
                device_id=external_id,
                new_price=price_per_hour,
                dry_run=False,
                message=exc.message,
            )

        self._provenance[Provenance.LIVE.value] += 1
        logger.info(
            "Price applied",
            extra={"connector": self.type.value, "new_price": price_per_hour},
        )
        return PricingResult(
            success=True,
            device_id=external_id,
            new_price=price_per_hour,
            dry_run=False,
            message="Price applied",
            applied_at=self._now(),
        )

    async def apply_pricing(
        self, external_id: str, price_per_hour: float, dry_run: bool = True
    ) -> bool:
        result = await self.apply_pricing_detailed(external_id, price_per_hour, dry_run)
        return result.success

    # === Introspection ===

    async def get_health(self) -> HealthReport:
        """
        healthy: live API answered the health probe.
        degraded: live tier unavailable; reads are served by fallbacks.
        unhealthy: connector disposed or not initialized.
        """
        started = time.monotonic()
        errors = list(self._recent_errors)
        provenance = dict(self._provenance)

        if self._state is not ConnectorState.READY:
            return HealthReport(
                status="unhealthy",
                last_check=self._now(),
                latency_ms=0,
                errors=[*errors, f"connector state is {self._state.value}"],
                provenance=provenance,
            )

        status = "degraded"
        if not self.has_live_access:
            errors.append("live API not configured; serving fallback data")
        else:
            try:
                await self._client().get(self.profile.endpoints.health)
            except ConnectorError as exc:
                errors.append(f"health probe failed: {exc.message}")
            else:
                status = "healthy"

        return HealthReport(
            status=status,
            last_check=self._now(),
            latency_ms=round((time.monotonic() - started) * 1000, 2),
            errors=errors,
            provenance=provenance,
        )

    async def validate_credentials(self) -> CredentialReport:
        self._ensure_not_disposed()
        if not self.config.api_key:
            if self.profile.requires_api_key:
                return CredentialReport(valid=False, limitations=["No API key provided"])
            return CredentialReport(
                valid=True, permissions=["read_public"], limitations=["Public endpoints only"]
            )
        if self._settings.use_mock_data:
            return CredentialReport(
                valid=False, limitations=["Mock data mode: credentials not checked"]
            )
        try:
            await self._call_live(
                "validate_credentials", lambda: self._client().get(self.profile.endpoints.auth)
            )
        except ApiError as exc:
            if exc.status in (401, 403):
                return CredentialReport(valid=False, limitations=["Invalid or expired API key"])
            return CredentialReport(
                valid=False, limitations=[f"Could not verify credentials: {exc.message}"]
            )
        except RateLimitError as exc:
            return CredentialReport(
                valid=False, limitations=[f"Could not verify credentials: {exc.message}"]
            )
        return CredentialReport(
            valid=True,
            permissions=list(self.profile.permissions),
            limitations=list(self.profile.limitations),
        )

    async def get_node_ids(self) -> list[str]:
        statuses = await self.get_node_status()
        if isinstance(statuses, list):
            return [status.id for status in statuses]
        return [statuses.id]

    def get_rate_limit_info(self) -> RateLimitInfo:
        return self._limiter.get_info()

    def connector_info(self) -> ConnectorInfo:
        return self.profile.info()

    def get_info(self) -> dict[str, Any]:
        """Runtime snapshot for diagnostics. Never includes credentials."""
        return {
            "type": self.type.value,
            "name": self.name,
            "state": self._state.value,
            "currency": self.profile.currency,
            "base_url": self.config.base_url,
            "has_api_key": bool(self.config.api_key),
            "live": self.has_live_access,
            "scraper": self._scraper.get_browser_info() if self._scraper else None,
            "cache": self._cache.get_stats() if self._cache else None,
            "rate_limit": self._limiter.get_status(),
            "provenance": dict(self._provenance),
            "info": self.profile.info().model_dump(mode="json"),
        }
