"""Tests for the shared connector fallback chain."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import orjson
import pytest
from prometheus_client import CollectorRegistry

from depinconnect.cache import CacheStore
from depinconnect.connectors import (
    ApiClient,
    IoNetConnector,
    NosanaConnector,
)
from depinconnect.contracts import (
    ConnectorConfig,
    ConnectorState,
    Period,
    PeriodKind,
    Provenance,
    RateLimitConfig,
)
from depinconnect.errors import (
    ApiError,
    CacheError,
    ConfigError,
    ConnectorDisposedError,
    ScraperError,
    ValidationError,
)
from depinconnect.observability import ConnectorMetricsExporter
from depinconnect.resilience import TokenBucketLimiter
from depinconnect.scraper import DashboardScraper
from depinconnect.settings import FrameworkSettings
from depinconnect.simulator import generate_node_ids

NOW = datetime(2025, 9, 24, 14, 0, tzinfo=UTC)
NOW_MS = int(NOW.timestamp() * 1000)
API_KEY = "io-secret-key-123"

AUTH = "/api/v1/auth/validate"
NODE_PAYLOAD = {"node_id": "io-7", "status": "active", "uptime_seconds": 60}


def clock() -> int:
    return NOW_MS


def make_api(routes: dict[str, Any] | None = None) -> MagicMock:
    """ApiClient double answering GETs from a route table; exceptions are raised."""
    table = {AUTH: {"ok": True}, **(routes or {})}

    async def get(endpoint: str, params: dict[str, Any] | None = None) -> Any:
        value = table.get(endpoint, {})
        if isinstance(value, Exception):
            raise value
        return value

    api = MagicMock(spec=ApiClient)
    api.get = AsyncMock(side_effect=get)
    api.post = AsyncMock(return_value={})
    api.put = AsyncMock(return_value=None)
    api.close = AsyncMock()
    return api


def make_scraper(values: dict[str, str | None] | None = None) -> MagicMock:
    scraper = MagicMock(spec=DashboardScraper)
    scraper.extract_data = AsyncMock(return_value=values or {})
    scraper.dispose = AsyncMock()
    return scraper


def get_calls(api: MagicMock, endpoint: str) -> int:
    return [call.args[0] for call in api.get.await_args_list].count(endpoint)


def live_config(**overrides: Any) -> ConnectorConfig:
    return ConnectorConfig(api_key=API_KEY, retry_attempts=1, retry_delay_ms=0, **overrides)


@pytest.fixture
def week() -> Period:
    return Period.last(PeriodKind.WEEK, NOW)


class TestFallbackChain:
    """Live, then scraper, then simulator."""

    @pytest.mark.asyncio
    async def test_live_success(self) -> None:
        """A working API serves the read."""
        api = make_api({"/api/v1/nodes/io-7": NODE_PAYLOAD})
        connector = IoNetConnector(live_config(), api_client=api, time_fn=clock)

        result = await connector.fetch_node_status("io-7")

        assert result.provenance is Provenance.LIVE
        assert result.is_live
        assert result.errors == []
        assert result.fetched_at_ms == NOW_MS
        assert result.data.id == "io-7"
        assert result.data.status == "online"

    @pytest.mark.asyncio
    async def test_live_failure_falls_back_to_scraper(self, week: Period) -> None:
        """A fatal API error moves on to the dashboard."""
        api = make_api({"/api/v1/earnings": ApiError("not found", status=404)})
        scraper = make_scraper({"total_earnings": "12.5 IO"})
        connector = IoNetConnector(live_config(), api_client=api, scraper=scraper, time_fn=clock)

        result = await connector.fetch_earnings(week)

        assert result.provenance is Provenance.SCRAPED
        assert result.data.total == pytest.approx(12.5)
        assert len(result.errors) == 1
        assert result.errors[0].startswith("live:")
        assert get_calls(api, "/api/v1/earnings") == 1

    @pytest.mark.asyncio
    async def test_transient_failure_retried_before_fallback(self, week: Period) -> None:
        """5xx responses are retried, then the chain continues."""
        api = make_api({"/api/v1/earnings": ApiError("unavailable", status=503)})
        connector = IoNetConnector(live_config(), api_client=api, time_fn=clock)

        result = await connector.fetch_earnings(week)

        assert result.provenance is Provenance.SIMULATED
        assert get_calls(api, "/api/v1/earnings") == 2

    @pytest.mark.asyncio
    async def test_all_tiers_fail_to_simulator(self, week: Period) -> None:
        """Simulated data is returned with every tier failure recorded."""
        api = make_api({"/api/v1/earnings": ApiError("bad", status=400)})
        scraper = make_scraper()
        scraper.extract_data.side_effect = ScraperError("page crashed")
        connector = IoNetConnector(live_config(), api_client=api, scraper=scraper, time_fn=clock)

        result = await connector.fetch_earnings(week)

        assert result.provenance is Provenance.SIMULATED
        assert [e.split(":")[0] for e in result.errors] == ["live", "scraped"]
        assert result.data.currency == "IO"
        assert result.data.total == pytest.approx(result.data.breakdown.total())

    @pytest.mark.asyncio
    async def test_no_credentials_goes_straight_to_simulator(self) -> None:
        """Without a key there is no live attempt and nothing to report."""
        api = make_api()
        connector = IoNetConnector(api_client=api, time_fn=clock)

        result = await connector.fetch_node_status()

        assert result.provenance is Provenance.SIMULATED
        assert result.errors == []
        assert [s.id for s in result.data] == generate_node_ids(connector.type)
        api.get.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_mock_mode_ignores_credentials(self) -> None:
        """use_mock_data forces the simulator."""
        api = make_api({"/api/v1/nodes/io-7": NODE_PAYLOAD})
        connector = IoNetConnector(
            live_config(),
            api_client=api,
            settings=FrameworkSettings(use_mock_data=True),
            time_fn=clock,
        )

        result = await connector.fetch_node_status("io-7")

        assert result.provenance is Provenance.SIMULATED
        api.get.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_local_rate_limit_skips_live(self) -> None:
        """A limiter rejection falls back without calling the API."""
        api = make_api({"/api/v1/nodes/io-7": NODE_PAYLOAD})
        limiter = TokenBucketLimiter(
            RateLimitConfig(requests=1, window_ms=60_000, max_queue_depth=0), _time_fn=clock
        )
        connector = IoNetConnector(live_config(), api_client=api, limiter=limiter, time_fn=clock)
        await connector.initialize()  # spends the only token on the credential check

        result = await connector.fetch_node_status("io-7")

        assert result.provenance is Provenance.SIMULATED
        assert "live:" in result.errors[0]
        assert get_calls(api, "/api/v1/nodes/io-7") == 0

    @pytest.mark.asyncio
    async def test_no_pricing_endpoint_skips_live(self) -> None:
        """Networks without a pricing API simulate the strategy."""
        api = make_api()
        connector = NosanaConnector(live_config(), api_client=api, time_fn=clock)

        result = await connector.fetch_pricing_strategy()

        assert result.provenance is Provenance.SIMULATED
        api.post.assert_not_awaited()


class TestCaching:
    """Cache tier."""

    @pytest.mark.asyncio
    async def test_second_read_is_cached(self) -> None:
        """Repeated reads hit the cache and are flagged."""
        api = make_api({"/api/v1/nodes/io-7": NODE_PAYLOAD})
        connector = IoNetConnector(live_config(), api_client=api, time_fn=clock)

        first = await connector.fetch_node_status("io-7")
        second = await connector.fetch_node_status("io-7")

        assert first.cached is False
        assert second.cached is True
        assert second.provenance is Provenance.LIVE
        assert second.data == first.data
        assert get_calls(api, "/api/v1/nodes/io-7") == 1

    @pytest.mark.asyncio
    async def test_cache_disabled(self) -> None:
        """With caching off every read goes to the API."""
        api = make_api({"/api/v1/nodes/io-7": NODE_PAYLOAD})
        connector = IoNetConnector(
            live_config(cache={"enabled": False}), api_client=api, time_fn=clock
        )

        await connector.fetch_node_status("io-7")
        result = await connector.fetch_node_status("io-7")

        assert result.cached is False
        assert get_calls(api, "/api/v1/nodes/io-7") == 2

    @pytest.mark.asyncio
    async def test_cache_error_is_a_miss(self) -> None:
        """A broken cache never blocks the read."""
        cache = MagicMock(spec=CacheStore)
        broken = CacheError("get", RuntimeError("down"))
        cache.get_or_set_with_outcome = AsyncMock(side_effect=broken)
        api = make_api({"/api/v1/nodes/io-7": NODE_PAYLOAD})
        connector = IoNetConnector(live_config(), cache=cache, api_client=api, time_fn=clock)

        result = await connector.fetch_node_status("io-7")

        assert result.provenance is Provenance.LIVE
        assert result.cached is False

    @pytest.mark.asyncio
    async def test_concurrent_reads_share_one_fetch(self) -> None:
        """Callers joining an in-flight fetch get its result, not a cache hit."""
        gate = asyncio.Event()

        async def slow_get(endpoint: str, params: dict[str, Any] | None = None) -> Any:
            if endpoint == AUTH:
                return {"ok": True}
            await gate.wait()
            return NODE_PAYLOAD

        api = make_api()
        api.get = AsyncMock(side_effect=slow_get)
        store = CacheStore(time_fn=clock)
        prom = CollectorRegistry()
        connector = IoNetConnector(
            live_config(),
            cache=store,
            exporter=ConnectorMetricsExporter(registry=prom),
            api_client=api,
            time_fn=clock,
        )

        tasks = [asyncio.ensure_future(connector.fetch_node_status("io-7")) for _ in range(3)]
        for _ in range(100):
            if store.stats.coalesced == 2:
                break
            await asyncio.sleep(0)
        gate.set()
        results = await asyncio.gather(*tasks)

        assert get_calls(api, "/api/v1/nodes/io-7") == 1
        assert [r.cached for r in results] == [False, False, False]
        assert all(r.provenance is Provenance.LIVE for r in results)

        def lookups(outcome: str) -> float | None:
            return prom.get_sample_value(
                "depin_cache_lookups_total", {"connector": "ionet", "outcome": outcome}
            )

        assert lookups("miss") == 1
        assert lookups("coalesced") == 2
        assert lookups("hit") is None

        again = await connector.fetch_node_status("io-7")
        assert again.cached is True
        assert lookups("hit") == 1

    @pytest.mark.asyncio
    async def test_shared_store_scoped_per_instance(self) -> None:
        """Two instances of one network do not serve each other's entries."""
        store = CacheStore(time_fn=clock)
        mock = FrameworkSettings(use_mock_data=True)
        a = IoNetConnector(
            ConnectorConfig(base_url="https://a.example"), cache=store, settings=mock
        )
        b = IoNetConnector(
            ConnectorConfig(base_url="https://b.example"), cache=store, settings=mock
        )

        assert (await a.fetch_node_status("n1")).cached is False
        assert (await b.fetch_node_status("n1")).cached is False
        assert (await a.fetch_node_status("n1")).cached is True
        assert store.get_stats()["keys"] == 2


class TestLifecycle:
    """initialize / dispose."""

    @pytest.mark.asyncio
    async def test_lazy_initialize(self, week: Period) -> None:
        """The first capability call initializes the connector."""
        connector = IoNetConnector(time_fn=clock)
        assert connector.state is ConnectorState.UNINITIALIZED

        await connector.get_earnings(week)

        assert connector.state is ConnectorState.READY
        assert connector.is_ready()

    @pytest.mark.asyncio
    async def test_initialize_checks_credentials(self) -> None:
        """Live connectors verify the key on initialize."""
        api = make_api()
        connector = IoNetConnector(live_config(), api_client=api, time_fn=clock)

        await connector.initialize()
        await connector.initialize()

        assert get_calls(api, AUTH) == 1

    @pytest.mark.asyncio
    async def test_invalid_credentials_do_not_block(self) -> None:
        """A rejected key is logged; the connector still becomes ready."""
        api = make_api({AUTH: ApiError("unauthorized", status=401)})
        connector = IoNetConnector(live_config(), api_client=api, time_fn=clock)

        await connector.initialize()

        assert connector.state is ConnectorState.READY

    @pytest.mark.asyncio
    async def test_malformed_base_url(self) -> None:
        """Non-HTTP base URLs are a configuration error."""
        connector = IoNetConnector(ConnectorConfig(base_url="ftp://files.io.net"))

        with pytest.raises(ConfigError):
            await connector.initialize()
        assert connector.state is ConnectorState.UNINITIALIZED

    @pytest.mark.asyncio
    async def test_default_base_url(self) -> None:
        """The profile supplies the base URL when none is configured."""
        assert IoNetConnector().config.base_url == "https://api.io.net"

    @pytest.mark.asyncio
    async def test_dispose(self) -> None:
        """Dispose closes collaborators once and blocks later calls."""
        api = make_api()
        scraper = make_scraper()
        connector = IoNetConnector(api_client=api, scraper=scraper, time_fn=clock)
        await connector.initialize()

        await connector.dispose()
        await connector.dispose()

        assert connector.state is ConnectorState.DISPOSED
        api.close.assert_awaited_once()
        scraper.dispose.assert_awaited_once()
        with pytest.raises(ConnectorDisposedError):
            await connector.get_node_status()
        with pytest.raises(ConnectorDisposedError):
            await connector.initialize()
        with pytest.raises(ConnectorDisposedError):
            await connector.apply_pricing("d1", 1.0)

    @pytest.mark.asyncio
    async def test_async_context_manager(self) -> None:
        """async with initializes and disposes."""
        async with IoNetConnector(time_fn=clock) as connector:
            assert connector.is_ready()
        assert connector.state is ConnectorState.DISPOSED


class TestDeviceCapabilities:
    """Device-level reads."""

    @pytest.mark.asyncio
    async def test_suggest_pricing_fraction(self) -> None:
        """A fractional target is read as a percentage."""
        connector = IoNetConnector(time_fn=clock)

        suggestion = await connector.suggest_pricing("dev-42", 0.75)

        assert suggestion.current_price >= 0
        assert "75%" in suggestion.reasoning
        assert "IO.NET" in suggestion.reasoning

    @pytest.mark.asyncio
    async def test_suggest_pricing_out_of_range(self) -> None:
        """Targets above 100 are rejected."""
        with pytest.raises(ValidationError):
            await IoNetConnector(time_fn=clock).suggest_pricing("dev-42", 150)

    @pytest.mark.asyncio
    async def test_occupancy_window_order(self) -> None:
        """An inverted window is rejected."""
        with pytest.raises(ValidationError):
            await IoNetConnector(time_fn=clock).get_occupancy("dev-1", NOW, NOW - timedelta(1))

    @pytest.mark.asyncio
    async def test_device_metrics_simulated(self) -> None:
        """Simulated samples fall inside the requested window."""
        connector = IoNetConnector(time_fn=clock)
        since = NOW - timedelta(hours=1)

        samples = await connector.get_device_metrics("dev-1", since)

        assert 0 < len(samples) <= 20
        assert all(since <= s.timestamp <= NOW for s in samples)

    @pytest.mark.asyncio
    async def test_device_status_live(self) -> None:
        """Device status reads the node endpoint."""
        api = make_api({"/api/v1/nodes/dev-1": {"online": True, "version": "1.2"}})
        connector = IoNetConnector(live_config(), api_client=api, time_fn=clock)

        status = await connector.get_device_status("dev-1")

        assert status.online is True
        assert status.version == "1.2"


class TestApplyPricing:
    """Pricing writes."""

    @pytest.mark.asyncio
    async def test_dry_run_touches_nothing(self) -> None:
        """Dry runs succeed without network or initialization."""
        api = make_api()
        connector = IoNetConnector(live_config(), api_client=api, time_fn=clock)

        assert await connector.apply_pricing("d1", 1.5, dry_run=True) is True
        api.put.assert_not_awaited()
        api.get.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_negative_price(self) -> None:
        """Negative prices are invalid."""
        with pytest.raises(ValidationError):
            await IoNetConnector().apply_pricing("d1", -1)

    @pytest.mark.asyncio
    async def test_no_write_api(self) -> None:
        """Networks without a pricing API ask for manual action."""
        connector = NosanaConnector(live_config(), api_client=make_api(), time_fn=clock)

        result = await connector.apply_pricing_detailed("d1", 2.0, dry_run=False)

        assert result.success is False
        assert "manually" in (result.message or "")

    @pytest.mark.asyncio
    async def test_simulated_without_credentials(self) -> None:
        """Without a key the write is simulated."""
        api = make_api()
        connector = IoNetConnector(api_client=api, time_fn=clock)

        result = await connector.apply_pricing_detailed("d1", 2.0, dry_run=False)

        assert result.dry_run is False
        assert result.message == "Simulated apply (no live credentials)"
        api.put.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_live_write(self) -> None:
        """Live writes PUT the new price and are never cached."""
        api = make_api()
        connector = IoNetConnector(live_config(), api_client=api, time_fn=clock)

        result = await connector.apply_pricing_detailed("d1", 1.5, dry_run=False)
        await connector.apply_pricing_detailed("d1", 1.5, dry_run=False)

        assert result.success is True
        assert result.applied_at == NOW
        api.put.assert_awaited_with("/api/v1/devices/d1/pricing", {"price_per_hour": 1.5})
        assert api.put.await_count == 2

    @pytest.mark.asyncio
    async def test_live_write_failure(self) -> None:
        """A rejected write reports failure instead of raising."""
        api = make_api()
        api.put.side_effect = ApiError("price out of bounds", status=422)
        connector = IoNetConnector(live_config(), api_client=api, time_fn=clock)

        result = await connector.apply_pricing_detailed("d1", 99.0, dry_run=False)

        assert result.success is False
        assert result.message == "price out of bounds"


class TestCredentials:
    """validate_credentials."""

    @pytest.mark.asyncio
    async def test_missing_required_key(self) -> None:
        """Networks that need a key report its absence."""
        report = await IoNetConnector().validate_credentials()
        assert report.valid is False
        assert report.limitations == ["No API key provided"]

    @pytest.mark.asyncio
    async def test_public_network_without_key(self) -> None:
        """Keyless networks are valid for public reads."""
        report = await NosanaConnector().validate_credentials()
        assert report.valid is True
        assert report.permissions == ["read_public"]

    @pytest.mark.asyncio
    async def test_mock_mode(self) -> None:
        """Mock mode never checks keys."""
        connector = IoNetConnector(
            live_config(), settings=FrameworkSettings(use_mock_data=True)
        )
        report = await connector.validate_credentials()
        assert report.valid is False

    @pytest.mark.asyncio
    async def test_rejected_key(self) -> None:
        """401 means an invalid key."""
        api = make_api({AUTH: ApiError("unauthorized", status=401)})
        connector = IoNetConnector(live_config(), api_client=api, time_fn=clock)

        report = await connector.validate_credentials()

        assert report.valid is False
        assert report.limitations == ["Invalid or expired API key"]
        assert get_calls(api, AUTH) == 1

    @pytest.mark.asyncio
    async def test_valid_key(self) -> None:
        """Accepted keys report the network's permissions."""
        connector = IoNetConnector(live_config(), api_client=make_api(), time_fn=clock)

        report = await connector.validate_credentials()

        assert report.valid is True
        assert "write_pricing" in report.permissions


class TestIntrospection:
    """Health and info."""

    @pytest.mark.asyncio
    async def test_health_unhealthy_before_init(self) -> None:
        """Uninitialized connectors are unhealthy."""
        report = await IoNetConnector(time_fn=clock).get_health()
        assert report.status == "unhealthy"

    @pytest.mark.asyncio
    async def test_health_degraded_without_live(self) -> None:
        """Fallback-only connectors are degraded."""
        connector = IoNetConnector(time_fn=clock)
        await connector.initialize()

        report = await connector.get_health()

        assert report.status == "degraded"
        assert report.last_check == NOW

    @pytest.mark.asyncio
    async def test_health_healthy(self) -> None:
        """A passing probe is healthy and counts provenance."""
        api = make_api({"/api/v1/nodes/io-7": NODE_PAYLOAD})
        connector = IoNetConnector(live_config(), api_client=api, time_fn=clock)
        await connector.get_node_status("io-7")

        report = await connector.get_health()

        assert report.status == "healthy"
        assert report.provenance == {"live": 1}
        assert get_calls(api, "/api/v1/health") == 1

    @pytest.mark.asyncio
    async def test_health_probe_failure(self) -> None:
        """A failing probe degrades the connector."""
        api = make_api({"/api/v1/health": ApiError("down", status=500)})
        connector = IoNetConnector(live_config(), api_client=api, time_fn=clock)
        await connector.initialize()

        report = await connector.get_health()

        assert report.status == "degraded"
        assert any(e.startswith("health probe failed") for e in report.errors)

    @pytest.mark.asyncio
    async def test_get_node_ids(self) -> None:
        """Node ids come from the status listing."""
        connector = IoNetConnector(time_fn=clock)
        assert await connector.get_node_ids() == generate_node_ids(connector.type)

    def test_get_info_hides_key(self) -> None:
        """Diagnostics never contain the key itself."""
        connector = IoNetConnector(live_config(), time_fn=clock)

        info = connector.get_info()

        assert info["has_api_key"] is True
        assert info["live"] is True
        assert API_KEY not in orjson.dumps(info).decode()
        assert API_KEY not in repr(connector.config)

    def test_rate_limit_info(self) -> None:
        """Rate limit info reflects the configured bucket."""
        connector = IoNetConnector(
            ConnectorConfig(rate_limit={"requests": 5}), time_fn=clock
        )
        info = connector.get_rate_limit_info()
        assert info.limit == 5
        assert info.remaining == 5
