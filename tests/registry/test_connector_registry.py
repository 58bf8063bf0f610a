"""Tests for ConnectorRegistry."""

from __future__ import annotations

from typing import Any

import pytest
from prometheus_client import CollectorRegistry

from depinconnect.connectors import IoNetConnector, NosanaConnector
from depinconnect.contracts import ConnectorConfig, ConnectorState, ConnectorType
from depinconnect.errors import ConfigError
from depinconnect.observability import ConnectorMetricsExporter
from depinconnect.registry import ConnectorRegistry, ConnectorSpec, builtin_specs
from depinconnect.settings import FrameworkSettings


class ExplodingConnector(IoNetConnector):
    """Connector whose dispose always fails."""

    async def dispose(self) -> None:
        await super().dispose()
        raise RuntimeError("browser refused to close")


@pytest.fixture
def registry() -> ConnectorRegistry:
    return ConnectorRegistry(settings=FrameworkSettings(use_mock_data=True), env={})


class TestCreate:
    """Creation and instance sharing."""

    def test_singleton_per_fingerprint(self, registry: ConnectorRegistry) -> None:
        """Same type, key presence and base URL share one instance."""
        a = registry.create(ConnectorType.IONET, ConnectorConfig(api_key="k1"))
        b = registry.create("ionet", ConnectorConfig(api_key="k1", timeout_ms=5_000))
        assert a is b
        assert registry.get_stats()["total_instances"] == 1

    def test_distinct_base_url(self, registry: ConnectorRegistry) -> None:
        """Another base URL is another instance."""
        a = registry.create(ConnectorType.IONET)
        b = registry.create(ConnectorType.IONET, ConnectorConfig(base_url="https://eu.io.net"))
        assert a is not b
        assert a.config.base_url == "https://api.io.net"

    def test_key_presence_distinguishes(self, registry: ConnectorRegistry) -> None:
        """Keyed and keyless configs do not share an instance."""
        a = registry.create(ConnectorType.IONET)
        b = registry.create(ConnectorType.IONET, ConnectorConfig(api_key="k1"))
        assert a is not b

    def test_shared_cache(self, registry: ConnectorRegistry) -> None:
        """Every connector uses the registry's cache store."""
        connector = registry.create(ConnectorType.RENDER)
        assert connector._cache is registry.cache

    def test_unknown_type(self, registry: ConnectorRegistry) -> None:
        """Unsupported types raise ConfigError listing what is supported."""
        with pytest.raises(ConfigError) as exc_info:
            registry.create("filecoin")
        assert "filecoin" in exc_info.value.message
        assert "ionet" in exc_info.value.details["supported"]

    def test_strict_rejects_missing_key(self) -> None:
        """Strict creation refuses configs that cannot go live."""
        registry = ConnectorRegistry(env={})
        with pytest.raises(ConfigError, match="requires an API key"):
            registry.create(ConnectorType.IONET, strict=True)

    def test_lenient_creates_anyway(self) -> None:
        """Non-strict creation logs and returns a fallback-only connector."""
        registry = ConnectorRegistry(env={})
        connector = registry.create(ConnectorType.IONET)
        assert connector.has_live_access is False

    def test_keyless_network_valid(self) -> None:
        """Networks without key requirements validate in strict mode."""
        registry = ConnectorRegistry(env={})
        assert isinstance(registry.create(ConnectorType.NOSANA, strict=True), NosanaConnector)

    def test_recreate_after_dispose(self, registry: ConnectorRegistry) -> None:
        """A disposed instance is replaced on the next create."""
        first = registry.create(ConnectorType.IONET)
        first._state = ConnectorState.DISPOSED
        assert registry.create(ConnectorType.IONET) is not first

    @pytest.mark.asyncio
    async def test_create_and_initialize_multiple(self, registry: ConnectorRegistry) -> None:
        """Batch creation initializes every connector."""
        connectors = await registry.create_and_initialize_multiple(
            [(ConnectorType.IONET, None), ("grass", ConnectorConfig(api_key="g"))]
        )
        assert [c.type for c in connectors] == [ConnectorType.IONET, ConnectorType.GRASS]
        assert all(c.is_ready() for c in connectors)
        await registry.shutdown()


class TestAutoConfig:
    """Environment-derived configuration."""

    def test_env_credentials(self) -> None:
        """Network variables fill in key, URL and scraper login."""
        env = {
            "IONET_API_KEY": "env-key",
            "IONET_BASE_URL": "https://staging.io.net/",
            "IONET_SCRAPER_USERNAME": "op",
            "IONET_SCRAPER_PASSWORD": "pw",
        }
        registry = ConnectorRegistry(settings=FrameworkSettings(cache_ttl_s=60), env=env)

        config = registry.auto_config(ConnectorType.IONET)

        assert config.api_key == "env-key"
        assert config.base_url == "https://staging.io.net"
        assert config.scraper.enabled is True
        assert config.cache.ttl_seconds == 60

    def test_overrides_win(self) -> None:
        """Explicit overrides beat the environment; nested blocks merge."""
        registry = ConnectorRegistry(env={"RENDER_API_KEY": "env-key"})

        connector = registry.create_with_auto_config(
            ConnectorType.RENDER, {"api_key": "explicit", "rate_limit": {"requests": 10}}
        )

        assert connector.config.api_key == "explicit"
        assert connector.config.rate_limit.requests == 10
        assert connector.config.rate_limit.window_ms == 60_000
        assert connector.config.base_url == "https://api.rendertoken.com"

    def test_defaults_without_env(self, registry: ConnectorRegistry) -> None:
        """With nothing set the profile defaults apply."""
        config = registry.auto_config("natix")
        assert config.api_key is None
        assert config.base_url == "https://api.natix.network"


class TestLookupAndRemoval:
    """get / has / remove / clear."""

    def test_get_and_has(self, registry: ConnectorRegistry) -> None:
        """Lookups resolve the same fingerprint as create."""
        connector = registry.create(ConnectorType.HUDDLE01)
        assert registry.has_instance(ConnectorType.HUDDLE01)
        assert registry.get_instance("huddle01") is connector
        assert registry.get_instance(ConnectorType.OWNAI) is None

    def test_instances_by_type(self, registry: ConnectorRegistry) -> None:
        """Instances can be listed per network."""
        registry.create(ConnectorType.IONET)
        registry.create(ConnectorType.IONET, ConnectorConfig(base_url="https://eu.io.net"))
        registry.create(ConnectorType.GRASS)
        assert len(registry.get_instances_by_type(ConnectorType.IONET)) == 2
        assert len(registry.get_all_instances()) == 3

    @pytest.mark.asyncio
    async def test_remove_instance(self, registry: ConnectorRegistry) -> None:
        """Removal disposes and forgets the instance."""
        connector = registry.create(ConnectorType.IONET)

        assert await registry.remove_instance(ConnectorType.IONET) is True
        assert await registry.remove_instance(ConnectorType.IONET) is False
        assert connector.state is ConnectorState.DISPOSED
        assert not registry.has_instance(ConnectorType.IONET)

    @pytest.mark.asyncio
    async def test_clear_all_collects_failures(self) -> None:
        """One failing dispose does not stop the others."""
        specs = builtin_specs()
        specs[ConnectorType.IONET] = ConnectorSpec(
            factory=ExplodingConnector,
            info=specs[ConnectorType.IONET].info,
            default_base_url="https://api.io.net",
        )
        registry = ConnectorRegistry(
            settings=FrameworkSettings(use_mock_data=True), env={}, specs=specs
        )
        bad = registry.create(ConnectorType.IONET)
        good = registry.create(ConnectorType.NOSANA)

        failures = await registry.clear_all()

        assert len(failures) == 1
        assert failures[0].connector == "ionet"
        assert failures[0].error == "browser refused to close"
        assert bad.state is ConnectorState.DISPOSED
        assert good.state is ConnectorState.DISPOSED
        assert registry.get_all_instances() == []

    @pytest.mark.asyncio
    async def test_context_manager(self) -> None:
        """Leaving the context disposes every instance."""
        async with ConnectorRegistry(
            settings=FrameworkSettings(use_mock_data=True), env={}
        ) as registry:
            connector = await registry.create_and_initialize(ConnectorType.OWNAI)
        assert connector.state is ConnectorState.DISPOSED


class TestIntrospection:
    """Types, stats and metrics."""

    def test_available_types(self, registry: ConnectorRegistry) -> None:
        """All built-in networks are registered."""
        assert set(registry.available_types()) == set(ConnectorType)

    def test_type_info(self, registry: ConnectorRegistry) -> None:
        """Static info is available without creating a connector."""
        info = registry.type_info("render")
        assert info.currency == "RNDR"
        assert info.supports_pricing_write is True

    def test_validate_config(self) -> None:
        """Validation reports errors and warnings separately."""
        registry = ConnectorRegistry(env={})
        result = registry.validate_config(
            ConnectorType.NATIX, ConnectorConfig(timeout_ms=500, scraper={"enabled": True})
        )
        assert result.valid is False
        assert "natix requires an API key" in result.errors
        assert any("Timeout" in w for w in result.warnings)
        assert any("no dashboard scraper" in w for w in result.warnings)

    def test_stats(self, registry: ConnectorRegistry) -> None:
        """Stats count instances per type, zero included."""
        registry.create(ConnectorType.GRASS)
        stats = registry.get_stats()
        assert stats["total_instances"] == 1
        assert stats["instances_by_type"]["grass"] == 1
        assert stats["instances_by_type"]["ionet"] == 0
        assert "hit_rate" in stats["cache"]

    @pytest.mark.asyncio
    async def test_instance_gauge(self) -> None:
        """The registry publishes its instance count."""
        prom = CollectorRegistry()
        registry = ConnectorRegistry(
            exporter=ConnectorMetricsExporter(registry=prom),
            settings=FrameworkSettings(use_mock_data=True),
            env={},
        )

        registry.create(ConnectorType.IONET)
        registry.create(ConnectorType.NOSANA)
        assert prom.get_sample_value("depin_registry_instances") == 2

        await registry.remove_instance(ConnectorType.NOSANA)
        assert prom.get_sample_value("depin_registry_instances") == 1

    def test_register_custom_spec(self, registry: ConnectorRegistry) -> None:
        """New factories can be registered without touching creation."""
        calls: list[dict[str, Any]] = []

        def factory(config: ConnectorConfig, **kwargs: Any) -> IoNetConnector:
            calls.append(kwargs)
            return IoNetConnector(config, **kwargs)

        spec = builtin_specs()[ConnectorType.IONET]
        registry.register(
            ConnectorType.IONET,
            ConnectorSpec(factory=factory, info=spec.info, default_base_url=spec.default_base_url),
        )
        registry.create(ConnectorType.IONET)

        assert len(calls) == 1
        assert calls[0]["cache"] is registry.cache
        assert calls[0]["settings"] is registry.settings
