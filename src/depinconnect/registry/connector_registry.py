"""
Connector registry: creates, shares and disposes connector instances.

Instances are singletons per ``ConnectorConfig.fingerprint``: the same
network, API-key presence and base URL always return the same object. All
connectors created by one registry share its cache store and exporter.

Adding a network means registering a ``ConnectorSpec``; creation never
branches on the connector type.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from depinconnect.cache import CacheStore
from depinconnect.connectors import CONNECTOR_CLASSES, BaseConnector
from depinconnect.contracts import (
    ConnectorConfig,
    ConnectorInfo,
    ConnectorState,
    ConnectorType,
    ValidationResult,
)
from depinconnect.errors import ConfigError
from depinconnect.observability import ConnectorMetricsExporter
from depinconnect.registry.validation import validate_connector_config
from depinconnect.settings import FrameworkSettings, network_env_overrides

logger = logging.getLogger(__name__)

ConnectorFactory = Callable[..., BaseConnector]


@dataclass(frozen=True)
class ConnectorSpec:
    """Registration entry: how to build one network's connector."""

    factory: ConnectorFactory
    info: ConnectorInfo
    default_base_url: str


@dataclass(frozen=True)
class DisposeFailure:
    """A connector that raised while being disposed by ``clear_all``."""

    key: str
    connector: str
    error: str


def builtin_specs() -> dict[ConnectorType, ConnectorSpec]:
    """Specs for every network shipped with the package."""
    return {
        connector_type: ConnectorSpec(
            factory=cls,
            info=cls.profile.info(),
            default_base_url=cls.profile.default_base_url,
        )
        for connector_type, cls in CONNECTOR_CLASSES.items()
    }


class ConnectorRegistry:
    """
    Explicit, non-global connector registry.

    Args:
        cache: Shared cache store; one is created from settings if omitted.
        exporter: Prometheus exporter handed to every connector.
        settings: Framework settings (mock mode, cache TTL).
        env: Environment used by ``create_with_auto_config`` (os.environ
            when None).
        specs: Registration table; defaults to the built-in networks.

    Usage:
        async with ConnectorRegistry() as registry:
            ionet = await registry.create_and_initialize(ConnectorType.IONET, config)
            nodes = await ionet.get_node_status()
    """

    def __init__(
        self,
        *,
        cache: CacheStore | None = None,
        exporter: ConnectorMetricsExporter | None = None,
        settings: FrameworkSettings | None = None,
        env: Mapping[str, str] | None = None,
        specs: Mapping[ConnectorType, ConnectorSpec] | None = None,
    ) -> None:
        self._settings = settings or FrameworkSettings()
        self._owns_cache = cache is None
        self._cache = cache or CacheStore(default_ttl_seconds=self._settings.cache_ttl_s)
        self._exporter = exporter
        self._env = env
        self._specs: dict[ConnectorType, ConnectorSpec] = dict(
            specs if specs is not None else builtin_specs()
        )
        self._instances: dict[str, BaseConnector] = {}

    @property
    def cache(self) -> CacheStore:
        return self._cache

    @property
    def settings(self) -> FrameworkSettings:
        return self._settings

    # === Lifecycle ===

    async def init(self) -> None:
        """Start background cache maintenance."""
        if self._owns_cache:
            self._cache.start()

    async def shutdown(self) -> list[DisposeFailure]:
        """Dispose every connector and stop the cache sweep."""
        failures = await self.clear_all()
        if self._owns_cache:
            await self._cache.close()
        return failures

    async def __aenter__(self) -> ConnectorRegistry:
        await self.init()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.shutdown()

    # === Registration ===

    def register(self, connector_type: ConnectorType, spec: ConnectorSpec) -> None:
        if connector_type in self._specs:
            logger.info("Replacing connector spec", extra={"connector": connector_type.value})
        self._specs[connector_type] = spec

    def available_types(self) -> list[ConnectorType]:
        return list(self._specs)

    def type_info(self, connector_type: ConnectorType | str) -> ConnectorInfo:
        return self._spec(self._coerce(connector_type)).info

    def _coerce(self, connector_type: ConnectorType | str) -> ConnectorType:
        try:
            return ConnectorType(connector_type)
        except ValueError:
            raise ConfigError(
                f"Unsupported connector type: {connector_type}",
                details={"supported": [t.value for t in self._specs]},
            ) from None

    def _spec(self, connector_type: ConnectorType) -> ConnectorSpec:
        spec = self._specs.get(connector_type)
        if spec is None:
            raise ConfigError(
                f"Unsupported connector type: {connector_type.value}",
                details={"supported": [t.value for t in self._specs]},
            )
        return spec

    def _normalize(self, spec: ConnectorSpec, config: ConnectorConfig | None) -> ConnectorConfig:
        config = config or ConnectorConfig()
        if config.base_url is None:
            config = config.with_overrides(base_url=spec.default_base_url)
        return config

    def _key(self, connector_type: ConnectorType | str, config: ConnectorConfig | None) -> str:
        resolved = self._coerce(connector_type)
        return self._normalize(self._spec(resolved), config).fingerprint(resolved)

    def _publish_count(self) -> None:
        if self._exporter is not None:
            self._exporter.set_registry_instances(len(self._instances))

    # === Validation ===

    def validate_config(
        self, connector_type: ConnectorType | str, config: ConnectorConfig | None
    ) -> ValidationResult:
        resolved = self._coerce(connector_type)
        return validate_connector_config(
            self._spec(resolved).info,
            config or ConnectorConfig(),
            use_mock_data=self._settings.use_mock_data,
        )

    # === Creation ===

    def create(
        self,
        connector_type: ConnectorType | str,
        config: ConnectorConfig | None = None,
        *,
        strict: bool = False,
    ) -> BaseConnector:
        """
        Return the connector for ``(type, key presence, base URL)``, creating it once.

        With ``strict=True`` validation errors raise ConfigError. Otherwise
        they are logged and the connector is created anyway: without
        credentials it serves scraped or simulated data.
        """
        resolved = self._coerce(connector_type)
        spec = self._spec(resolved)
        result = self.validate_config(resolved, config)
        if not result.valid:
            if strict:
                raise ConfigError(
                    "; ".join(result.errors),
                    details={"connector": resolved.value, "errors": result.errors},
                )
            logger.warning(
                "Connector config invalid, live tier unavailable",
                extra={"connector": resolved.value, "errors": result.errors},
            )
        if result.warnings:
            logger.debug(
                "Connector config warnings",
                extra={"connector": resolved.value, "warnings": result.warnings},
            )

        normalized = self._normalize(spec, config)
        key = normalized.fingerprint(resolved)
        existing = self._instances.get(key)
        if existing is not None and existing.state is not ConnectorState.DISPOSED:
            return existing

        connector = spec.factory(
            normalized, cache=self._cache, exporter=self._exporter, settings=self._settings
        )
        self._instances[key] = connector
        self._publish_count()
        logger.info("Connector created", extra={"connector": resolved.value, "instance": key})
        return connector

    async def create_and_initialize(
        self,
        connector_type: ConnectorType | str,
        config: ConnectorConfig | None = None,
        *,
        strict: bool = False,
    ) -> BaseConnector:
        connector = self.create(connector_type, config, strict=strict)
        await connector.initialize()
        return connector

    def create_multiple(
        self,
        entries: Iterable[tuple[ConnectorType | str, ConnectorConfig | None]],
        *,
        strict: bool = False,
    ) -> list[BaseConnector]:
        return [self.create(t, config, strict=strict) for t, config in entries]

    async def create_and_initialize_multiple(
        self,
        entries: Iterable[tuple[ConnectorType | str, ConnectorConfig | None]],
        *,
        strict: bool = False,
    ) -> list[BaseConnector]:
        connectors = self.create_multiple(entries, strict=strict)
        await asyncio.gather(*(c.initialize() for c in connectors))
        return connectors

    def auto_config(self, connector_type: ConnectorType | str) -> ConnectorConfig:
        """Defaults for a network: its base URL, settings TTL, and env credentials."""
        resolved = self._coerce(connector_type)
        spec = self._spec(resolved)
        base = ConnectorConfig(
            base_url=spec.default_base_url,
            cache={"enabled": True, "ttl_seconds": self._settings.cache_ttl_s},
        )
        return base.with_overrides(**network_env_overrides(resolved, self._env))

    def create_with_auto_config(
        self,
        connector_type: ConnectorType | str,
        overrides: Mapping[str, Any] | None = None,
        *,
        strict: bool = False,
    ) -> BaseConnector:
        """Environment-derived config; explicit ``overrides`` win, nested dicts merged."""
        config = self.auto_config(connector_type).with_overrides(**dict(overrides or {}))
        return self.create(connector_type, config, strict=strict)

    # === Lookup and removal ===

    def get_instance(
        self, connector_type: ConnectorType | str, config: ConnectorConfig | None = None
    ) -> BaseConnector | None:
        return self._instances.get(self._key(connector_type, config))

    def has_instance(
        self, connector_type: ConnectorType | str, config: ConnectorConfig | None = None
    ) -> bool:
        return self._key(connector_type, config) in self._instances

    async def remove_instance(
        self, connector_type: ConnectorType | str, config: ConnectorConfig | None = None
    ) -> bool:
        """Dispose and forget one instance. The entry is dropped even if dispose raises."""
        key = self._key(connector_type, config)
        connector = self._instances.pop(key, None)
        if connector is None:
            return False
        self._publish_count()
        await connector.dispose()
        return True

    def get_all_instances(self) -> list[BaseConnector]:
        return list(self._instances.values())

    def get_instances_by_type(self, connector_type: ConnectorType | str) -> list[BaseConnector]:
        resolved = self._coerce(connector_type)
        return [c for c in self._instances.values() if c.type is resolved]

    async def clear_all(self) -> list[DisposeFailure]:
        """
        Dispose every instance concurrently and empty the registry.

        A failing dispose never stops the others; failures are returned.
        """
        items = list(self._instances.items())
        self._instances.clear()
        self._publish_count()
        outcomes = await asyncio.gather(
            *(connector.dispose() for _, connector in items), return_exceptions=True
        )
        failures: list[DisposeFailure] = []
        for (key, connector), outcome in zip(items, outcomes, strict=True):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                failures.append(
                    DisposeFailure(key=key, connector=connector.type.value, error=str(outcome))
                )
                logger.error(
                    "Connector dispose failed",
                    extra={"connector": connector.type.value, "error": str(outcome)},
                )
        return failures

    def get_stats(self) -> dict[str, Any]:
        by_type = {t.value: 0 for t in self._specs}
        for connector in self._instances.values():
            by_type[connector.type.value] = by_type.get(connector.type.value, 0) + 1
        return {
            "total_instances": len(self._instances),
            "instances_by_type": by_type,
            "cache": self._cache.get_stats(),
        }
