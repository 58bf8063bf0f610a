"""
HTTP server for Prometheus /metrics and connector /healthz.

GET /metrics serves generate_latest(registry). GET /healthz serves a JSON
health summary; built from connector health reports it aggregates every
connector's status and answers 503 once any connector is unhealthy.
"""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
from collections import Counter
from collections.abc import Awaitable, Callable, Iterable
from typing import TYPE_CHECKING, Any

from aiohttp import web
from prometheus_client import generate_latest

if TYPE_CHECKING:
    from prometheus_client.registry import CollectorRegistry

    from depinconnect.connectors.base import BaseConnector
    from depinconnect.registry import ConnectorRegistry

logger = logging.getLogger(__name__)

# Type alias for aiohttp handler
_Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]

# May be sync or async; async lets /healthz await connector health probes.
HealthFn = Callable[[], dict[str, Any] | Awaitable[dict[str, Any]]]

HEALTH_STATUSES = ("healthy", "degraded", "unhealthy")


async def collect_connector_health(connectors: Iterable[BaseConnector]) -> dict[str, Any]:
    """
    Probe every connector and fold the reports into one health body.

    Overall status is "ok" while each connector is healthy or degraded
    (degraded connectors still answer from cache, scraper or simulator) and
    "unhealthy" as soon as one is not. Connectors are keyed by network;
    further instances of the same network get a "#2", "#3" suffix.
    """
    items = list(connectors)
    reports = await asyncio.gather(*(c.get_health() for c in items))

    seen: Counter[str] = Counter()
    by_connector: dict[str, Any] = {}
    for connector, report in zip(items, reports, strict=True):
        name = connector.type.value
        seen[name] += 1
        if seen[name] > 1:
            name = f"{name}#{seen[name]}"
        by_connector[name] = report.model_dump(mode="json")

    counts = Counter(report.status for report in reports)
    return {
        "status": "unhealthy" if counts["unhealthy"] else "ok",
        "counts": {status: counts[status] for status in HEALTH_STATUSES},
        "connectors": by_connector,
    }


def registry_health_fn(
    registry: ConnectorRegistry,
    extra: Callable[[], dict[str, Any]] | None = None,
) -> HealthFn:
    """
    Build a /healthz callback covering every connector the registry holds.

    Args:
        registry: Registry whose live instances are probed on each request.
        extra: Optional callback whose fields are merged into the body.
    """

    async def health() -> dict[str, Any]:
        info = await collect_connector_health(registry.get_all_instances())
        if extra is not None:
            info.update(extra())
        return info

    return health


def _make_metrics_handler(registry: CollectorRegistry) -> _Handler:
    """Create GET /metrics handler bound to a registry."""

    async def handler(request: web.Request) -> web.Response:
        body = generate_latest(registry)
        return web.Response(
            body=body,
            content_type="text/plain; version=0.0.4",
            charset="utf-8",
        )

    return handler


def _make_healthz_handler(health_fn: HealthFn | None = None) -> _Handler:
    """Create GET /healthz handler.

    Args:
        health_fn: Optional callback returning a health dict. If None,
            returns a minimal {"status": "ok"} response.
    """

    async def handler(request: web.Request) -> web.Response:
        if health_fn is None:
            info: dict[str, Any] = {"status": "ok"}
        else:
            outcome = health_fn()
            info = await outcome if inspect.isawaitable(outcome) else outcome
        status = 503 if info.get("status") == "unhealthy" else 200
        return web.Response(
            status=status,
            body=json.dumps(info, default=str),
            content_type="application/json",
        )

    return handler


def create_metrics_app(
    registry: CollectorRegistry,
    *,
    health_fn: HealthFn | None = None,
) -> web.Application:
    """
    Create aiohttp Application with /metrics and /healthz routes.

    Args:
        registry: Prometheus CollectorRegistry to serve.
        health_fn: Optional callback for /healthz, e.g. registry_health_fn().
    """
    app = web.Application()
    app.router.add_get("/metrics", _make_metrics_handler(registry))
    app.router.add_get("/healthz", _make_healthz_handler(health_fn))
    return app


async def start_metrics_server(
    registry: CollectorRegistry,
    host: str = "0.0.0.0",
    port: int = 9090,
    *,
    health_fn: HealthFn | None = None,
) -> web.AppRunner:
    """
    Start the metrics HTTP server.

    Returns:
        AppRunner (pass to stop_metrics_server on shutdown).
    """
    app = create_metrics_app(registry, health_fn=health_fn)
    runner = web.AppRunner(app, access_log=None)
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    await site.start()
    logger.info("Metrics server started on http://%s:%d/metrics", host, port)
    return runner


async def stop_metrics_server(runner: web.AppRunner) -> None:
    await runner.cleanup()
    logger.info("Metrics server stopped")
