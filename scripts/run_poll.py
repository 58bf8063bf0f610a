#!/usr/bin/env python3
"""
Poll DePIN networks and write results as JSON lines.

Builds a ConnectorRegistry from the environment (``DEPIN_*`` settings plus
``${NETWORK}_API_KEY`` style credentials), then repeatedly fetches node
status and earnings for the chosen networks. Every line carries the tier
that produced the data (live / scraped / simulated).

Usage:
    python -m scripts.run_poll --networks ionet,nosana
    python -m scripts.run_poll --rounds 0 --interval-s 60   # until SIGINT/SIGTERM
    python -m scripts.run_poll --dry-run                     # validate configs only
    DEPIN_USE_MOCK_DATA=1 python -m scripts.run_poll -o out.jsonl
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any, TextIO

import orjson
from prometheus_client.registry import CollectorRegistry

from depinconnect.contracts import ConnectorType, Period, PeriodKind
from depinconnect.logging_config import setup_logging
from depinconnect.observability import (
    ConnectorMetricsExporter,
    registry_health_fn,
    start_metrics_server,
    stop_metrics_server,
)
from depinconnect.registry import ConnectorRegistry
from depinconnect.settings import FrameworkSettings

if TYPE_CHECKING:
    from collections.abc import Mapping

    from depinconnect.connectors import BaseConnector
    from depinconnect.contracts import Sourced

logger = logging.getLogger(__name__)


@dataclass
class PollConfig:
    """Configuration for one poll run."""

    networks: list[ConnectorType] = field(default_factory=lambda: list(ConnectorType))

    # Earnings window ending at poll time
    period: PeriodKind = PeriodKind.DAY

    # Number of poll rounds (0 = until SIGINT/SIGTERM)
    rounds: int = 1
    interval_s: float = 60.0

    # Output file for JSON lines (None = stdout)
    output_file: Path | None = None

    # Metrics server port (None = settings value, 0 = disabled)
    metrics_port: int | None = None

    dry_run: bool = False
    strict: bool = False
    verbose: bool = False

    def __post_init__(self) -> None:
        if not self.networks:
            raise ValueError("at least one network is required")
        if self.period is PeriodKind.CUSTOM:
            raise ValueError("period must be hour, day, week, month or year")
        if self.rounds < 0:
            raise ValueError(f"rounds must be >= 0, got {self.rounds}")
        if self.interval_s <= 0:
            raise ValueError(f"interval_s must be > 0, got {self.interval_s}")
        if self.metrics_port is not None and not 0 <= self.metrics_port <= 65535:
            raise ValueError(f"metrics_port must be 0..65535, got {self.metrics_port}")


def parse_networks(raw: str | None) -> list[ConnectorType]:
    """``"ionet, Grass"`` -> ``[IONET, GRASS]``; empty means every network."""
    if not raw:
        return list(ConnectorType)
    networks: list[ConnectorType] = []
    for part in raw.split(","):
        name = part.strip().lower()
        if not name:
            continue
        try:
            networks.append(ConnectorType(name))
        except ValueError:
            supported = ", ".join(t.value for t in ConnectorType)
            raise ValueError(f"Unknown network {name!r} (supported: {supported})") from None
    return networks


def format_record(
    connector: BaseConnector, method: str, result: Sourced[Any], now: datetime
) -> bytes:
    """One JSON line for a resolved capability call."""
    record = {
        "ts": now.isoformat(timespec="seconds"),
        "connector": connector.type.value,
        "method": method,
        "provenance": result.provenance.value,
        "cached": result.cached,
        "errors": result.errors,
        "data": result.model_dump(mode="json")["data"],
    }
    return orjson.dumps(record) + b"\n"


class Poller:
    """Runs poll rounds over registry-managed connectors."""

    def __init__(
        self,
        config: PollConfig,
        registry: ConnectorRegistry,
        output: TextIO,
    ) -> None:
        self._config = config
        self._registry = registry
        self._output = output
        self._running = False
        self._connectors: list[BaseConnector] = []
        self.rounds_completed = 0
        self.lines_written = 0

    @property
    def connectors(self) -> list[BaseConnector]:
        return list(self._connectors)

    def validate(self) -> bool:
        """Log validation results for every network; False if any has errors."""
        ok = True
        for network in self._config.networks:
            result = self._registry.validate_config(
                network, self._registry.auto_config(network)
            )
            if result.valid:
                logger.info(
                    "Config valid",
                    extra={"connector": network.value, "warnings": result.warnings},
                )
            else:
                ok = False
                logger.warning(
                    "Config invalid",
                    extra={"connector": network.value, "errors": result.errors},
                )
        return ok

    async def start(self) -> None:
        self._connectors = [
            self._registry.create_with_auto_config(network, strict=self._config.strict)
            for network in self._config.networks
        ]
        await asyncio.gather(*(c.initialize() for c in self._connectors))

    def _write(self, line: bytes) -> None:
        self._output.write(line.decode())
        self._output.flush()
        self.lines_written += 1

    async def _poll_connector(self, connector: BaseConnector, now: datetime) -> None:
        status = await connector.fetch_node_status()
        self._write(format_record(connector, "get_node_status", status, now))
        earnings = await connector.fetch_earnings(Period.last(self._config.period, now))
        self._write(format_record(connector, "get_earnings", earnings, now))

    async def poll_once(self) -> None:
        now = datetime.now(UTC)
        await asyncio.gather(*(self._poll_connector(c, now) for c in self._connectors))
        self.rounds_completed += 1
        logger.info(
            "Poll round complete",
            extra={"round": self.rounds_completed, "connectors": len(self._connectors)},
        )

    async def run(self) -> None:
        self._running = True
        while self._running:
            await self.poll_once()
            if self._config.rounds and self.rounds_completed >= self._config.rounds:
                break
            await self._sleep(self._config.interval_s)

    async def _sleep(self, seconds: float) -> None:
        # Wakes early once shutdown is requested.
        deadline = asyncio.get_running_loop().time() + seconds
        while self._running:
            remaining = deadline - asyncio.get_running_loop().time()
            if remaining <= 0:
                return
            await asyncio.sleep(min(remaining, 0.5))

    def request_shutdown(self) -> None:
        logger.info("Shutdown requested")
        self._running = False

    def health_extra(self) -> dict[str, Any]:
        return {"rounds_completed": self.rounds_completed}


def setup_signal_handlers(poller: Poller) -> None:
    """Signal handlers only flip the running flag; cleanup happens in run_poll."""

    def signal_handler(sig: int, frame: object) -> None:
        logger.info("Received signal %s, initiating shutdown", signal.Signals(sig).name)
        poller.request_shutdown()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)


async def run_poll(
    config: PollConfig,
    *,
    settings: FrameworkSettings | None = None,
    env: Mapping[str, str] | None = None,
    output: TextIO | None = None,
    install_signal_handlers: bool = True,
) -> int:
    """
    Run the poller.

    Returns:
        Exit code (0 = success, 1 = invalid config in dry-run or poll failure).
    """
    settings = settings or FrameworkSettings.from_env(env)
    metrics_port = config.metrics_port if config.metrics_port is not None else settings.metrics_port

    prom_registry = CollectorRegistry()
    exporter = ConnectorMetricsExporter(registry=prom_registry)
    registry = ConnectorRegistry(exporter=exporter, settings=settings, env=env)

    handle: TextIO | None = None
    if output is None and config.output_file is not None:
        handle = config.output_file.open("a", encoding="utf-8")
    poller = Poller(config, registry, output or handle or sys.stdout)

    if config.dry_run:
        ok = poller.validate()
        logger.info("Dry-run mode: configs validated, exiting", extra={"valid": ok})
        if handle is not None:
            handle.close()
        return 0 if ok else 1

    metrics_runner = None
    await registry.init()
    try:
        await poller.start()
        if metrics_port:
            health_fn = registry_health_fn(registry, extra=poller.health_extra)
            metrics_runner = await start_metrics_server(
                prom_registry, port=metrics_port, health_fn=health_fn
            )
        if install_signal_handlers:
            setup_signal_handlers(poller)
        await poller.run()
        return 0
    except Exception as e:
        logger.exception("Poll failed: %s", e)
        return 1
    finally:
        if metrics_runner is not None:
            await stop_metrics_server(metrics_runner)
        failures = await registry.shutdown()
        for failure in failures:
            logger.warning(
                "Dispose failed at shutdown",
                extra={"connector": failure.connector, "error": failure.error},
            )
        if handle is not None:
            handle.close()


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Poll DePIN networks and write JSON lines with provenance.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--networks",
        type=str,
        default=None,
        help="Comma-separated networks (default: all)",
    )
    parser.add_argument(
        "--period",
        type=str,
        choices=[k.value for k in PeriodKind if k is not PeriodKind.CUSTOM],
        default=PeriodKind.DAY.value,
        help="Earnings window ending now (default: day)",
    )
    parser.add_argument(
        "--rounds",
        type=int,
        default=1,
        help="Number of poll rounds, 0 to run until SIGINT/SIGTERM (default: 1)",
    )
    parser.add_argument(
        "--interval-s",
        type=float,
        default=60.0,
        help="Seconds between rounds (default: 60)",
    )
    parser.add_argument(
        "--output",
        "-o",
        type=Path,
        help="Append JSON lines to this file (default: stdout)",
    )
    parser.add_argument(
        "--metrics-port",
        type=int,
        default=None,
        help="Prometheus /metrics port (0 to disable, default: DEPIN_METRICS_PORT)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Validate every network config and exit",
    )
    parser.add_argument(
        "--strict",
        action="store_true",
        help="Refuse to create connectors whose config has errors",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose logging",
    )

    args = parser.parse_args(argv)

    try:
        settings = FrameworkSettings.from_env()
        config = PollConfig(
            networks=parse_networks(args.networks),
            period=PeriodKind(args.period),
            rounds=args.rounds,
            interval_s=args.interval_s,
            output_file=args.output,
            metrics_port=args.metrics_port,
            dry_run=args.dry_run,
            strict=args.strict,
            verbose=args.verbose,
        )
    except ValueError as e:
        parser.error(str(e))

    setup_logging(
        level="DEBUG" if args.verbose else settings.log_level,
        json_format=settings.log_json,
    )

    logger.info(
        "Starting poller",
        extra={
            "networks": [n.value for n in config.networks],
            "rounds": config.rounds,
            "mock": settings.use_mock_data,
        },
    )

    return asyncio.run(run_poll(config, settings=settings))


if __name__ == "__main__":
    sys.exit(main())
