"""
Command line interface for the service tracker.

    service-tracker run --config tracker.yaml
    service-tracker once --config tracker.yaml --json
    service-tracker check-config --config tracker.yaml
"""

import asyncio
import json
import logging
import signal
from pathlib import Path

import click
from prometheus_client import start_http_server
from rich.console import Console
from rich.table import Table

from .config import AppConfig, load_config
from .errors import ConfigurationError
from .logging import setup_logging
from .manager import TrackerManager
from .metrics import TrackerMetrics
from .pool import InMemoryAddressPool

console = Console()
logger = logging.getLogger(__name__)

config_option = click.option(
    "--config",
    "config_path",
    required=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Path to the tracker YAML configuration",
)


def _load(config_path: Path) -> AppConfig:
    try:
        return load_config(config_path)
    except ConfigurationError as e:
        raise click.ClickException(str(e)) from e


def _log_change(tag: str, addresses: frozenset[str]) -> None:
    if addresses:
        logger.info("pool tag %s -> %s", tag, ", ".join(sorted(addresses)))
    else:
        logger.info("pool tag %s removed", tag)


@click.group()
@click.version_option(package_name="service-tracker")
def cli():
    """Track directory service instances and publish their addresses."""


@cli.command()
@config_option
@click.option("--metrics-port", type=int, default=None, help="Expose Prometheus metrics on this port")
def run(config_path: Path, metrics_port: int | None):
    """Run every configured tracker until interrupted (SIGUSR1 triggers a poll)."""
    config = _load(config_path)
    setup_logging(level=config.logging.level, json_format=config.logging.json_format)

    metrics = TrackerMetrics()
    port = metrics_port if metrics_port is not None else config.metrics_port
    if port is not None:
        start_http_server(port, registry=metrics.registry)
        logger.info("Serving metrics on port %d", port)

    asyncio.run(_run(config, metrics))


async def _run(config: AppConfig, metrics: TrackerMetrics) -> None:
    manager = TrackerManager(config, InMemoryAddressPool(on_change=_log_change), metrics=metrics)
    stop_requested = asyncio.Event()

    loop = asyncio.get_running_loop()
    loop.add_signal_handler(signal.SIGUSR1, manager.trigger)
    loop.add_signal_handler(signal.SIGINT, stop_requested.set)
    loop.add_signal_handler(signal.SIGTERM, stop_requested.set)

    await manager.start()
    try:
        await stop_requested.wait()
        logger.info("Shutdown requested")
    finally:
        await manager.stop()


@cli.command()
@config_option
@click.option("--json", "as_json", is_flag=True, help="Print the pool contents as JSON")
def once(config_path: Path, as_json: bool):
    """Run a single poll cycle per tracker and print the resulting pool."""
    config = _load(config_path)
    setup_logging(level=config.logging.level, json_format=config.logging.json_format)

    pool = InMemoryAddressPool()
    results = asyncio.run(_once(config, pool))

    if as_json:
        click.echo(json.dumps({"results": results, "pool": pool.snapshot()}, indent=2))
    else:
        table = Table(title="Address pool")
        table.add_column("Tag", style="cyan")
        table.add_column("Addresses", style="green")
        for tag, addresses in pool.snapshot().items():
            table.add_row(tag, ", ".join(addresses))
        console.print(table)

        for service, ok in results.items():
            if ok:
                console.print(f"✅ {service}: cycle completed", style="green")
            else:
                console.print(f"❌ {service}: cycle faulted, see log", style="bold red")

    if not all(results.values()):
        raise SystemExit(1)


async def _once(config: AppConfig, pool: InMemoryAddressPool) -> dict[str, bool]:
    manager = TrackerManager(config, pool)
    try:
        return await manager.poll_once()
    finally:
        await manager.stop()


@cli.command("check-config")
@config_option
def check_config(config_path: Path):
    """Validate a configuration file and show the trackers it defines."""
    config = _load(config_path)

    table = Table(title=f"Trackers in {config_path}")
    table.add_column("Service", style="cyan")
    table.add_column("Directory")
    table.add_column("Poll (s)")
    table.add_column("Shard")
    for tracker in config.trackers:
        table.add_row(
            tracker.service,
            tracker.directory_url,
            f"{tracker.min_poll:g}-{tracker.max_poll:g}",
            tracker.shard or "-",
        )
    console.print(table)
    console.print("✅ Configuration is valid", style="bold green")


def main():
    cli()


if __name__ == "__main__":
    main()
