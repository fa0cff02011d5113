"""The ``run`` command: one full broker run."""

from __future__ import annotations

import asyncio
import logging
import sys
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any

import httpx
import typer
from rich.console import Console

from plugin_broker.broker import PluginBroker
from plugin_broker.config import BrokerConfig, ConfigError, load_config
from plugin_broker.config.loader import load_metas
from plugin_broker.errors import BrokerError
from plugin_broker.events import BrokerEvent, CallbackSubscriber, EventBus
from plugin_broker.files import HttpDownloader, LocalArchiver, LocalFileCopier, SystemTempProvider
from plugin_broker.marketplace import ArtifactResolver, MarketplaceClient
from plugin_broker.materializer import Materializer
from plugin_broker.randomness import Random, SystemRandom
from plugin_broker.registry import MetadataFetcher
from plugin_broker.retry import RateLimitPolicy
from plugin_broker.tunnel import connect_tunnel, push_events

logger = logging.getLogger(__name__)

console = Console()

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str) -> None:
    logging.basicConfig(stream=sys.stdout, level=level.upper(), format=LOG_FORMAT, force=True)


def log_event(event: BrokerEvent) -> None:
    logger.info("Event %s: %s", event.event_type, event.to_params())


def create_http_client(config: BrokerConfig) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        timeout=config.http_timeout,
        verify=config.ssl_context(),
        follow_redirects=True,
    )


def create_broker(
    config: BrokerConfig,
    client: httpx.AsyncClient,
    bus: EventBus,
    rand: Random | None = None,
    sleep: Callable[[float], Awaitable[None]] | None = None,
) -> PluginBroker:
    """Assemble a broker from configuration.

    Args:
        config: Broker settings
        client: HTTP client shared by registry, marketplace and downloads
        bus: Bus the run publishes on
        rand: Randomness source; system randomness by default
        sleep: Wait used between rate-limit retries; ``asyncio.sleep`` by default
    """
    rand = rand or SystemRandom()
    rate_limit = RateLimitPolicy(
        retries=config.rate_limit_retries,
        delay=config.rate_limit_delay,
        sleep=sleep or asyncio.sleep,
    )
    downloader = HttpDownloader(client)

    marketplace = None
    resolver = None
    materializer = None
    if config.download_artifacts:
        marketplace = MarketplaceClient(client, config.marketplace_url, rate_limit)
        resolver = ArtifactResolver(marketplace, config.registry_address)
        materializer = Materializer(
            downloader,
            LocalArchiver(),
            LocalFileCopier(),
            SystemTempProvider(),
            rand,
            plugins_dir=config.plugins_dir,
            rate_limit=rate_limit,
            unpack_extensions=config.unpack_extensions,
        )

    broker = PluginBroker(
        bus,
        config.runtime_id,
        fetcher=MetadataFetcher(downloader),
        resolver=resolver,
        materializer=materializer,
        rand=rand,
        plugins_dir=config.plugins_dir,
        download_artifacts=config.download_artifacts,
        localhost_sidecar=config.localhost_sidecar,
        strict_collisions=config.strict_collisions,
    )
    if config.download_artifacts:
        marketplace.on_rate_limit = broker.on_rate_limit
        materializer.on_rate_limit = broker.on_rate_limit
    return broker


async def run_broker(config: BrokerConfig, bus: EventBus | None = None) -> str:
    """Open the control channel if enabled and run the pipeline once.

    Returns:
        Tooling JSON of the successful run

    Raises:
        BrokerError: If the run failed
    """
    bus = bus or EventBus()
    if not config.disable_push:
        tunnel = await connect_tunnel(config.push_endpoint, config.token, config.ssl_context())
        push_events(bus, tunnel)
    else:
        bus.subscribe(CallbackSubscriber(log_event))

    async with create_http_client(config) as client:
        broker = create_broker(config, client, bus)
        if config.metas_file is not None:
            metas = load_metas(config.metas_file)
            return await broker.start_with_metas(metas, config.registry_address)
        return await broker.start(config.plugins, config.registry_address)


def run_command(
    config_path: str | None = None,
    overrides: dict[str, Any] | None = None,
    log_level: str = "INFO",
) -> None:
    """Run the broker; exits with status 1 when the run fails."""
    configure_logging(log_level)

    path = Path(config_path) if config_path else None
    try:
        config = load_config(path, overrides)
    except ConfigError as e:
        console.print(f"[red]Failed to load config: {e}[/red]")
        raise typer.Exit(1) from e

    config.print_summary()

    try:
        asyncio.run(run_broker(config))
    except BrokerError as e:
        console.print(f"[red]Broker run failed: {e}[/red]")
        raise typer.Exit(1) from e
    except ConfigError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1) from e

    console.print("[green]Plugins provisioned[/green]")
