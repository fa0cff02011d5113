"""The ``plan`` command: show what a run would install."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any

import typer
from rich.console import Console
from rich.table import Table

from plugin_broker.cli.run_cmd import configure_logging, create_http_client
from plugin_broker.config import BrokerConfig, ConfigError, load_config
from plugin_broker.config.loader import load_metas
from plugin_broker.errors import BrokerError
from plugin_broker.files import HttpDownloader
from plugin_broker.model import PluginMeta
from plugin_broker.registry import MetadataFetcher
from plugin_broker.validation import validate_metas

console = Console()


async def collect_metas(config: BrokerConfig) -> list[PluginMeta]:
    """Fetch (or read) and validate the metas a run would process."""
    if config.metas_file is not None:
        metas = load_metas(config.metas_file)
    else:
        async with create_http_client(config) as client:
            fetcher = MetadataFetcher(HttpDownloader(client))
            metas = await fetcher.get_metas(config.plugins, config.registry_address)
    validate_metas(metas)
    return metas


def plan_command(
    config_path: str | None = None,
    overrides: dict[str, Any] | None = None,
    log_level: str = "WARNING",
) -> None:
    configure_logging(log_level)

    path = Path(config_path) if config_path else None
    try:
        config = load_config(path, overrides)
        metas = asyncio.run(collect_metas(config))
    except (ConfigError, BrokerError) as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1) from e

    if not metas:
        console.print("[dim]No plugins to install.[/dim]")
        return

    table = Table(title="Plugins and editors to install")
    table.add_column("ID", style="cyan")
    table.add_column("Version")
    table.add_column("Type")
    table.add_column("Extensions", style="green")
    table.add_column("Description")

    for meta in metas:
        table.add_row(
            meta.id,
            meta.version,
            meta.type,
            str(len(meta.spec.extensions)),
            meta.description or "-",
        )

    console.print(table)
