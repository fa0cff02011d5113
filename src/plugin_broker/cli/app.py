"""Main CLI application using Typer."""

import sys

import typer
from rich.console import Console

from plugin_broker import __version__

app = typer.Typer(
    name="plugin-broker",
    help="Plugin broker - provisions editor plugins and sidecars for a workspace runtime",
    no_args_is_help=True,
)

console = Console()


@app.command()
def version():
    """Show plugin-broker version."""
    console.print(f"plugin-broker version {__version__}")


@app.command()
def run(
    config_path: str = typer.Option(None, "--config", "-c", help="Path to YAML config file"),
    push_endpoint: str = typer.Option(
        None, "--push-endpoint", help="WebSocket endpoint where to push statuses"
    ),
    disable_push: bool = typer.Option(
        None, "--disable-push/--enable-push", help="Only log events, no control channel"
    ),
    runtime_id: str = typer.Option(
        None, "--runtime-id", help="Runtime id in format 'workspace:environment:ownerId'"
    ),
    registry_address: str = typer.Option(
        None, "--registry-address", help="Default plugin registry URL"
    ),
    metas_file: str = typer.Option(
        None, "--metas", help="Preformed plugin metas (YAML/JSON list), skips registry fetching"
    ),
    self_signed_cert: str = typer.Option(
        None, "--cacert", help="Self-signed certificate to trust for HTTPS and WSS"
    ),
    plugins_dir: str = typer.Option(None, "--plugins-dir", help="Shared plugins volume"),
    metadata_only: bool = typer.Option(
        False, "--metadata-only", help="Do not download extension artifacts"
    ),
    localhost_sidecar: bool = typer.Option(
        None, "--localhost-sidecar/--endpoint-sidecar", help="Sidecar deployment mode"
    ),
    strict_collisions: bool = typer.Option(
        None, "--strict-collisions", help="Fail when plugins ship the same extension"
    ),
    unpack_extensions: bool = typer.Option(
        None, "--unpack", help="Unpack .vsix/.theia packages into sidecar directories"
    ),
    plugin: list[str] = typer.Option(
        None, "--plugin", "-p", help="Plugin reference '[<registry>/]<publisher>/<name>/<version>'"
    ),
    log_level: str = typer.Option("INFO", "--log-level", help="Logging level"),
):
    """Provision plugins and push the result to the workspace controller."""
    from plugin_broker.cli.run_cmd import run_command

    overrides = {
        "push_endpoint": push_endpoint,
        "disable_push": disable_push,
        "runtime_id": runtime_id,
        "registry_address": registry_address,
        "metas_file": metas_file,
        "self_signed_cert": self_signed_cert,
        "plugins_dir": plugins_dir,
        "download_artifacts": False if metadata_only else None,
        "localhost_sidecar": localhost_sidecar,
        "strict_collisions": strict_collisions,
        "unpack_extensions": unpack_extensions,
        "plugins": list(plugin) if plugin else None,
    }
    run_command(config_path=config_path, overrides=overrides, log_level=log_level)


@app.command()
def plan(
    config_path: str = typer.Option(None, "--config", "-c", help="Path to YAML config file"),
    registry_address: str = typer.Option(
        None, "--registry-address", help="Default plugin registry URL"
    ),
    plugin: list[str] = typer.Option(
        None, "--plugin", "-p", help="Plugin reference '[<registry>/]<publisher>/<name>/<version>'"
    ),
    log_level: str = typer.Option("WARNING", "--log-level", help="Logging level"),
):
    """Fetch and validate plugin metas and show what would be installed."""
    from plugin_broker.cli.plan_cmd import plan_command

    overrides = {
        "disable_push": True,
        "registry_address": registry_address,
        "plugins": list(plugin) if plugin else None,
    }
    plan_command(config_path=config_path, overrides=overrides, log_level=log_level)


def main():
    """Entry point for the CLI."""
    try:
        app()
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")
        sys.exit(130)
    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
