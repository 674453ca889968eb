"""Node commands: run, identity."""

from pathlib import Path
from typing import Optional

import typer
from rich.markup import escape

from . import console, node_app
from ..node.identity import IdentityError, resolve_node_identity
from ..node.runner import main_node
from ..utils.config_loader import ConfigError, ConfigLoader
from ..utils.logging_config import setup_logging


@node_app.command("run")
def run_node(
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="YAML config file"),
    url: Optional[str] = typer.Option(None, "--url", help="Ledger service URL"),
    address: Optional[str] = typer.Option(None, "--address", "-r", help="Record address"),
    interval: Optional[float] = typer.Option(None, "--interval", help="Seconds between ticks"),
    node_id: Optional[str] = typer.Option(None, "--node-id", help="Override the MAC-derived identity"),
    hook: Optional[str] = typer.Option(None, "--hook", help="Post-election hook: log, webhook or command"),
    log_level: str = typer.Option("INFO", "--log-level", envvar="LEASEKEEPER_LOG_LEVEL"),
):
    """Run the reconciliation loop until interrupted."""
    setup_logging(log_level)
    try:
        config = ConfigLoader(config_file).load_config(
            {
                "ledger_endpoint": url,
                "record_address": address,
                "poll_interval_seconds": interval,
                "node_identity": node_id,
                "hook": hook,
            }
        )
    except ConfigError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(1)

    code = main_node(config)
    if code:
        raise typer.Exit(code)


@node_app.command("identity")
def show_identity(node_id: Optional[str] = typer.Option(None, "--node-id", envvar="LEASEKEEPER_NODE_ID")):
    """Print the identity this node would claim with."""
    try:
        console.print(resolve_node_identity(node_id))
    except IdentityError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(1)
