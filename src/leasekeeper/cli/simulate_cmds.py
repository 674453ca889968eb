"""Offline failover walkthrough."""

import asyncio

import typer
from rich.table import Table

from . import app, console
from ..node.reconciler import TickOutcome
from ..simulation import NODE_IDS, run_failover_simulation
from ..utils.logging_config import setup_logging

_STYLES = {
    TickOutcome.CLAIMED: "bold green",
    TickOutcome.RENEWED: "green",
    TickOutcome.CLAIM_LOST: "yellow",
    TickOutcome.OBSERVED: "dim",
}


@app.command("simulate")
def simulate(
    timeout: int = typer.Option(10, "--timeout", help="Lease timeout in seconds"),
    gap: int = typer.Option(3, "--gap", help="Simulated seconds between heartbeats"),
    log_level: str = typer.Option("ERROR", "--log-level", help="Log level for node and ledger logs"),
):
    """Three nodes, one in-process ledger, a manual clock: watch leadership fail over."""
    if timeout <= 0 or gap <= 0 or gap > timeout:
        console.print("[red]Require 0 < gap <= timeout[/red]")
        raise typer.Exit(1)

    setup_logging(log_level)
    report = asyncio.run(run_failover_simulation(timeout, gap))
    names = {identity: name for name, identity in NODE_IDS.items()}

    table = Table(title=f"Failover simulation (lease timeout {report.lease_timeout_seconds}s)")
    table.add_column("t+", justify="right")
    table.add_column("Step")
    table.add_column("Ticks")
    table.add_column("State")
    table.add_column("Leader")
    for step in report.steps:
        ticks = "  ".join(
            f"[{_STYLES.get(outcome, 'red')}]{name}:{outcome.value}[/]" for name, outcome in step.outcomes
        )
        table.add_row(
            f"{step.elapsed}s",
            step.title,
            ticks or "-",
            step.state.value if step.state else "-",
            names.get(step.holder, step.holder or "-"),
        )
    console.print(table)
    console.print("Elections: " + " -> ".join(names.get(i, i) for i in report.elected))
