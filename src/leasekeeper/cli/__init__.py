"""Leasekeeper CLI, split into command modules."""

import typer
from rich.console import Console

from .. import __version__
from ..utils.config_loader import DEFAULT_LEDGER_URL, LEASEKEEPER_DIR

# ── Shared state ────────────────────────────────────────────────────────────

app = typer.Typer(help="Leasekeeper - lease-based leader election over a shared ledger")
console = Console()

# Sub-command groups
daemon_app = typer.Typer()
ledger_app = typer.Typer()
node_app = typer.Typer()

app.add_typer(daemon_app, name="daemon", help="Manage the ledger service process")
app.add_typer(ledger_app, name="ledger", help="Deploy and inspect leadership records")
app.add_typer(node_app, name="node", help="Run a participating node")

# ── Path constants ──────────────────────────────────────────────────────────

PID_FILE = LEASEKEEPER_DIR / "leasekeeper.pid"
LOG_DIR = LEASEKEEPER_DIR / "logs"
DEFAULT_PORT = 9100


# ── Shared helpers ──────────────────────────────────────────────────────────

def get_daemon_pid():
    if PID_FILE.exists():
        try:
            return int(PID_FILE.read_text().strip())
        except ValueError:
            return None
    return None


@app.command("version")
def version():
    """Show the installed version."""
    console.print(f"leasekeeper {__version__}")


# ── Register submodule commands (import triggers decorator registration) ────

from . import daemon_cmds    # noqa: E402, F401
from . import ledger_cmds    # noqa: E402, F401
from . import node_cmds      # noqa: E402, F401
from . import simulate_cmds  # noqa: E402, F401

__all__ = ["app", "console", "DEFAULT_LEDGER_URL"]
