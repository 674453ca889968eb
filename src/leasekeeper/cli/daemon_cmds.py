"""Ledger service lifecycle commands: start, stop, status, serve."""

import os
import signal
import subprocess
import sys

import typer

from . import DEFAULT_PORT, LEASEKEEPER_DIR, LOG_DIR, PID_FILE, app, console, daemon_app, get_daemon_pid
from ..daemon.db import get_db_path, init_db


def _prepare_runtime() -> None:
    LEASEKEEPER_DIR.mkdir(parents=True, exist_ok=True)
    LOG_DIR.mkdir(parents=True, exist_ok=True)
    try:
        init_db()
    except Exception as exc:
        console.print(f"[red]Database init failed, service not started: {exc}[/red]")
        raise typer.Exit(1)


@daemon_app.command("start")
def start_daemon(
    port: int = DEFAULT_PORT,
    host: str = "127.0.0.1",
    reload: bool = False,
):
    """Start the ledger service in the background."""
    _prepare_runtime()

    pid = get_daemon_pid()
    if pid:
        try:
            os.kill(pid, 0)
            console.print(f"[red]Ledger service already running (PID {pid})[/red]")
            return
        except ProcessLookupError:
            console.print("[yellow]Stale PID file found, removing...[/yellow]")
            PID_FILE.unlink()

    console.print(f"[green]Starting ledger service on {host}:{port}...[/green]")

    env = os.environ.copy()
    env["LEASEKEEPER_LOG_DIR"] = str(LOG_DIR)

    cmd = [
        sys.executable, "-m", "uvicorn",
        "leasekeeper.daemon.app:app",
        "--host", host,
        "--port", str(port),
    ]
    if reload:
        cmd.append("--reload")

    log_file = open(LOG_DIR / "daemon.out", "a")
    proc = subprocess.Popen(cmd, env=env, stdout=log_file, stderr=subprocess.STDOUT)

    PID_FILE.write_text(str(proc.pid))

    console.print(f"Ledger service started with PID {proc.pid}")
    console.print(f"Logs: {LOG_DIR}/daemon.out")


@daemon_app.command("stop")
def stop_daemon():
    """Stop the background ledger service."""
    pid = get_daemon_pid()
    if not pid:
        console.print("[red]Ledger service not running (PID file not found)[/red]")
        return

    try:
        os.kill(pid, signal.SIGTERM)
        console.print(f"[green]Stopped ledger service (PID {pid})[/green]")
    except ProcessLookupError:
        console.print("[yellow]Ledger service process not found, cleaning up PID file[/yellow]")
    if PID_FILE.exists():
        PID_FILE.unlink()


@daemon_app.command("status")
def status_daemon():
    """Check whether the background ledger service is running."""
    pid = get_daemon_pid()
    if pid:
        try:
            os.kill(pid, 0)
            console.print(f"[green]Ledger service is running (PID {pid})[/green]")
            console.print(f"Database: {get_db_path()}")
            return
        except ProcessLookupError:
            pass

    console.print("[red]Ledger service is NOT running[/red]")


@app.command("serve")
def serve(
    port: int = DEFAULT_PORT,
    host: str = "127.0.0.1",
    log_level: str = typer.Option("info", "--log-level"),
):
    """Run the ledger service in the foreground."""
    import uvicorn

    _prepare_runtime()
    console.print(f"[green]Serving ledger on http://{host}:{port} (db: {get_db_path()})[/green]")
    uvicorn.run("leasekeeper.daemon.app:app", host=host, port=port, log_level=log_level)
