"""Record commands: keygen, deploy, status, set-timeout, verify, events."""

import secrets
from datetime import UTC, datetime

import httpx
import typer
from rich.markup import escape
from rich.table import Table

from . import DEFAULT_LEDGER_URL, console, ledger_app
from ..daemon.auth import MIN_CREDENTIAL_LEN, signer_principal

UrlOption = typer.Option(DEFAULT_LEDGER_URL, "--url", envvar="LEASEKEEPER_LEDGER_URL", help="Ledger service URL")
AddressOption = typer.Option(..., "--address", "-r", envvar="LEASEKEEPER_RECORD_ADDRESS", help="Record address")
KeyOption = typer.Option(..., "--key", envvar="LEASEKEEPER_SIGNER_KEY", help="Signer credential")


def _request(method: str, url: str, **kwargs) -> dict:
    try:
        r = httpx.request(method, url, timeout=10.0, **kwargs)
    except httpx.HTTPError as e:
        console.print(f"[red]Ledger service unreachable: {escape(str(e))}[/red]")
        raise typer.Exit(1)

    try:
        data = r.json()
    except ValueError:
        data = {}
    if r.status_code >= 400:
        error = data.get("error") or f"HTTP {r.status_code}"
        detail = data.get("detail") or r.text
        console.print(f"[red]{escape(str(error))}: {escape(str(detail))}[/red]")
        raise typer.Exit(1)
    return data


def _format_ts(ts: int) -> str:
    if not ts:
        return "-"
    return datetime.fromtimestamp(ts, UTC).strftime("%Y-%m-%d %H:%M:%S UTC")


@ledger_app.command("keygen")
def keygen():
    """Generate a signer credential and the principal to deploy with."""
    credential = secrets.token_hex(32)
    console.print(f"Signer credential: [bold]{credential}[/bold]")
    console.print(f"Signer principal:  {signer_principal(credential)}")
    console.print("Export it on every node as LEASEKEEPER_SIGNER_KEY.")


@ledger_app.command("deploy")
def deploy(
    timeout: int = typer.Option(3600, "--timeout", help="Lease timeout in seconds"),
    initial_holder: str = typer.Option("", "--initial-holder", help="Identity elected at deployment"),
    key: str = KeyOption,
    url: str = UrlOption,
):
    """Deploy a new leadership record authorized for the given signer."""
    if len(key) < MIN_CREDENTIAL_LEN:
        console.print(f"[red]Signer credential must be at least {MIN_CREDENTIAL_LEN} characters[/red]")
        raise typer.Exit(1)

    data = _request(
        "POST",
        f"{url.rstrip('/')}/records",
        json={
            "lease_timeout_seconds": timeout,
            "authorized_signer": signer_principal(key),
            "initial_holder": initial_holder,
        },
    )
    console.print(f"[green]Record deployed:[/green] [bold]{data['address']}[/bold]")
    console.print(f"  Lease timeout: {data['lease_timeout_seconds']}s")
    if initial_holder:
        console.print(f"  Initial holder: {initial_holder}")
    console.print(f"Set LEASEKEEPER_RECORD_ADDRESS={data['address']} on every node.")


@ledger_app.command("status")
def status(address: str = AddressOption, url: str = UrlOption):
    """Show the current leader and lease state of a record."""
    base = f"{url.rstrip('/')}/records/{address}"
    record = _request("GET", base)
    leader = _request("GET", f"{base}/leader")
    state = _request("GET", f"{base}/state")

    table = Table(title=f"Record {address}")
    table.add_column("Field")
    table.add_column("Value")
    table.add_row("State", state["state"])
    table.add_row("Holder", leader["holder_id"] or "-")
    table.add_row("Last renewal", _format_ts(leader["last_renewal"]))
    table.add_row("Alive", "yes" if leader["alive"] else "no")
    table.add_row("Lease timeout", f"{record['lease_timeout_seconds']}s")
    table.add_row("Committed operations", str(record["sequence"]))
    console.print(table)


@ledger_app.command("set-timeout")
def set_timeout(
    seconds: int = typer.Argument(..., help="New lease timeout in seconds"),
    address: str = AddressOption,
    key: str = KeyOption,
    url: str = UrlOption,
):
    """Change a record's lease timeout (authorized signer only)."""
    data = _request(
        "POST",
        f"{url.rstrip('/')}/records/{address}/timeout",
        json={"seconds": seconds},
        headers={"Authorization": f"Bearer {key}"},
    )
    payload = data["events"][0]["payload"]
    console.print(f"[green]Lease timeout updated: {payload['old']}s -> {payload['new']}s[/green]")


@ledger_app.command("verify")
def verify(address: str = AddressOption, url: str = UrlOption):
    """Verify the record's hash chain and replay it against current state."""
    data = _request("GET", f"{url.rstrip('/')}/records/{address}/verify")
    chain, replay = data["hash_chain"], data["replay"]

    console.print(f"[bold]Ledger Audit: {address}[/bold]")
    console.print(f"  Hash chain: {'PASS' if chain['ok'] else 'FAIL'} - {chain['detail']}")
    console.print(f"  Replay:     {'PASS' if replay['ok'] else 'FAIL'} - {replay['detail']}")
    if not data["ok"]:
        raise typer.Exit(1)


@ledger_app.command("events")
def events(
    address: str = AddressOption,
    url: str = UrlOption,
    after: int = typer.Option(0, "--after", help="Only events with a higher sequence number"),
    limit: int = typer.Option(50, "--limit"),
):
    """List committed events of a record."""
    data = _request(
        "GET",
        f"{url.rstrip('/')}/records/{address}/events",
        params={"after": after, "limit": limit},
    )

    table = Table(title=f"Events for {address}")
    table.add_column("Seq", justify="right")
    table.add_column("Kind")
    table.add_column("Time")
    table.add_column("Payload")
    table.add_column("Hash")
    for event in data["events"]:
        payload = ", ".join(f"{k}={v}" for k, v in sorted(event["payload"].items()))
        table.add_row(
            str(event["seq"]),
            event["kind"],
            _format_ts(event["timestamp"]),
            payload,
            event["event_hash"][:12],
        )
    console.print(table)
