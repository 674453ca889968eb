"""Node process entry point: config -> identity -> client -> reconciliation loop."""

from __future__ import annotations

import asyncio
import signal

from ..client import FatalLedgerError, GetAuthorizedSigner, HttpLedgerClient, LedgerTransportError
from ..daemon.auth import signer_principal
from ..utils.config_loader import ConfigError, NodeConfig
from ..utils.logging_config import StructuredLogger
from .hooks import create_hook
from .identity import IdentityError, resolve_node_identity
from .reconciler import ReconciliationLoop

logger = StructuredLogger(__name__)


async def _check_signer(client: HttpLedgerClient, credential: str) -> None:
    """Fail fast when the credential cannot sign for the record."""
    try:
        authorized = await client.query(GetAuthorizedSigner())
    except LedgerTransportError as e:
        logger.warning("Could not verify signer at startup", error=str(e))
        return
    if authorized != signer_principal(credential):
        raise FatalLedgerError("Signer credential does not match the record's authorized signer")


async def run_node(config: NodeConfig, stop: asyncio.Event | None = None) -> None:
    identity = resolve_node_identity(config.node_identity)
    hook = create_hook(config)
    client = HttpLedgerClient(
        config.ledger_endpoint,
        config.record_address,
        credential=config.signer_credential,
        timeout=config.request_timeout_seconds,
    )
    stop = stop or asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except (NotImplementedError, RuntimeError):
            pass

    logger.info(
        "Node started",
        identity=identity,
        ledger=config.ledger_endpoint,
        record=config.record_address,
        hook=hook.name,
    )
    try:
        await _check_signer(client, config.signer_credential)
        await ReconciliationLoop(client, identity, hook=hook, interval=config.poll_interval_seconds).run(stop)
    finally:
        await hook.close()
        await client.close()


def main_node(config: NodeConfig) -> int:
    """Run the node until stopped. Returns the process exit status."""
    try:
        asyncio.run(run_node(config))
    except FatalLedgerError as e:
        logger.critical("Fatal ledger error; exiting", error=str(e))
        return 1
    except (ConfigError, IdentityError) as e:
        logger.critical("Fatal configuration error; exiting", error=str(e))
        return 1
    return 0
