"""Ledger daemon lifecycle: startup checks and the shared store."""

import asyncio
import os

from ...utils.logging_config import StructuredLogger
from ..db import check_db_integrity, get_db_path, init_db
from ..ledger import LedgerStore

logger = StructuredLogger(__name__)

_store: LedgerStore | None = None


def get_store() -> LedgerStore:
    """FastAPI dependency returning the process-wide ledger store."""
    global _store
    if _store is None or _store.path != get_db_path():
        _store = LedgerStore(get_db_path())
    return _store


async def startup_event(app):
    """Called on FastAPI startup."""
    strict_startup = (os.getenv("LEASEKEEPER_STARTUP_STRICT", "1").strip() == "1")
    init_timeout_sec = max(5, int(os.getenv("LEASEKEEPER_STARTUP_INIT_TIMEOUT_SECONDS", "30")))
    db_path = get_db_path()

    try:
        await asyncio.wait_for(asyncio.to_thread(init_db, db_path), timeout=init_timeout_sec)
    except Exception as exc:
        logger.error("Startup database init failed", error=str(exc), strict=strict_startup)
        if strict_startup:
            os._exit(1)

    try:
        ok = await asyncio.wait_for(asyncio.to_thread(check_db_integrity, db_path), timeout=init_timeout_sec)
        if not ok:
            logger.critical("Startup database integrity failed", path=db_path, strict=strict_startup)
            if strict_startup:
                os._exit(1)
    except Exception as exc:
        logger.error("Startup database integrity error", error=str(exc), strict=strict_startup)
        if strict_startup:
            os._exit(1)

    logger.info("Ledger service ready", path=db_path)


async def shutdown_event():
    """Called on FastAPI shutdown."""
    logger.info("Ledger service stopping")
