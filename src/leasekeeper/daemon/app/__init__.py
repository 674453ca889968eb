"""Ledger daemon application package.

Creates the FastAPI app, registers routers and error translation, and wires
up lifecycle events. Consumers use:
    from leasekeeper.daemon.app import app
"""

import os

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from ... import __version__
from ...utils.logging_config import StructuredLogger, setup_logging
from ..ledger import LedgerRejection, RecordNotFound, RejectionKind

load_dotenv()
setup_logging(os.getenv("LEASEKEEPER_LOG_LEVEL", "INFO"))
logger = StructuredLogger(__name__)

app = FastAPI(title="Leasekeeper Ledger", version=__version__)


# --- Error translation ---

@app.exception_handler(LedgerRejection)
async def ledger_rejection_handler(request: Request, exc: LedgerRejection):
    status = 403 if exc.kind == RejectionKind.UNAUTHORIZED else 409
    logger.info("Operation rejected", path=request.url.path, kind=exc.kind.value)
    return JSONResponse(status_code=status, content={"error": exc.kind.value, "detail": exc.detail})


@app.exception_handler(RecordNotFound)
async def record_not_found_handler(request: Request, exc: RecordNotFound):
    return JSONResponse(status_code=404, content={"error": "RecordNotFound", "detail": str(exc)})


# --- Lifecycle ---
from .lifecycle import startup_event, shutdown_event  # noqa: E402


@app.on_event("startup")
async def _startup():
    await startup_event(app)


@app.on_event("shutdown")
async def _shutdown():
    await shutdown_event()


# --- Routers ---
from .admin import router as admin_router  # noqa: E402
from .records import router as records_router  # noqa: E402

app.include_router(admin_router)
app.include_router(records_router)

__all__ = ["app"]
