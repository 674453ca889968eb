"""Admin endpoints: health, readiness and metrics."""

from datetime import UTC, datetime

from fastapi import APIRouter, Depends
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from ... import __version__
from ..db import get_db_connection
from ..ledger import LedgerStore
from ..utils.invariants import run_all_checks
from .lifecycle import get_store

router = APIRouter(tags=["admin"])


@router.get("/health")
async def health():
    return {"status": "ok", "version": __version__, "ts": datetime.now(UTC).isoformat()}


def _readiness(store: LedgerStore) -> tuple[bool, dict]:
    checks: dict[str, dict] = {}
    ready = True
    try:
        with get_db_connection(store.path) as conn:
            conn.execute("SELECT 1").fetchone()
            checks["database"] = {"ok": True}
            failed = [c for c in run_all_checks(conn) if not c.passed]
            checks["invariants"] = {
                "ok": not failed,
                "failed": [{"name": c.name, "detail": c.detail} for c in failed],
            }
            if failed:
                ready = False
    except Exception as exc:
        checks["database"] = {"ok": False, "error": str(exc)}
        ready = False

    return ready, {
        "ready": ready,
        "status": "ready" if ready else "not_ready",
        "version": __version__,
        "ts": datetime.now(UTC).isoformat(),
        "checks": checks,
    }


@router.get("/ready")
async def ready(store: LedgerStore = Depends(get_store)):
    ok, payload = await run_in_threadpool(_readiness, store)
    return JSONResponse(content=payload, status_code=200 if ok else 503)


@router.get("/metrics")
def metrics(store: LedgerStore = Depends(get_store)):
    return store.counters()
