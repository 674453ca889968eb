"""Leadership record endpoints."""

import asyncio
import json

from fastapi import APIRouter, Depends, Query, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from ...utils.logging_config import StructuredLogger
from ..auth import get_caller_principal
from ..ledger import MAX_LEASE_TIMEOUT_SECONDS, LedgerEvent, LedgerStore, replay_record, verify_hash_chain
from .lifecycle import get_store

logger = StructuredLogger(__name__)
router = APIRouter(prefix="/records", tags=["records"])

_STREAM_POLL_SECONDS = 0.5
_STREAM_KEEPALIVE_SECONDS = 15.0


class DeployRequest(BaseModel):
    # Zero and empty values pass validation so the ledger can reject them
    # with InvalidTimeout / ZeroSigner. Timeouts above a signed 64-bit
    # integer cannot be stored and fail here with 422.
    lease_timeout_seconds: int = Field(..., ge=0, le=MAX_LEASE_TIMEOUT_SECONDS)
    authorized_signer: str = Field(default="", max_length=128)
    initial_holder: str = Field(default="", max_length=256)


class IdentityRequest(BaseModel):
    identity: str = Field(default="", max_length=256)


class TimeoutRequest(BaseModel):
    seconds: int = Field(..., ge=0, le=MAX_LEASE_TIMEOUT_SECONDS)


def _committed(events: list[LedgerEvent]) -> dict:
    return {"committed": True, "events": [e.to_dict() for e in events]}


# --- Deploy ---

@router.post("", status_code=201)
def deploy_record(body: DeployRequest, store: LedgerStore = Depends(get_store)):
    address, events = store.deploy(
        lease_timeout_seconds=body.lease_timeout_seconds,
        authorized_signer=body.authorized_signer,
        initial_holder=body.initial_holder,
    )
    return {
        "address": address,
        "lease_timeout_seconds": body.lease_timeout_seconds,
        "authorized_signer": body.authorized_signer,
        "events": [e.to_dict() for e in events],
    }


@router.get("")
def list_records(store: LedgerStore = Depends(get_store)):
    return {"addresses": store.list_addresses()}


# --- Reads ---

@router.get("/{address}")
def get_record(address: str, store: LedgerStore = Depends(get_store)):
    machine = store.snapshot(address)
    return {
        "address": address,
        "lease_timeout_seconds": machine.lease_timeout_seconds,
        "authorized_signer": machine.authorized_signer,
        "sequence": machine.sequence,
    }


@router.get("/{address}/leader")
def get_current_leader(address: str, store: LedgerStore = Depends(get_store)):
    leader = store.snapshot(address).get_current_leader()
    return {"holder_id": leader.holder_id, "last_renewal": leader.last_renewal, "alive": leader.alive}


@router.get("/{address}/state")
def get_derived_state(address: str, store: LedgerStore = Depends(get_store)):
    return {"state": store.snapshot(address).derived_state().value}


@router.get("/{address}/alive")
def is_alive(address: str, store: LedgerStore = Depends(get_store)):
    return {"alive": store.snapshot(address).is_alive()}


@router.get("/{address}/liveness")
def get_liveness(address: str, identity: str = Query(...), store: LedgerStore = Depends(get_store)):
    return {"identity": identity, "last_renewal": store.snapshot(address).get_liveness(identity)}


# --- Mutating operations ---

@router.post("/{address}/claim")
def claim(
    address: str,
    body: IdentityRequest,
    caller: str | None = Depends(get_caller_principal),
    store: LedgerStore = Depends(get_store),
):
    return _committed(store.claim(address, caller, body.identity))


@router.post("/{address}/renew")
def renew(
    address: str,
    body: IdentityRequest,
    caller: str | None = Depends(get_caller_principal),
    store: LedgerStore = Depends(get_store),
):
    return _committed(store.renew(address, caller, body.identity))


@router.post("/{address}/timeout")
def set_lease_timeout(
    address: str,
    body: TimeoutRequest,
    caller: str | None = Depends(get_caller_principal),
    store: LedgerStore = Depends(get_store),
):
    return _committed(store.set_lease_timeout(address, caller, body.seconds))


# --- Events ---

@router.get("/{address}/events")
def list_events(
    address: str,
    after: int = Query(0, ge=0),
    limit: int = Query(500, ge=1, le=5000),
    store: LedgerStore = Depends(get_store),
):
    return {"events": [e.to_dict() for e in store.events_after(address, after, limit)]}


@router.get("/{address}/events/stream")
async def stream_events(
    address: str,
    request: Request,
    after: int = Query(0, ge=0),
    store: LedgerStore = Depends(get_store),
):
    """Server-Sent Events feed of commits with seq > after."""
    # Resolve the address before the response starts so unknown records 404.
    await run_in_threadpool(store.events_after, address, after, 1)

    async def event_generator():
        cursor = after
        idle = 0.0
        while True:
            if await request.is_disconnected():
                logger.debug("Event stream client disconnected", address=address, cursor=cursor)
                return
            events = await run_in_threadpool(store.events_after, address, cursor)
            for event in events:
                cursor = event.seq
                yield f"id: {event.seq}\nevent: {event.kind.value}\ndata: {json.dumps(event.to_dict())}\n\n"
            if events:
                idle = 0.0
                continue
            idle += _STREAM_POLL_SECONDS
            if idle >= _STREAM_KEEPALIVE_SECONDS:
                idle = 0.0
                yield ": keepalive\n\n"
            await asyncio.sleep(_STREAM_POLL_SECONDS)

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


# --- Audit ---

@router.get("/{address}/verify")
def verify_record(address: str, store: LedgerStore = Depends(get_store)):
    events = []
    cursor = 0
    while True:
        page = store.events_after(address, cursor, 5000)
        if not page:
            break
        events.extend(page)
        cursor = page[-1].seq

    chain = verify_hash_chain(events)
    replay = replay_record(events, store.snapshot(address))
    return {
        "address": address,
        "ok": chain.ok and replay.ok,
        "hash_chain": chain.to_dict(),
        "replay": replay.to_dict(),
    }
