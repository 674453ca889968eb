"""Deterministic replay helpers for audit mode."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable

from ...utils.deterministic import canonical_json, fingerprint
from .events import GENESIS_HASH, EventKind, LedgerEvent, event_hash_for
from .machine import LeaseStateMachine


@dataclass
class ReplayResult:
    ok: bool
    detail: str
    expected: Any | None = None
    observed: Any | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"ok": self.ok, "detail": self.detail, "expected": self.expected, "observed": self.observed}


def verify_hash_chain(events: Iterable[LedgerEvent]) -> ReplayResult:
    """Verify a record's event hash chain end-to-end."""
    prev = GENESIS_HASH
    expected_seq = 1
    count = 0
    for event in events:
        if event.seq != expected_seq:
            return ReplayResult(
                ok=False,
                detail=f"sequence gap at seq={event.seq}",
                expected=expected_seq,
                observed=event.seq,
            )
        if event.prev_hash != prev:
            return ReplayResult(
                ok=False,
                detail=f"prev_hash mismatch at seq={event.seq}",
                expected=prev,
                observed=event.prev_hash,
            )
        expected = event_hash_for(prev, event.kind.value, event.seq, canonical_json(event.payload))
        if event.event_hash != expected:
            return ReplayResult(
                ok=False,
                detail=f"event_hash mismatch at seq={event.seq}",
                expected=expected,
                observed=event.event_hash,
            )
        prev = event.event_hash
        expected_seq += 1
        count += 1

    return ReplayResult(ok=True, detail=f"hash chain verified for {count} events")


def replay_record(events: Iterable[LedgerEvent], machine: LeaseStateMachine) -> ReplayResult:
    """Rebuild holder, timeout and liveness from events and compare with the materialized record."""
    holder = ""
    timeout: int | None = None
    liveness: dict[bytes, int] = {}

    for event in events:
        if event.kind == EventKind.LEADER_ELECTED:
            holder = event.payload["identity"]
            liveness[fingerprint(holder)] = int(event.payload["timestamp"])
        elif event.kind == EventKind.RENEWED:
            liveness[fingerprint(event.payload["identity"])] = int(event.payload["timestamp"])
        elif event.kind == EventKind.TIMEOUT_UPDATED:
            timeout = int(event.payload["new"])

    mismatches = []
    if holder != machine.record.holder_id:
        mismatches.append(f"holder replay={holder!r} live={machine.record.holder_id!r}")
    # The deploy-time timeout is not an event; only compare once it has been changed.
    if timeout is not None and timeout != machine.record.lease_timeout_seconds:
        mismatches.append(f"timeout replay={timeout} live={machine.record.lease_timeout_seconds}")
    live_entries = dict(machine.liveness.items())
    if liveness != live_entries:
        mismatches.append(f"liveness replay={len(liveness)} entries live={len(live_entries)} entries")
        for fp, ts in liveness.items():
            if live_entries.get(fp) != ts:
                mismatches.append(f"liveness {fp.hex()[:12]} replay={ts} live={live_entries.get(fp)}")

    if mismatches:
        return ReplayResult(ok=False, detail="; ".join(mismatches[:10]))
    return ReplayResult(ok=True, detail="record replay matches materialized state")
