"""Hash-chained ledger events."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from ...utils.deterministic import canonical_json, stable_hash_hex

GENESIS_HASH = "GENESIS"


class EventKind(StrEnum):
    LEADER_ELECTED = "LeaderElected"
    RENEWED = "Renewed"
    TIMEOUT_UPDATED = "TimeoutUpdated"


@dataclass(frozen=True)
class LedgerEvent:
    seq: int
    kind: EventKind
    timestamp: int
    payload: dict[str, Any]
    prev_hash: str
    event_hash: str
    address: str | None = field(default=None, compare=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "seq": self.seq,
            "kind": self.kind.value,
            "timestamp": self.timestamp,
            "payload": self.payload,
            "prev_hash": self.prev_hash,
            "event_hash": self.event_hash,
            "address": self.address,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LedgerEvent":
        payload = data["payload"]
        if isinstance(payload, str):
            payload = json.loads(payload)
        return cls(
            seq=int(data["seq"]),
            kind=EventKind(data["kind"]),
            timestamp=int(data["timestamp"]),
            payload=dict(payload),
            prev_hash=str(data["prev_hash"]),
            event_hash=str(data["event_hash"]),
            address=data.get("address"),
        )


def event_hash_for(prev_hash: str, kind: str, seq: int, payload_json: str) -> str:
    return stable_hash_hex(prev_hash, kind, str(seq), payload_json)


class EventChain:
    """Append-only event chain for one leadership record.

    Only the head is needed to continue the chain; `pending` holds events
    appended since the chain was opened so a store can persist them.
    """

    def __init__(self, head_seq: int = 0, head_hash: str = GENESIS_HASH, address: str | None = None):
        self.head_seq = head_seq
        self.head_hash = head_hash
        self.address = address
        self.pending: list[LedgerEvent] = []

    def append(self, kind: EventKind, timestamp: int, payload: dict[str, Any]) -> LedgerEvent:
        seq = self.head_seq + 1
        event = LedgerEvent(
            seq=seq,
            kind=kind,
            timestamp=timestamp,
            payload=payload,
            prev_hash=self.head_hash,
            event_hash=event_hash_for(self.head_hash, kind.value, seq, canonical_json(payload)),
            address=self.address,
        )
        self.head_seq = seq
        self.head_hash = event.event_hash
        self.pending.append(event)
        return event

    def drain(self) -> list[LedgerEvent]:
        out, self.pending = self.pending, []
        return out
