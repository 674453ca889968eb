"""Leadership ledger: state machine, event chain, durable store."""

from .errors import LedgerRejection, RecordNotFound, RejectionKind
from .events import EventKind, LedgerEvent
from .liveness import LivenessTable
from .machine import (
    MAX_LEASE_TIMEOUT_SECONDS,
    DerivedState,
    LeaderInfo,
    LeadershipRecord,
    LeaseStateMachine,
    wall_clock,
)
from .replay import ReplayResult, replay_record, verify_hash_chain
from .store import LedgerStore

__all__ = [
    "MAX_LEASE_TIMEOUT_SECONDS",
    "DerivedState",
    "EventKind",
    "LeaderInfo",
    "LeadershipRecord",
    "LeaseStateMachine",
    "LedgerEvent",
    "LedgerRejection",
    "LedgerStore",
    "LivenessTable",
    "RecordNotFound",
    "RejectionKind",
    "ReplayResult",
    "replay_record",
    "verify_hash_chain",
    "wall_clock",
]
