"""Lease-based leadership state machine.

The machine owns one LeadershipRecord and its LivenessTable. Mutating
operations (claim, renew, set_lease_timeout) are serialized by a lock, so
the order in which callers acquire it is the ledger's total order: of two
claims racing for the same vacancy, the second one is evaluated against the
record the first one already committed and is rejected with StillLeased.

The Vacant/Leased/Expired state is never stored. It is derived on every read
from the holder's last renewal and the current lease timeout, so changing the
timeout takes effect immediately without another transaction.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from enum import StrEnum
from typing import Callable

from ...utils.deterministic import ZERO_FINGERPRINT, fingerprint, is_utf8_text
from ...utils.logging_config import StructuredLogger
from .errors import LedgerRejection, RejectionKind
from .events import EventChain, EventKind, LedgerEvent
from .liveness import LivenessTable

logger = StructuredLogger(__name__)

# Largest timeout the store can hold (sqlite INTEGER is a signed 64-bit value).
MAX_LEASE_TIMEOUT_SECONDS = 2**63 - 1

Clock = Callable[[], int]
Listener = Callable[[LedgerEvent], None]


def wall_clock() -> int:
    return int(time.time())


def _check_timeout(seconds: int) -> None:
    if seconds <= 0:
        raise LedgerRejection(RejectionKind.INVALID_TIMEOUT)
    if seconds > MAX_LEASE_TIMEOUT_SECONDS:
        raise LedgerRejection(
            RejectionKind.INVALID_TIMEOUT,
            f"lease timeout must not exceed {MAX_LEASE_TIMEOUT_SECONDS} seconds",
        )


class DerivedState(StrEnum):
    VACANT = "Vacant"
    LEASED = "Leased"
    EXPIRED = "Expired"


@dataclass
class LeadershipRecord:
    holder_id: str
    holder_fingerprint: bytes
    lease_timeout_seconds: int
    authorized_signer: str

    @classmethod
    def vacant(cls, lease_timeout_seconds: int, authorized_signer: str) -> "LeadershipRecord":
        return cls(
            holder_id="",
            holder_fingerprint=ZERO_FINGERPRINT,
            lease_timeout_seconds=lease_timeout_seconds,
            authorized_signer=authorized_signer,
        )

    @property
    def is_vacant(self) -> bool:
        return self.holder_fingerprint == ZERO_FINGERPRINT


@dataclass(frozen=True)
class LeaderInfo:
    holder_id: str
    last_renewal: int
    alive: bool


class LeaseStateMachine:
    def __init__(
        self,
        record: LeadershipRecord,
        liveness: LivenessTable | None = None,
        chain: EventChain | None = None,
        clock: Clock = wall_clock,
    ):
        self.record = record
        self.liveness = liveness if liveness is not None else LivenessTable()
        self.chain = chain if chain is not None else EventChain()
        self.clock = clock
        self._lock = threading.RLock()
        self._listeners: list[Listener] = []
        self.deployed_events: list[LedgerEvent] = []

    @classmethod
    def deploy(
        cls,
        lease_timeout_seconds: int,
        authorized_signer: str,
        initial_holder: str = "",
        clock: Clock = wall_clock,
        address: str | None = None,
    ) -> "LeaseStateMachine":
        """Create a record; a non-empty initial holder is claimed at creation."""
        cls.check_deploy(lease_timeout_seconds, authorized_signer, initial_holder)

        machine = cls(
            LeadershipRecord.vacant(int(lease_timeout_seconds), authorized_signer),
            chain=EventChain(address=address),
            clock=clock,
        )
        if initial_holder:
            machine._elect(initial_holder, machine.clock())
        machine.deployed_events = machine.chain.drain()
        return machine

    @staticmethod
    def check_deploy(lease_timeout_seconds: int, authorized_signer: str, initial_holder: str = "") -> None:
        """Raise the rejection deploy would raise for these arguments, if any."""
        _check_timeout(lease_timeout_seconds)
        if not authorized_signer:
            raise LedgerRejection(RejectionKind.ZERO_SIGNER)
        if not is_utf8_text(authorized_signer):
            raise LedgerRejection(RejectionKind.ZERO_SIGNER, "authorized signer must be valid UTF-8 text")
        if initial_holder and not is_utf8_text(initial_holder):
            raise LedgerRejection(RejectionKind.EMPTY_IDENTITY, "identity must be valid UTF-8 text")

    # ── Subscriptions ───────────────────────────────────────────────────

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self, events: list[LedgerEvent]) -> None:
        for event in events:
            for listener in list(self._listeners):
                try:
                    listener(event)
                except Exception as e:
                    logger.error("Ledger listener failed", event=event.kind.value, seq=event.seq, error=str(e))

    # ── Mutating operations ─────────────────────────────────────────────

    def _authorize(self, caller: str | None) -> None:
        if not caller or caller != self.record.authorized_signer:
            raise LedgerRejection(RejectionKind.UNAUTHORIZED)

    def _elect(self, identity: str, now: int) -> LedgerEvent:
        fp = fingerprint(identity)
        self.record.holder_id = identity
        self.record.holder_fingerprint = fp
        self.liveness.record(fp, now)
        return self.chain.append(EventKind.LEADER_ELECTED, now, {"identity": identity, "timestamp": now})

    def claim(self, caller: str | None, identity: str) -> list[LedgerEvent]:
        with self._lock:
            self._authorize(caller)
            if not identity:
                raise LedgerRejection(RejectionKind.EMPTY_IDENTITY)
            if not is_utf8_text(identity):
                raise LedgerRejection(RejectionKind.EMPTY_IDENTITY, "identity must be valid UTF-8 text")

            now = self.clock()
            if not self.record.is_vacant and not self._expired(now):
                raise LedgerRejection(
                    RejectionKind.STILL_LEASED,
                    f"{self.record.holder_id} is still leased",
                )
            event = self._elect(identity, now)
            committed = self.chain.drain()

        logger.debug("Leader elected", identity=identity, timestamp=now, seq=event.seq)
        self._notify(committed)
        return committed

    def renew(self, caller: str | None, identity: str) -> list[LedgerEvent]:
        with self._lock:
            self._authorize(caller)
            if self.record.is_vacant:
                raise LedgerRejection(RejectionKind.NO_LEADER_ELECTED)
            if not is_utf8_text(identity):
                raise LedgerRejection(RejectionKind.IDENTITY_MISMATCH, "identity is not valid UTF-8 text")
            fp = fingerprint(identity)
            if fp != self.record.holder_fingerprint:
                raise LedgerRejection(
                    RejectionKind.IDENTITY_MISMATCH,
                    f"{identity!r} is not the current holder",
                )

            now = self.clock()
            self.liveness.record(fp, now)
            seq = self.chain.head_seq + 1
            self.chain.append(
                EventKind.RENEWED,
                now,
                {"identity": identity, "timestamp": now, "sequence": seq},
            )
            committed = self.chain.drain()

        self._notify(committed)
        return committed

    def set_lease_timeout(self, caller: str | None, seconds: int) -> list[LedgerEvent]:
        with self._lock:
            self._authorize(caller)
            _check_timeout(seconds)

            old = self.record.lease_timeout_seconds
            self.record.lease_timeout_seconds = int(seconds)
            self.chain.append(EventKind.TIMEOUT_UPDATED, self.clock(), {"old": old, "new": int(seconds)})
            committed = self.chain.drain()

        logger.debug("Lease timeout updated", old=old, new=int(seconds))
        self._notify(committed)
        return committed

    # ── Reads ───────────────────────────────────────────────────────────

    @property
    def lease_timeout_seconds(self) -> int:
        return self.record.lease_timeout_seconds

    @property
    def authorized_signer(self) -> str:
        return self.record.authorized_signer

    @property
    def sequence(self) -> int:
        return self.chain.head_seq

    def _expired(self, now: int) -> bool:
        last = self.liveness.get(self.record.holder_fingerprint)
        # A renewal stamped ahead of this clock counts as zero elapsed time.
        elapsed = max(0, now - last)
        return elapsed > self.record.lease_timeout_seconds

    def derived_state(self) -> DerivedState:
        with self._lock:
            if self.record.is_vacant:
                return DerivedState.VACANT
            if self._expired(self.clock()):
                return DerivedState.EXPIRED
            return DerivedState.LEASED

    def is_alive(self) -> bool:
        return self.derived_state() == DerivedState.LEASED

    def get_liveness(self, identity: str) -> int:
        with self._lock:
            return self.liveness.get(fingerprint(identity))

    def get_current_leader(self) -> LeaderInfo:
        with self._lock:
            if self.record.is_vacant:
                return LeaderInfo(holder_id="", last_renewal=0, alive=False)
            return LeaderInfo(
                holder_id=self.record.holder_id,
                last_renewal=self.liveness.get(self.record.holder_fingerprint),
                alive=not self._expired(self.clock()),
            )
