"""Durable, serialized ledger store backed by SQLite.

Each mutating operation runs in a single BEGIN IMMEDIATE transaction: the
record is loaded into a LeaseStateMachine, the operation is applied, and the
resulting record, liveness entries and events are written back before commit.
SQLite's write lock gives every operation a place in one global order, also
across several service processes sharing the same database file. A rejected
operation rolls back and leaves the stored record untouched.
"""

from __future__ import annotations

import json
import secrets
import time
from typing import Callable

from ...utils.deterministic import fingerprint, stable_hash_hex
from ...utils.logging_config import StructuredLogger
from ..db import get_db_connection, get_db_path, init_db
from .errors import RecordNotFound
from .events import EventChain, EventKind, LedgerEvent
from .liveness import LivenessTable
from .machine import Clock, LeadershipRecord, LeaseStateMachine, wall_clock

logger = StructuredLogger(__name__)

Operation = Callable[[LeaseStateMachine], list[LedgerEvent]]


def new_address(authorized_signer: str) -> str:
    digest = stable_hash_hex(authorized_signer, str(time.time_ns()), secrets.token_hex(16))
    return "0x" + digest[:40]


def _row_to_event(row) -> LedgerEvent:
    return LedgerEvent(
        seq=int(row["seq"]),
        kind=EventKind(row["event_type"]),
        timestamp=int(row["timestamp"]),
        payload=json.loads(row["payload_json"]),
        prev_hash=row["prev_hash"],
        event_hash=row["event_hash"],
        address=row["address"],
    )


class LedgerStore:
    def __init__(self, path: str | None = None, clock: Clock = wall_clock, initialize: bool = True):
        self.path = path or get_db_path()
        self.clock = clock
        if initialize:
            init_db(self.path)

    # ── Loading / persisting ────────────────────────────────────────────

    def _load(self, conn, address: str) -> LeaseStateMachine:
        row = conn.execute("SELECT * FROM records WHERE address = ?", (address,)).fetchone()
        if not row:
            raise RecordNotFound(address)

        entries = {
            bytes.fromhex(r["fingerprint"]): int(r["last_renewal"])
            for r in conn.execute(
                "SELECT fingerprint, last_renewal FROM liveness WHERE address = ?", (address,)
            ).fetchall()
        }
        record = LeadershipRecord(
            holder_id=row["holder_id"],
            holder_fingerprint=bytes.fromhex(row["holder_fingerprint"]),
            lease_timeout_seconds=int(row["lease_timeout_seconds"]),
            authorized_signer=row["authorized_signer"],
        )
        chain = EventChain(head_seq=int(row["head_seq"]), head_hash=row["head_hash"], address=address)
        return LeaseStateMachine(record, LivenessTable(entries), chain, clock=self.clock)

    def _persist(self, conn, address: str, machine: LeaseStateMachine, events: list[LedgerEvent]) -> None:
        record = machine.record
        conn.execute(
            """
            UPDATE records
            SET holder_id = ?, holder_fingerprint = ?, lease_timeout_seconds = ?,
                head_seq = ?, head_hash = ?
            WHERE address = ?
            """,
            (
                record.holder_id,
                record.holder_fingerprint.hex(),
                record.lease_timeout_seconds,
                machine.chain.head_seq,
                machine.chain.head_hash,
                address,
            ),
        )

        for event in events:
            identity = event.payload.get("identity")
            if identity is not None:
                fp = fingerprint(identity)
                conn.execute(
                    """
                    INSERT INTO liveness (address, fingerprint, last_renewal) VALUES (?, ?, ?)
                    ON CONFLICT(address, fingerprint) DO UPDATE SET last_renewal = excluded.last_renewal
                    """,
                    (address, fp.hex(), machine.liveness.get(fp)),
                )
            conn.execute(
                """
                INSERT INTO event_log (address, seq, event_type, timestamp, payload_json, prev_hash, event_hash)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    address,
                    event.seq,
                    event.kind.value,
                    event.timestamp,
                    json.dumps(event.payload, sort_keys=True),
                    event.prev_hash,
                    event.event_hash,
                ),
            )

    def _transact(self, address: str, op: Operation) -> list[LedgerEvent]:
        with get_db_connection(self.path) as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                machine = self._load(conn, address)
                events = op(machine)
                self._persist(conn, address, machine, events)
                conn.commit()
            except Exception:
                conn.rollback()
                raise
        return events

    # ── Operations ──────────────────────────────────────────────────────

    def deploy(
        self,
        *,
        lease_timeout_seconds: int,
        authorized_signer: str,
        initial_holder: str = "",
    ) -> tuple[str, list[LedgerEvent]]:
        """Create a new leadership record and return its address."""
        LeaseStateMachine.check_deploy(lease_timeout_seconds, authorized_signer, initial_holder)
        address = new_address(authorized_signer)
        machine = LeaseStateMachine.deploy(
            lease_timeout_seconds,
            authorized_signer,
            initial_holder=initial_holder,
            clock=self.clock,
            address=address,
        )
        events = machine.deployed_events

        with get_db_connection(self.path) as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                conn.execute(
                    """
                    INSERT INTO records (address, holder_fingerprint, lease_timeout_seconds, authorized_signer)
                    VALUES (?, ?, ?, ?)
                    """,
                    (
                        address,
                        machine.record.holder_fingerprint.hex(),
                        machine.record.lease_timeout_seconds,
                        machine.record.authorized_signer,
                    ),
                )
                self._persist(conn, address, machine, events)
                conn.commit()
            except Exception:
                conn.rollback()
                raise

        logger.info(
            "Leadership record deployed",
            address=address,
            lease_timeout_seconds=machine.record.lease_timeout_seconds,
            initial_holder=initial_holder or None,
        )
        return address, events

    def claim(self, address: str, caller: str | None, identity: str) -> list[LedgerEvent]:
        events = self._transact(address, lambda m: m.claim(caller, identity))
        for event in events:
            logger.info("Leader elected", address=address, identity=identity, timestamp=event.timestamp, seq=event.seq)
        return events

    def renew(self, address: str, caller: str | None, identity: str) -> list[LedgerEvent]:
        return self._transact(address, lambda m: m.renew(caller, identity))

    def set_lease_timeout(self, address: str, caller: str | None, seconds: int) -> list[LedgerEvent]:
        events = self._transact(address, lambda m: m.set_lease_timeout(caller, seconds))
        for event in events:
            logger.info("Lease timeout updated", address=address, old=event.payload["old"], new=event.payload["new"])
        return events

    # ── Reads ───────────────────────────────────────────────────────────

    def snapshot(self, address: str) -> LeaseStateMachine:
        """Consistent read-only view of a record; mutations on it are not persisted."""
        with get_db_connection(self.path) as conn:
            conn.execute("BEGIN")
            try:
                return self._load(conn, address)
            finally:
                conn.rollback()

    def events_after(self, address: str, after: int = 0, limit: int = 500) -> list[LedgerEvent]:
        with get_db_connection(self.path) as conn:
            if not conn.execute("SELECT 1 FROM records WHERE address = ?", (address,)).fetchone():
                raise RecordNotFound(address)
            rows = conn.execute(
                """
                SELECT address, seq, event_type, timestamp, payload_json, prev_hash, event_hash
                FROM event_log
                WHERE address = ? AND seq > ?
                ORDER BY seq ASC
                LIMIT ?
                """,
                (address, after, limit),
            ).fetchall()
        return [_row_to_event(row) for row in rows]

    def list_addresses(self) -> list[str]:
        with get_db_connection(self.path) as conn:
            rows = conn.execute("SELECT address FROM records ORDER BY created_at ASC, address ASC").fetchall()
        return [row["address"] for row in rows]

    def counters(self) -> dict[str, int]:
        with get_db_connection(self.path) as conn:
            total_records = conn.execute("SELECT COUNT(*) FROM records").fetchone()[0]
            vacant = conn.execute(
                "SELECT COUNT(*) FROM records WHERE holder_id = ''"
            ).fetchone()[0]
            by_type = {
                row["event_type"]: row["c"]
                for row in conn.execute(
                    "SELECT event_type, COUNT(*) AS c FROM event_log GROUP BY event_type"
                ).fetchall()
            }
        return {
            "total_records": int(total_records),
            "vacant_records": int(vacant),
            "total_elections": int(by_type.get(EventKind.LEADER_ELECTED.value, 0)),
            "total_renewals": int(by_type.get(EventKind.RENEWED.value, 0)),
            "total_timeout_updates": int(by_type.get(EventKind.TIMEOUT_UPDATED.value, 0)),
        }
