"""
Leadership invariant checks over the ledger database.

All checks are deterministic queries against the SQLite database.
No mutations. No side effects.
"""

from dataclasses import dataclass
from typing import List, Optional

from ...utils.deterministic import ZERO_FINGERPRINT, fingerprint

_ZERO_HEX = ZERO_FINGERPRINT.hex()


@dataclass
class InvariantResult:
    name: str
    passed: bool
    detail: Optional[str] = None


def _failed(name: str, violations: List[str]) -> InvariantResult:
    return InvariantResult(name=name, passed=False, detail=f"Violations: {'; '.join(violations[:10])}")


def check_positive_timeout(conn) -> InvariantResult:
    """INV-1: lease_timeout_seconds > 0 for every record."""
    rows = conn.execute(
        "SELECT address, lease_timeout_seconds FROM records WHERE lease_timeout_seconds <= 0"
    ).fetchall()
    if rows:
        return _failed("positive_timeout", [f"{r['address']}: timeout={r['lease_timeout_seconds']}" for r in rows])
    return InvariantResult(name="positive_timeout", passed=True)


def check_signer_present(conn) -> InvariantResult:
    """INV-2: every record has a non-empty authorized signer."""
    rows = conn.execute(
        "SELECT address FROM records WHERE authorized_signer IS NULL OR authorized_signer = ''"
    ).fetchall()
    if rows:
        return _failed("signer_present", [r["address"] for r in rows])
    return InvariantResult(name="signer_present", passed=True)


def check_vacancy_consistent(conn) -> InvariantResult:
    """INV-3: zero fingerprint <=> empty holder id, and fingerprint matches the holder id."""
    violations = []
    rows = conn.execute("SELECT address, holder_id, holder_fingerprint FROM records").fetchall()
    for r in rows:
        vacant_fp = r["holder_fingerprint"] == _ZERO_HEX
        vacant_id = r["holder_id"] == ""
        if vacant_fp != vacant_id:
            violations.append(f"{r['address']}: holder_id={r['holder_id']!r} fingerprint={r['holder_fingerprint'][:12]}")
        elif not vacant_id and fingerprint(r["holder_id"]).hex() != r["holder_fingerprint"]:
            violations.append(f"{r['address']}: stale fingerprint for {r['holder_id']!r}")
    if violations:
        return _failed("vacancy_consistent", violations)
    return InvariantResult(name="vacancy_consistent", passed=True)


def check_holder_has_liveness(conn) -> InvariantResult:
    """INV-4: every non-vacant holder fingerprint has a liveness entry."""
    rows = conn.execute(
        """
        SELECT r.address, r.holder_id
        FROM records r
        LEFT JOIN liveness l
          ON l.address = r.address AND l.fingerprint = r.holder_fingerprint
        WHERE r.holder_fingerprint != ? AND l.fingerprint IS NULL
        """,
        (_ZERO_HEX,),
    ).fetchall()
    if rows:
        return _failed("holder_has_liveness", [f"{r['address']}: {r['holder_id']}" for r in rows])
    return InvariantResult(name="holder_has_liveness", passed=True)


def check_event_head_matches(conn) -> InvariantResult:
    """INV-5: the record's chain head equals its last persisted event."""
    rows = conn.execute(
        """
        SELECT r.address, r.head_seq, r.head_hash,
               (SELECT MAX(seq) FROM event_log e WHERE e.address = r.address) AS last_seq,
               (SELECT event_hash FROM event_log e WHERE e.address = r.address
                ORDER BY seq DESC LIMIT 1) AS last_hash
        FROM records r
        """
    ).fetchall()
    violations = []
    for r in rows:
        last_seq = r["last_seq"] or 0
        last_hash = r["last_hash"] or "GENESIS"
        if r["head_seq"] != last_seq or r["head_hash"] != last_hash:
            violations.append(f"{r['address']}: head={r['head_seq']} last_event={last_seq}")
    if violations:
        return _failed("event_head_matches", violations)
    return InvariantResult(name="event_head_matches", passed=True)


def run_all_checks(conn) -> List[InvariantResult]:
    return [
        check_positive_timeout(conn),
        check_signer_present(conn),
        check_vacancy_consistent(conn),
        check_holder_has_liveness(conn),
        check_event_head_matches(conn),
    ]
