"""Database integrity checks for schema + leadership invariants."""

from __future__ import annotations

from ..utils.invariants import run_all_checks
from .connection import get_db_connection
from .schema import REQUIRED_TABLES


def check_db_integrity(path: str | None = None) -> bool:
    """Run fast physical+logical checks used by daemon startup."""
    with get_db_connection(path) as conn:
        quick = conn.execute("PRAGMA quick_check").fetchone()[0]
        if str(quick).lower() != "ok":
            return False

        table_rows = conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'").fetchall()
        table_names = {row[0] for row in table_rows}
        if any(name not in table_names for name in REQUIRED_TABLES):
            return False

        results = run_all_checks(conn)
        return all(result.passed for result in results)
