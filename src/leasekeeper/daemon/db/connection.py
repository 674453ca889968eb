"""SQLite connection management for the ledger store."""

from __future__ import annotations

import os
import sqlite3
from contextlib import contextmanager
from pathlib import Path

DEFAULT_DB_PATH = Path.home() / ".leasekeeper" / "ledger.db"


def get_db_path() -> str:
    """Resolve the ledger database path (LEASEKEEPER_DB_PATH or ~/.leasekeeper/ledger.db)."""
    raw = (os.getenv("LEASEKEEPER_DB_PATH") or "").strip()
    return os.path.expanduser(raw) if raw else str(DEFAULT_DB_PATH)


@contextmanager
def get_db_connection(path: str | None = None):
    """
    Yields a SQLite connection in autocommit mode; callers open transactions
    explicitly with BEGIN IMMEDIATE.
    Usage:
        with get_db_connection() as conn:
            conn.execute("...")
    """
    db_path = path or get_db_path()
    if db_path != ":memory:":
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(db_path, timeout=30.0, check_same_thread=False, isolation_level=None)
    conn.execute("PRAGMA foreign_keys = ON;")
    conn.row_factory = sqlite3.Row
    try:
        yield conn
    finally:
        conn.close()
