"""Database schema initialization for the ledger store."""

from ...utils.logging_config import StructuredLogger
from .connection import get_db_connection, get_db_path

logger = StructuredLogger(__name__)

REQUIRED_TABLES = ("records", "liveness", "event_log")


def init_db(path: str | None = None):
    """Initialize the database with the required schema."""
    db_path = path or get_db_path()
    logger.info("Initializing database", path=db_path)
    with get_db_connection(db_path) as conn:
        cursor = conn.cursor()

        # WAL mode for concurrent readers alongside the single writer
        cursor.execute("PRAGMA journal_mode=WAL;")
        cursor.execute("PRAGMA synchronous=NORMAL;")

        # One row per deployed leadership record
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS records (
                address TEXT PRIMARY KEY,
                holder_id TEXT NOT NULL DEFAULT '',
                holder_fingerprint TEXT NOT NULL,
                lease_timeout_seconds INTEGER NOT NULL,
                authorized_signer TEXT NOT NULL,
                head_seq INTEGER NOT NULL DEFAULT 0,
                head_hash TEXT NOT NULL DEFAULT 'GENESIS',
                created_at TEXT DEFAULT CURRENT_TIMESTAMP,
                CHECK (lease_timeout_seconds > 0),
                CHECK (authorized_signer != ''),
                CHECK (head_seq >= 0)
            )
        """)

        # Liveness table: never deleted from, overwritten on claim/renew
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS liveness (
                address TEXT NOT NULL,
                fingerprint TEXT NOT NULL,
                last_renewal INTEGER NOT NULL,
                PRIMARY KEY (address, fingerprint),
                FOREIGN KEY(address) REFERENCES records(address),
                CHECK (last_renewal >= 0)
            )
        """)

        # Hash-chained event log, one chain per record
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS event_log (
                address TEXT NOT NULL,
                seq INTEGER NOT NULL,
                event_type TEXT NOT NULL,
                timestamp INTEGER NOT NULL,
                payload_json TEXT NOT NULL,
                prev_hash TEXT NOT NULL,
                event_hash TEXT NOT NULL,
                created_at TEXT DEFAULT CURRENT_TIMESTAMP,
                PRIMARY KEY (address, seq),
                FOREIGN KEY(address) REFERENCES records(address)
            )
        """)
        cursor.execute(
            "CREATE INDEX IF NOT EXISTS idx_event_log_type ON event_log(address, event_type)"
        )
    logger.info("Database initialized successfully")
