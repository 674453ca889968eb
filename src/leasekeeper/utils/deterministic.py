"""Deterministic serialization and hashing helpers."""

import hashlib
import json
from typing import Any

FINGERPRINT_SIZE = 32
ZERO_FINGERPRINT = bytes(FINGERPRINT_SIZE)


def canonical_json(value: Any) -> str:
    """Serialize data into stable JSON for replay-safe hashes."""
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=True)


def stable_hash_hex(*parts: str) -> str:
    """Create a stable SHA-256 digest over multiple string parts."""
    h = hashlib.sha256()
    for part in parts:
        h.update(part.encode("utf-8"))
        h.update(b"\n")
    return h.hexdigest()


def fingerprint(identity: str) -> bytes:
    """Content hash of a node identity (32 bytes)."""
    return hashlib.sha256(identity.encode("utf-8")).digest()


def is_utf8_text(value: str) -> bool:
    """False for strings holding lone surrogates, which cannot be hashed or stored."""
    try:
        value.encode("utf-8")
    except UnicodeEncodeError:
        return False
    return True
