"""Per-identity liveness table keyed by identity fingerprint."""

from __future__ import annotations

from typing import Iterator

from ...utils.deterministic import FINGERPRINT_SIZE


class LivenessTable:
    """Fingerprint -> last renewal timestamp.

    Append/overwrite only. Entries of former holders stay in place so that
    their last pre-failover timestamp remains readable.
    """

    def __init__(self, entries: dict[bytes, int] | None = None):
        self._entries: dict[bytes, int] = {}
        for fp, ts in (entries or {}).items():
            self.record(fp, ts)

    def record(self, fp: bytes, timestamp: int) -> None:
        if len(fp) != FINGERPRINT_SIZE:
            raise ValueError(f"fingerprint must be {FINGERPRINT_SIZE} bytes, got {len(fp)}")
        if timestamp < 0:
            raise ValueError("timestamp must be non-negative")
        self._entries[fp] = int(timestamp)

    def get(self, fp: bytes) -> int:
        return self._entries.get(fp, 0)

    def __contains__(self, fp: bytes) -> bool:
        return fp in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def items(self) -> Iterator[tuple[bytes, int]]:
        return iter(sorted(self._entries.items()))
