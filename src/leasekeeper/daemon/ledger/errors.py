"""Typed rejections raised at the ledger boundary."""

from __future__ import annotations

from enum import StrEnum


class RejectionKind(StrEnum):
    STILL_LEASED = "StillLeased"
    EMPTY_IDENTITY = "EmptyIdentity"
    IDENTITY_MISMATCH = "IdentityMismatch"
    NO_LEADER_ELECTED = "NoLeaderElected"
    INVALID_TIMEOUT = "InvalidTimeout"
    UNAUTHORIZED = "Unauthorized"
    ZERO_SIGNER = "ZeroSigner"


_DEFAULT_DETAIL = {
    RejectionKind.STILL_LEASED: "current holder is still within its lease",
    RejectionKind.EMPTY_IDENTITY: "identity must not be empty",
    RejectionKind.IDENTITY_MISMATCH: "identity is not the current holder",
    RejectionKind.NO_LEADER_ELECTED: "no leader has been elected",
    RejectionKind.INVALID_TIMEOUT: "lease timeout must be greater than zero",
    RejectionKind.UNAUTHORIZED: "caller is not the authorized signer",
    RejectionKind.ZERO_SIGNER: "authorized signer must be set",
}


class LedgerRejection(Exception):
    """A mutating operation failed its precondition; ledger state is unchanged."""

    def __init__(self, kind: RejectionKind, detail: str | None = None):
        self.kind = RejectionKind(kind)
        self.detail = detail or _DEFAULT_DETAIL[self.kind]
        super().__init__(f"{self.kind.value}: {self.detail}")


class RecordNotFound(LookupError):
    def __init__(self, address: str):
        self.address = address
        super().__init__(f"No leadership record at {address}")
