"""Operation values accepted by LedgerClient.query / LedgerClient.submit."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union


# --- Queries (side-effect-free) ---

@dataclass(frozen=True)
class GetCurrentLeader:
    pass


@dataclass(frozen=True)
class GetDerivedState:
    pass


@dataclass(frozen=True)
class IsAlive:
    pass


@dataclass(frozen=True)
class GetLiveness:
    identity: str


@dataclass(frozen=True)
class GetLeaseTimeout:
    pass


@dataclass(frozen=True)
class GetAuthorizedSigner:
    pass


# --- Submissions (mutating, ordered by the ledger) ---

@dataclass(frozen=True)
class Claim:
    identity: str


@dataclass(frozen=True)
class Renew:
    identity: str


@dataclass(frozen=True)
class SetLeaseTimeout:
    seconds: int


Query = Union[GetCurrentLeader, GetDerivedState, IsAlive, GetLiveness, GetLeaseTimeout, GetAuthorizedSigner]
Submission = Union[Claim, Renew, SetLeaseTimeout]
