"""Submission outcomes and transport errors."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union

from ..daemon.ledger import LedgerEvent, RejectionKind


@dataclass(frozen=True)
class Committed:
    """The operation was durably ordered and applied."""

    events: tuple[LedgerEvent, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class Rejected:
    """A ledger precondition failed; ledger state is unchanged."""

    kind: RejectionKind
    detail: str = ""


@dataclass(frozen=True)
class TransportFailure:
    """Timeout, unreachable ledger or malformed response. Retryable."""

    reason: str


Outcome = Union[Committed, Rejected, TransportFailure]


class LedgerTransportError(Exception):
    """Raised by LedgerClient.query when the ledger cannot be read."""


class FatalLedgerError(Exception):
    """The process must not continue (e.g. its signer credential is not authorized)."""
