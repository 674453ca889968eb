"""Ledger client adapters: typed queries, submissions with outcomes, subscriptions."""

from .base import EventHandler, LedgerClient
from .http import HttpLedgerClient
from .local import LocalLedgerClient
from .operations import (
    Claim,
    GetAuthorizedSigner,
    GetCurrentLeader,
    GetDerivedState,
    GetLeaseTimeout,
    GetLiveness,
    IsAlive,
    Renew,
    SetLeaseTimeout,
)
from .outcomes import Committed, FatalLedgerError, LedgerTransportError, Outcome, Rejected, TransportFailure

__all__ = [
    "Claim",
    "Committed",
    "EventHandler",
    "FatalLedgerError",
    "GetAuthorizedSigner",
    "GetCurrentLeader",
    "GetDerivedState",
    "GetLeaseTimeout",
    "GetLiveness",
    "HttpLedgerClient",
    "IsAlive",
    "LedgerClient",
    "LedgerTransportError",
    "LocalLedgerClient",
    "Outcome",
    "Rejected",
    "Renew",
    "SetLeaseTimeout",
    "TransportFailure",
]
