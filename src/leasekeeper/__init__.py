"""Leasekeeper - ledger-backed leader election."""

__version__ = "1.0.0"

from .daemon.ledger import DerivedState, LeaseStateMachine, LedgerRejection, RejectionKind  # noqa: E402
from .client import HttpLedgerClient, LocalLedgerClient  # noqa: E402
from .node import ReconciliationLoop, TickOutcome  # noqa: E402

__all__ = [
    "DerivedState",
    "HttpLedgerClient",
    "LeaseStateMachine",
    "LedgerRejection",
    "LocalLedgerClient",
    "ReconciliationLoop",
    "RejectionKind",
    "TickOutcome",
    "__version__",
]
