"""Node side: identity, post-election hooks and the reconciliation loop."""

from .hooks import CommandHook, LoggingHook, PostElectionHook, WebhookHook, create_hook
from .identity import IdentityError, resolve_node_identity
from .reconciler import ReconciliationLoop, TickOutcome

__all__ = [
    "CommandHook",
    "IdentityError",
    "LoggingHook",
    "PostElectionHook",
    "ReconciliationLoop",
    "TickOutcome",
    "WebhookHook",
    "create_hook",
    "resolve_node_identity",
]
