"""In-process ledger client over a LeaseStateMachine (simulation and tests)."""

from __future__ import annotations

import asyncio
from typing import Any

from ..daemon.auth import signer_principal
from ..daemon.ledger import EventKind, LeaseStateMachine, LedgerEvent, LedgerRejection
from .base import EventHandler, LedgerClient
from .operations import (
    Claim,
    GetAuthorizedSigner,
    GetCurrentLeader,
    GetDerivedState,
    GetLeaseTimeout,
    GetLiveness,
    IsAlive,
    Query,
    Renew,
    SetLeaseTimeout,
    Submission,
)
from .outcomes import Committed, Outcome, Rejected


class LocalLedgerClient(LedgerClient):
    """Same contract as HttpLedgerClient, without a network hop.

    Several clients may share one machine; they then race through the
    machine's lock exactly as remote nodes race through the ledger service.
    """

    def __init__(self, machine: LeaseStateMachine, credential: str | None = None):
        super().__init__()
        self.machine = machine
        self.principal = signer_principal(credential) if credential else None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._listening = False

    async def query(self, op: Query) -> Any:
        # Yield like a network round trip so concurrent ticks interleave.
        await asyncio.sleep(0)
        m = self.machine
        if isinstance(op, GetCurrentLeader):
            return m.get_current_leader()
        if isinstance(op, GetDerivedState):
            return m.derived_state()
        if isinstance(op, IsAlive):
            return m.is_alive()
        if isinstance(op, GetLiveness):
            return m.get_liveness(op.identity)
        if isinstance(op, GetLeaseTimeout):
            return m.lease_timeout_seconds
        if isinstance(op, GetAuthorizedSigner):
            return m.authorized_signer
        raise TypeError(f"Unsupported query: {op!r}")

    async def submit(self, op: Submission) -> Outcome:
        await asyncio.sleep(0)
        try:
            if isinstance(op, Claim):
                events = self.machine.claim(self.principal, op.identity)
            elif isinstance(op, Renew):
                events = self.machine.renew(self.principal, op.identity)
            elif isinstance(op, SetLeaseTimeout):
                events = self.machine.set_lease_timeout(self.principal, op.seconds)
            else:
                raise TypeError(f"Unsupported submission: {op!r}")
        except LedgerRejection as e:
            return Rejected(kind=e.kind, detail=e.detail)
        return Committed(events=tuple(events))

    def subscribe(self, kind: EventKind, handler: EventHandler) -> None:
        super().subscribe(kind, handler)
        if not self._listening:
            self._loop = asyncio.get_running_loop()
            self.machine.add_listener(self._on_commit)
            self._listening = True

    def _on_commit(self, event: LedgerEvent) -> None:
        # Commits may come from any thread sharing the machine.
        if self._loop is not None and not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self._dispatch, event)

    async def close(self) -> None:
        if self._listening:
            self.machine.remove_listener(self._on_commit)
            self._listening = False
