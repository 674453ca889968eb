"""Per-node reconciliation loop.

Each tick reads the current leader and the derived lease state, then takes
exactly one branch:

    Vacant            -> claim
    Leased, self      -> renew
    Leased, other     -> observe
    Expired           -> claim (also when the expired holder is this node)

At most one mutating submission is made per tick. Transport failures abort
the tick and are retried by the next one; there is no in-tick retry. All
coordination with other nodes goes through the ledger's commit order.
"""

from __future__ import annotations

import asyncio
from enum import StrEnum

from ..client import (
    Claim,
    Committed,
    FatalLedgerError,
    GetCurrentLeader,
    GetDerivedState,
    LedgerClient,
    LedgerTransportError,
    Rejected,
    Renew,
)
from ..daemon.ledger import DerivedState, EventKind, LedgerEvent, RejectionKind
from ..utils.logging_config import StructuredLogger
from .hooks import LoggingHook, PostElectionHook

logger = StructuredLogger(__name__)


class TickOutcome(StrEnum):
    CLAIMED = "claimed"
    CLAIM_LOST = "claim_lost"
    CLAIM_REJECTED = "claim_rejected"
    RENEWED = "renewed"
    RENEW_REJECTED = "renew_rejected"
    OBSERVED = "observed"
    ABORTED = "aborted"


class ReconciliationLoop:
    def __init__(
        self,
        client: LedgerClient,
        identity: str,
        hook: PostElectionHook | None = None,
        interval: float = 30.0,
    ):
        if not identity:
            raise ValueError("node identity must not be empty")
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.client = client
        self.identity = identity
        self.hook = hook or LoggingHook()
        self.interval = interval
        self.last_outcome: TickOutcome | None = None

    # ── One tick ────────────────────────────────────────────────────────

    async def tick(self) -> TickOutcome:
        outcome = await self._tick()
        self.last_outcome = outcome
        return outcome

    async def _tick(self) -> TickOutcome:
        try:
            leader = await self.client.query(GetCurrentLeader())
            state = await self.client.query(GetDerivedState())
        except LedgerTransportError as e:
            logger.warning("Tick aborted: ledger read failed", identity=self.identity, error=str(e))
            return TickOutcome.ABORTED

        is_self = leader.holder_id == self.identity
        logger.debug(
            "Observed ledger state",
            state=state.value,
            holder=leader.holder_id or None,
            alive=leader.alive,
            last_renewal=leader.last_renewal,
            is_self=is_self,
        )

        if state == DerivedState.VACANT:
            logger.info("No leader elected; claiming", identity=self.identity)
            return await self._claim()
        if state == DerivedState.EXPIRED:
            logger.warning("Leader lease expired; claiming", identity=self.identity, expired_holder=leader.holder_id)
            return await self._claim()
        if is_self:
            return await self._renew()

        logger.debug("Following current leader", holder=leader.holder_id)
        return TickOutcome.OBSERVED

    async def _claim(self) -> TickOutcome:
        outcome = await self.client.submit(Claim(self.identity))

        if isinstance(outcome, Committed):
            logger.info("Claim committed; this node is leader", identity=self.identity)
            await self._run_hook()
            return TickOutcome.CLAIMED

        if isinstance(outcome, Rejected):
            self._check_fatal(outcome)
            if outcome.kind == RejectionKind.STILL_LEASED:
                logger.info("Claim lost: another node won the election", identity=self.identity)
                return TickOutcome.CLAIM_LOST
            logger.error("Claim rejected", identity=self.identity, kind=outcome.kind.value, detail=outcome.detail)
            return TickOutcome.CLAIM_REJECTED

        logger.warning("Tick aborted: claim not confirmed", identity=self.identity, error=outcome.reason)
        return TickOutcome.ABORTED

    async def _renew(self) -> TickOutcome:
        outcome = await self.client.submit(Renew(self.identity))

        if isinstance(outcome, Committed):
            logger.debug("Lease renewed", identity=self.identity)
            return TickOutcome.RENEWED

        if isinstance(outcome, Rejected):
            self._check_fatal(outcome)
            if outcome.kind == RejectionKind.IDENTITY_MISMATCH:
                logger.warning("Renewal rejected: leadership lost", identity=self.identity, detail=outcome.detail)
            else:
                logger.error("Renewal rejected", identity=self.identity, kind=outcome.kind.value, detail=outcome.detail)
            return TickOutcome.RENEW_REJECTED

        logger.warning("Tick aborted: renewal not confirmed", identity=self.identity, error=outcome.reason)
        return TickOutcome.ABORTED

    def _check_fatal(self, outcome: Rejected) -> None:
        if outcome.kind == RejectionKind.UNAUTHORIZED:
            logger.critical("Signer credential is not authorized for this record", identity=self.identity)
            raise FatalLedgerError(f"Unauthorized: {outcome.detail}")

    async def _run_hook(self) -> None:
        try:
            await self.hook.on_elected(self.identity)
        except Exception as e:
            logger.error("Post-election hook failed", hook=self.hook.name, identity=self.identity, error=str(e))

    # ── Loop ────────────────────────────────────────────────────────────

    def _on_leader_elected(self, event: LedgerEvent) -> None:
        logger.info(
            "LeaderElected event",
            identity=event.payload.get("identity"),
            timestamp=event.timestamp,
            seq=event.seq,
        )

    async def run(self, stop: asyncio.Event | None = None) -> None:
        """Tick immediately, then every `interval` seconds, until `stop` is set."""
        stop = stop or asyncio.Event()
        self.client.subscribe(EventKind.LEADER_ELECTED, self._on_leader_elected)
        logger.info("Reconciliation loop started", identity=self.identity, interval=self.interval)

        while not stop.is_set():
            await self.tick()
            try:
                await asyncio.wait_for(stop.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass

        logger.info("Reconciliation loop stopped", identity=self.identity)
