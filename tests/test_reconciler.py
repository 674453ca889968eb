"""Reconciliation loop decision table, hooks, faults and multi-node scenarios."""

import asyncio
import unittest

from leasekeeper.client import (
    Claim,
    Committed,
    FatalLedgerError,
    GetCurrentLeader,
    GetDerivedState,
    LedgerClient,
    LedgerTransportError,
    LocalLedgerClient,
    Rejected,
    Renew,
    TransportFailure,
)
from leasekeeper.daemon.auth import signer_principal
from leasekeeper.daemon.ledger import DerivedState, LeaderInfo, LeaseStateMachine, RejectionKind
from leasekeeper.node.hooks import PostElectionHook
from leasekeeper.node.reconciler import ReconciliationLoop, TickOutcome
from leasekeeper.simulation import NODE_IDS, ManualClock, run_failover_simulation

CREDENTIAL = "7e57" * 16


class RecordingHook(PostElectionHook):
    name = "recording"

    def __init__(self, fail=False):
        self.calls = []
        self.fail = fail

    async def on_elected(self, identity):
        self.calls.append(identity)
        if self.fail:
            raise RuntimeError("hook exploded")


class ScriptedClient(LedgerClient):
    """Returns canned reads and submission outcomes; records submissions."""

    def __init__(self, leader=None, state=DerivedState.VACANT, outcome=None, read_error=None):
        super().__init__()
        self.leader = leader or LeaderInfo("", 0, False)
        self.state = state
        self.outcome = outcome or Committed()
        self.read_error = read_error
        self.submitted = []

    async def query(self, op):
        if self.read_error:
            raise self.read_error
        if isinstance(op, GetCurrentLeader):
            return self.leader
        if isinstance(op, GetDerivedState):
            return self.state
        raise TypeError(op)

    async def submit(self, op):
        self.submitted.append(op)
        return self.outcome


def _ledger(timeout=10):
    clock = ManualClock(start=5_000_000)
    return LeaseStateMachine.deploy(timeout, signer_principal(CREDENTIAL), clock=clock), clock


def _node(machine, identity, hook=None, credential=CREDENTIAL):
    return ReconciliationLoop(LocalLedgerClient(machine, credential), identity, hook=hook or RecordingHook(), interval=0.01)


class DecisionTableTests(unittest.TestCase):
    def test_vacant_claims_and_runs_hook_once(self):
        machine, clock = _ledger()
        hook = RecordingHook()
        node = _node(machine, "A", hook)

        self.assertEqual(asyncio.run(node.tick()), TickOutcome.CLAIMED)
        self.assertEqual(hook.calls, ["A"])
        self.assertEqual(machine.get_current_leader().holder_id, "A")
        self.assertEqual(node.last_outcome, TickOutcome.CLAIMED)

        clock.advance(3)
        self.assertEqual(asyncio.run(node.tick()), TickOutcome.RENEWED)
        self.assertEqual(hook.calls, ["A"])
        self.assertEqual(machine.get_liveness("A"), clock.now)

    def test_leased_by_other_only_observes(self):
        machine, clock = _ledger()
        asyncio.run(_node(machine, "A").tick())
        follower_hook = RecordingHook()
        clock.advance(10)

        self.assertEqual(asyncio.run(_node(machine, "B", follower_hook).tick()), TickOutcome.OBSERVED)
        self.assertEqual(machine.sequence, 1)
        self.assertEqual(follower_hook.calls, [])

    def test_expired_other_is_claimed(self):
        machine, clock = _ledger()
        asyncio.run(_node(machine, "A").tick())
        clock.advance(11)
        self.assertEqual(asyncio.run(_node(machine, "B").tick()), TickOutcome.CLAIMED)
        self.assertEqual(machine.get_current_leader().holder_id, "B")

    def test_expired_self_reclaims(self):
        machine, clock = _ledger()
        hook = RecordingHook()
        node = _node(machine, "A", hook)
        asyncio.run(node.tick())
        clock.advance(11)
        self.assertEqual(asyncio.run(node.tick()), TickOutcome.CLAIMED)
        self.assertEqual(hook.calls, ["A", "A"])

    def test_one_submission_per_tick(self):
        for state, holder, expected in (
            (DerivedState.VACANT, "", [Claim("me")]),
            (DerivedState.EXPIRED, "other", [Claim("me")]),
            (DerivedState.LEASED, "me", [Renew("me")]),
            (DerivedState.LEASED, "other", []),
        ):
            client = ScriptedClient(leader=LeaderInfo(holder, 1, state == DerivedState.LEASED), state=state)
            asyncio.run(ReconciliationLoop(client, "me", hook=RecordingHook()).tick())
            self.assertEqual(client.submitted, expected, state)


class RaceTests(unittest.TestCase):
    def test_lost_race_is_not_an_error(self):
        machine, clock = _ledger()
        hook = RecordingHook()
        b, c = _node(machine, "B", hook), _node(machine, "C", hook)

        async def race():
            return await asyncio.gather(b.tick(), c.tick())

        self.assertEqual(asyncio.run(race()), [TickOutcome.CLAIMED, TickOutcome.CLAIM_LOST])
        self.assertEqual(hook.calls, ["B"])
        self.assertEqual(machine.get_current_leader().holder_id, "B")

        clock.advance(3)
        self.assertEqual(asyncio.run(c.tick()), TickOutcome.OBSERVED)

    def test_stale_holder_renewal_rejected(self):
        client = ScriptedClient(
            leader=LeaderInfo("me", 1, True),
            state=DerivedState.LEASED,
            outcome=Rejected(RejectionKind.IDENTITY_MISMATCH),
        )
        self.assertEqual(asyncio.run(ReconciliationLoop(client, "me").tick()), TickOutcome.RENEW_REJECTED)


class FaultTests(unittest.TestCase):
    def test_hook_failure_does_not_abort_tick(self):
        machine, _ = _ledger()
        hook = RecordingHook(fail=True)
        node = _node(machine, "A", hook)
        with self.assertLogs("leasekeeper.node.reconciler", level="ERROR") as logs:
            self.assertEqual(asyncio.run(node.tick()), TickOutcome.CLAIMED)
        self.assertEqual(hook.calls, ["A"])
        self.assertIn("Post-election hook failed", logs.output[0])

    def test_read_failure_aborts_without_submitting(self):
        client = ScriptedClient(read_error=LedgerTransportError("timeout"))
        self.assertEqual(asyncio.run(ReconciliationLoop(client, "me").tick()), TickOutcome.ABORTED)
        self.assertEqual(client.submitted, [])

    def test_submit_transport_failure_aborts(self):
        for state, holder in ((DerivedState.VACANT, ""), (DerivedState.LEASED, "me")):
            hook = RecordingHook()
            client = ScriptedClient(
                leader=LeaderInfo(holder, 1, bool(holder)),
                state=state,
                outcome=TransportFailure("read timeout"),
            )
            self.assertEqual(asyncio.run(ReconciliationLoop(client, "me", hook=hook).tick()), TickOutcome.ABORTED)
            self.assertEqual(len(client.submitted), 1)
            self.assertEqual(hook.calls, [])

    def test_unauthorized_is_fatal(self):
        machine, _ = _ledger()
        node = _node(machine, "A", credential="bad" * 20)
        with self.assertRaises(FatalLedgerError):
            asyncio.run(node.tick())
        self.assertEqual(machine.derived_state(), DerivedState.VACANT)

    def test_other_claim_rejections_are_logged_and_survived(self):
        client = ScriptedClient(outcome=Rejected(RejectionKind.EMPTY_IDENTITY))
        self.assertEqual(asyncio.run(ReconciliationLoop(client, "me").tick()), TickOutcome.CLAIM_REJECTED)

    def test_invalid_construction(self):
        client = ScriptedClient()
        with self.assertRaises(ValueError):
            ReconciliationLoop(client, "")
        with self.assertRaises(ValueError):
            ReconciliationLoop(client, "me", interval=0)


class RunLoopTests(unittest.TestCase):
    def test_run_ticks_until_stopped(self):
        machine, clock = _ledger()

        async def scenario():
            stop = asyncio.Event()
            client = LocalLedgerClient(machine, CREDENTIAL)
            node = ReconciliationLoop(client, "A", hook=RecordingHook(), interval=0.01)

            async def stopper():
                while machine.sequence < 3:
                    await asyncio.sleep(0.005)
                stop.set()

            await asyncio.gather(node.run(stop), stopper())
            await client.close()
            return node

        node = asyncio.run(scenario())
        self.assertGreaterEqual(machine.sequence, 3)
        self.assertEqual(node.last_outcome, TickOutcome.RENEWED)
        self.assertEqual(machine.get_current_leader().holder_id, "A")

    def test_subscription_sees_other_nodes_elections(self):
        machine, clock = _ledger()

        async def scenario():
            client = LocalLedgerClient(machine, CREDENTIAL)
            seen = asyncio.Event()
            elected = []

            def on_elected(event):
                elected.append(event.payload["identity"])
                seen.set()

            client.subscribe("LeaderElected", on_elected)
            await _node(machine, "B").tick()
            await asyncio.wait_for(seen.wait(), timeout=2)
            await client.close()
            return elected

        self.assertEqual(asyncio.run(scenario()), ["B"])


class FailoverSimulationTests(unittest.TestCase):
    def test_three_node_failover(self):
        report = asyncio.run(run_failover_simulation(lease_timeout_seconds=10, heartbeat_gap=3))

        self.assertEqual(report.elected, [NODE_IDS["A"], NODE_IDS["B"], NODE_IDS["C"]])
        races = [step for step in report.steps if "race" in step.title]
        self.assertEqual(races[0].outcomes, [("B", TickOutcome.CLAIMED), ("C", TickOutcome.CLAIM_LOST)])
        self.assertEqual(races[1].outcomes, [("C", TickOutcome.CLAIMED), ("A", TickOutcome.CLAIM_LOST)])

        offline = [step for step in report.steps if "offline" in step.title]
        self.assertTrue(all(step.state == DerivedState.EXPIRED for step in offline))
        self.assertEqual(report.steps[-1].holder, NODE_IDS["C"])
        self.assertEqual(report.steps[-1].state, DerivedState.LEASED)
        self.assertEqual(report.steps[-1].outcomes[0], ("C", TickOutcome.RENEWED))


if __name__ == "__main__":
    unittest.main()
