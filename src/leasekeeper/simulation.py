"""In-process failover walkthrough: three nodes, one ledger, a manual clock.

A wins the initial election, goes offline, B and C race for the expired
lease (B's claim is ordered first), B goes offline, C and A race (C first).
"""

from __future__ import annotations

import asyncio
import secrets
from dataclasses import dataclass, field

from .client import LocalLedgerClient
from .daemon.auth import signer_principal
from .daemon.ledger import DerivedState, LeaseStateMachine
from .node.hooks import PostElectionHook
from .node.reconciler import ReconciliationLoop, TickOutcome

NODE_IDS = {
    "A": "AA:BB:CC:DD:EE:01",
    "B": "AA:BB:CC:DD:EE:02",
    "C": "AA:BB:CC:DD:EE:03",
}


class ManualClock:
    """Integer-second clock advanced explicitly."""

    def __init__(self, start: int = 1_700_000_000):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += seconds


class RecordingHook(PostElectionHook):
    name = "recording"

    def __init__(self):
        self.elected: list[str] = []

    async def on_elected(self, identity: str) -> None:
        self.elected.append(identity)


@dataclass
class SimulationStep:
    title: str
    outcomes: list[tuple[str, TickOutcome]] = field(default_factory=list)
    state: DerivedState | None = None
    holder: str = ""
    alive: bool = False
    elapsed: int = 0


@dataclass
class SimulationReport:
    lease_timeout_seconds: int
    steps: list[SimulationStep]
    elected: list[str]


async def run_failover_simulation(lease_timeout_seconds: int = 10, heartbeat_gap: int = 3) -> SimulationReport:
    clock = ManualClock()
    start = clock.now
    credential = secrets.token_hex(32)
    machine = LeaseStateMachine.deploy(lease_timeout_seconds, signer_principal(credential), clock=clock)
    hook = RecordingHook()
    nodes = {
        name: ReconciliationLoop(LocalLedgerClient(machine, credential), identity, hook=hook, interval=1.0)
        for name, identity in NODE_IDS.items()
    }
    steps: list[SimulationStep] = []

    def snapshot(step: SimulationStep) -> SimulationStep:
        leader = machine.get_current_leader()
        step.state = machine.derived_state()
        step.holder = leader.holder_id
        step.alive = leader.alive
        step.elapsed = clock.now - start
        steps.append(step)
        return step

    async def sequential(title: str, order: str) -> None:
        step = SimulationStep(title)
        for name in order:
            step.outcomes.append((name, await nodes[name].tick()))
        snapshot(step)

    async def race(title: str, order: str) -> None:
        step = SimulationStep(title)
        results = await asyncio.gather(*(nodes[name].tick() for name in order))
        step.outcomes.extend(zip(order, results))
        snapshot(step)

    snapshot(SimulationStep("Deploy vacant record"))
    await sequential("All nodes start; A wins the initial election", "ABC")
    for _ in range(3):
        clock.advance(heartbeat_gap)
        await sequential("A renews, B and C follow", "ABC")

    clock.advance(lease_timeout_seconds + 1)
    snapshot(SimulationStep("A goes offline; lease runs out"))
    await race("B and C race; B is ordered first", "BC")
    for _ in range(3):
        clock.advance(heartbeat_gap)
        await sequential("B renews, A (back online) and C follow", "BAC")

    clock.advance(lease_timeout_seconds + 1)
    snapshot(SimulationStep("B goes offline; lease runs out"))
    await race("C and A race; C is ordered first", "CA")
    for _ in range(2):
        clock.advance(heartbeat_gap)
        await sequential("C renews, A and B follow", "CAB")

    return SimulationReport(lease_timeout_seconds=lease_timeout_seconds, steps=steps, elected=hook.elected)
