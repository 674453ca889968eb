"""HTTP ledger client against the ASGI app and against scripted transports."""

import asyncio
import json
import tempfile
import unittest

import httpx

from leasekeeper.client import (
    Claim,
    Committed,
    GetAuthorizedSigner,
    GetCurrentLeader,
    GetDerivedState,
    GetLeaseTimeout,
    GetLiveness,
    HttpLedgerClient,
    IsAlive,
    LedgerTransportError,
    Rejected,
    Renew,
    SetLeaseTimeout,
    TransportFailure,
)
from leasekeeper.daemon.app import app
from leasekeeper.daemon.app.lifecycle import get_store
from leasekeeper.daemon.auth import signer_principal
from leasekeeper.daemon.ledger import DerivedState, EventKind, LedgerStore, RejectionKind
from leasekeeper.daemon.ledger.events import EventChain
from leasekeeper.simulation import ManualClock

CREDENTIAL = "c0ffee" * 11
ADDRESS = "0x" + "ab" * 20


class HttpClientEndToEndTests(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.clock = ManualClock(start=3_000_000)
        self.store = LedgerStore(f"{self._tmp.name}/ledger.db", clock=self.clock)
        app.dependency_overrides[get_store] = lambda: self.store
        self.address, _ = self.store.deploy(lease_timeout_seconds=10, authorized_signer=signer_principal(CREDENTIAL))

    def tearDown(self):
        app.dependency_overrides.clear()
        self._tmp.cleanup()

    def _client(self, credential=CREDENTIAL):
        return HttpLedgerClient(
            "http://ledger.test/",
            self.address,
            credential=credential,
            transport=httpx.ASGITransport(app=app),
        )

    def test_queries_and_submissions(self):
        async def scenario():
            async with self._client() as client:
                self.assertEqual(await client.query(GetDerivedState()), DerivedState.VACANT)
                self.assertEqual(await client.query(GetLeaseTimeout()), 10)
                self.assertEqual(await client.query(GetAuthorizedSigner()), signer_principal(CREDENTIAL))

                outcome = await client.submit(Claim("A"))
                self.assertIsInstance(outcome, Committed)
                self.assertEqual(outcome.events[0].kind, EventKind.LEADER_ELECTED)
                self.assertEqual(outcome.events[0].address, self.address)

                leader = await client.query(GetCurrentLeader())
                self.assertEqual((leader.holder_id, leader.last_renewal, leader.alive), ("A", self.clock.now, True))
                self.assertTrue(await client.query(IsAlive()))
                self.assertEqual(await client.query(GetLiveness("A")), self.clock.now)
                self.assertEqual(await client.query(GetLiveness("nobody")), 0)

                self.assertEqual(await client.submit(Claim("B")), Rejected(RejectionKind.STILL_LEASED, "A is still leased"))

        asyncio.run(scenario())

    def test_rejections_are_typed(self):
        async def scenario():
            async with self._client() as client:
                renew = await client.submit(Renew("A"))
                self.assertIsInstance(renew, Rejected)
                self.assertEqual(renew.kind, RejectionKind.NO_LEADER_ELECTED)

                timeout = await client.submit(SetLeaseTimeout(0))
                self.assertEqual(timeout.kind, RejectionKind.INVALID_TIMEOUT)

            async with self._client(credential="f" * 64) as intruder:
                outcome = await intruder.submit(Claim("X"))
                self.assertIsInstance(outcome, Rejected)
                self.assertEqual(outcome.kind, RejectionKind.UNAUTHORIZED)

        asyncio.run(scenario())

    def test_unknown_record_is_a_read_failure(self):
        async def scenario():
            client = HttpLedgerClient(
                "http://ledger.test",
                "0x" + "0" * 40,
                credential=CREDENTIAL,
                transport=httpx.ASGITransport(app=app),
            )
            try:
                with self.assertRaises(LedgerTransportError):
                    await client.query(GetDerivedState())
                self.assertIsInstance(await client.submit(Claim("A")), TransportFailure)
            finally:
                await client.close()

        asyncio.run(scenario())


class HttpClientTransportTests(unittest.TestCase):
    def _client(self, handler):
        return HttpLedgerClient(
            "http://ledger.test",
            ADDRESS,
            credential=CREDENTIAL,
            reconnect_delay=0.01,
            transport=httpx.MockTransport(handler),
        )

    def test_connection_errors(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        async def scenario():
            async with self._client(handler) as client:
                with self.assertRaises(LedgerTransportError):
                    await client.query(GetCurrentLeader())
                outcome = await client.submit(Renew("A"))
                self.assertIsInstance(outcome, TransportFailure)
                self.assertIn("ConnectError", outcome.reason)

        asyncio.run(scenario())

    def test_server_errors_and_malformed_responses(self):
        responses = iter(
            [
                httpx.Response(500, text="Internal Server Error"),
                httpx.Response(200, text="not json"),
                httpx.Response(409, json={"error": "SomethingNew"}),
                httpx.Response(200, json={"committed": True}),
                httpx.Response(200, json={"state": "Sideways"}),
            ]
        )

        def handler(request):
            return next(responses)

        async def scenario():
            async with self._client(handler) as client:
                for _ in range(4):
                    self.assertIsInstance(await client.submit(Claim("A")), TransportFailure)
                with self.assertRaises(LedgerTransportError):
                    await client.query(GetDerivedState())

        asyncio.run(scenario())

    def test_bearer_credential_is_sent(self):
        seen = []

        def handler(request):
            seen.append((request.url.path, request.headers.get("authorization"), json.loads(request.content)))
            return httpx.Response(409, json={"error": "StillLeased", "detail": "B holds it"})

        async def scenario():
            async with self._client(handler) as client:
                return await client.submit(Claim("A"))

        outcome = asyncio.run(scenario())
        self.assertEqual(outcome, Rejected(RejectionKind.STILL_LEASED, "B holds it"))
        self.assertEqual(seen, [(f"/records/{ADDRESS}/claim", f"Bearer {CREDENTIAL}", {"identity": "A"})])

    def test_subscription_delivers_only_new_matching_events(self):
        chain = EventChain(address=ADDRESS)
        old = chain.append(EventKind.LEADER_ELECTED, 100, {"identity": "A", "timestamp": 100})
        renewed = chain.append(EventKind.RENEWED, 105, {"identity": "A", "timestamp": 105, "sequence": 2})
        elected = chain.append(EventKind.LEADER_ELECTED, 120, {"identity": "B", "timestamp": 120})
        stream = "".join(
            f"id: {e.seq}\nevent: {e.kind.value}\ndata: {json.dumps(e.to_dict())}\n\n"
            for e in (old, renewed, elected)
        )
        stream_requests = []

        def handler(request):
            if request.url.path.endswith("/events/stream"):
                stream_requests.append(request.url.params.get("after"))
                return httpx.Response(200, text=": keepalive\n\n" + stream, headers={"content-type": "text/event-stream"})
            return httpx.Response(200, json={"address": ADDRESS, "sequence": 1})

        async def scenario():
            received = []
            done = asyncio.Event()

            def on_elected(event):
                received.append(event)
                done.set()

            async with self._client(handler) as client:
                client.subscribe(EventKind.LEADER_ELECTED, on_elected)
                await asyncio.wait_for(done.wait(), timeout=5)
                # Let the stream reconnect at least once; replayed events must not be redelivered.
                while len(stream_requests) < 2:
                    await asyncio.sleep(0.01)
            return received

        received = asyncio.run(scenario())
        self.assertEqual([e.seq for e in received], [3])
        self.assertEqual(received[0].payload["identity"], "B")
        self.assertEqual(stream_requests[0], "1")
        self.assertEqual(stream_requests[1], "3")


if __name__ == "__main__":
    unittest.main()
