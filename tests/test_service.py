"""Ledger service HTTP surface (FastAPI TestClient)."""

import tempfile
import unittest

from fastapi.testclient import TestClient

from leasekeeper.daemon.app import app
from leasekeeper.daemon.app.lifecycle import get_store
from leasekeeper.daemon.auth import signer_principal
from leasekeeper.daemon.ledger import LedgerStore
from leasekeeper.simulation import ManualClock

CREDENTIAL = "5a1e" * 16
OTHER_CREDENTIAL = "0bad" * 16


class LedgerServiceTests(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.clock = ManualClock(start=2_000_000)
        self.store = LedgerStore(f"{self._tmp.name}/ledger.db", clock=self.clock)
        app.dependency_overrides[get_store] = lambda: self.store
        self.client = TestClient(app)
        self.auth = {"Authorization": f"Bearer {CREDENTIAL}"}

    def tearDown(self):
        app.dependency_overrides.clear()
        self._tmp.cleanup()

    def _deploy(self, timeout=60, initial_holder=""):
        r = self.client.post(
            "/records",
            json={
                "lease_timeout_seconds": timeout,
                "authorized_signer": signer_principal(CREDENTIAL),
                "initial_holder": initial_holder,
            },
        )
        self.assertEqual(r.status_code, 201, r.text)
        return r.json()["address"]

    def test_deploy_and_read_record(self):
        address = self._deploy(timeout=120)
        r = self.client.get(f"/records/{address}")
        self.assertEqual(r.status_code, 200)
        self.assertEqual(
            r.json(),
            {
                "address": address,
                "lease_timeout_seconds": 120,
                "authorized_signer": signer_principal(CREDENTIAL),
                "sequence": 0,
            },
        )
        self.assertEqual(self.client.get("/records").json()["addresses"], [address])
        self.assertEqual(self.client.get(f"/records/{address}/state").json(), {"state": "Vacant"})
        self.assertEqual(
            self.client.get(f"/records/{address}/leader").json(),
            {"holder_id": "", "last_renewal": 0, "alive": False},
        )

    def test_deploy_rejections(self):
        r = self.client.post("/records", json={"lease_timeout_seconds": 0, "authorized_signer": "x"})
        self.assertEqual(r.status_code, 409)
        self.assertEqual(r.json()["error"], "InvalidTimeout")

        r = self.client.post("/records", json={"lease_timeout_seconds": 10})
        self.assertEqual(r.status_code, 409)
        self.assertEqual(r.json()["error"], "ZeroSigner")

    def test_claim_renew_and_contention(self):
        address = self._deploy()
        r = self.client.post(f"/records/{address}/claim", json={"identity": "A"}, headers=self.auth)
        self.assertEqual(r.status_code, 200, r.text)
        body = r.json()
        self.assertTrue(body["committed"])
        self.assertEqual(body["events"][0]["kind"], "LeaderElected")
        self.assertEqual(body["events"][0]["payload"], {"identity": "A", "timestamp": self.clock.now})

        r = self.client.post(f"/records/{address}/claim", json={"identity": "B"}, headers=self.auth)
        self.assertEqual(r.status_code, 409)
        self.assertEqual(r.json()["error"], "StillLeased")

        self.clock.advance(30)
        r = self.client.post(f"/records/{address}/renew", json={"identity": "A"}, headers=self.auth)
        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.json()["events"][0]["payload"]["sequence"], 2)

        r = self.client.post(f"/records/{address}/renew", json={"identity": "B"}, headers=self.auth)
        self.assertEqual(r.status_code, 409)
        self.assertEqual(r.json()["error"], "IdentityMismatch")

        self.assertEqual(self.client.get(f"/records/{address}/alive").json(), {"alive": True})
        r = self.client.get(f"/records/{address}/liveness", params={"identity": "A"})
        self.assertEqual(r.json(), {"identity": "A", "last_renewal": self.clock.now})

    def test_empty_identity_rejected(self):
        address = self._deploy()
        r = self.client.post(f"/records/{address}/claim", json={"identity": ""}, headers=self.auth)
        self.assertEqual(r.status_code, 409)
        self.assertEqual(r.json()["error"], "EmptyIdentity")

    def test_unencodable_identity_rejected(self):
        address = self._deploy()
        headers = {**self.auth, "Content-Type": "application/json"}
        r = self.client.post(f"/records/{address}/claim", content='{"identity": "\\ud800"}', headers=headers)
        self.assertEqual(r.status_code, 409, r.text)
        self.assertEqual(r.json()["error"], "EmptyIdentity")

        self.client.post(f"/records/{address}/claim", json={"identity": "A"}, headers=self.auth)
        r = self.client.post(f"/records/{address}/renew", content='{"identity": "\\ud800"}', headers=headers)
        self.assertEqual(r.status_code, 409, r.text)
        self.assertEqual(r.json()["error"], "IdentityMismatch")

        r = self.client.post(
            "/records",
            content='{"lease_timeout_seconds": 60, "authorized_signer": "x", "initial_holder": "\\ud800"}',
            headers={"Content-Type": "application/json"},
        )
        self.assertEqual(r.status_code, 409, r.text)
        self.assertEqual(r.json()["error"], "EmptyIdentity")

    def test_mutations_require_the_signer(self):
        address = self._deploy()
        cases = [
            {},
            {"Authorization": f"Bearer {OTHER_CREDENTIAL}"},
            {"Authorization": "Bearer short"},
        ]
        for headers in cases:
            r = self.client.post(f"/records/{address}/claim", json={"identity": "A"}, headers=headers)
            self.assertEqual(r.status_code, 403, headers)
            self.assertEqual(r.json()["error"], "Unauthorized")
        self.assertEqual(self.client.get(f"/records/{address}").json()["sequence"], 0)

    def test_timeout_update(self):
        address = self._deploy(timeout=3600, initial_holder="A")
        self.clock.advance(1800)
        r = self.client.post(f"/records/{address}/timeout", json={"seconds": 600}, headers=self.auth)
        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.json()["events"][0]["payload"], {"old": 3600, "new": 600})
        self.assertEqual(self.client.get(f"/records/{address}/state").json(), {"state": "Expired"})

        r = self.client.post(f"/records/{address}/timeout", json={"seconds": 0}, headers=self.auth)
        self.assertEqual(r.status_code, 409)
        self.assertEqual(r.json()["error"], "InvalidTimeout")

    def test_timeout_beyond_storable_range_is_422(self):
        address = self._deploy(timeout=60)
        for seconds in (2**63, 2**64 - 1):
            r = self.client.post(f"/records/{address}/timeout", json={"seconds": seconds}, headers=self.auth)
            self.assertEqual(r.status_code, 422, seconds)
        self.assertEqual(self.client.get(f"/records/{address}").json()["lease_timeout_seconds"], 60)

        r = self.client.post(
            "/records",
            json={"lease_timeout_seconds": 2**63, "authorized_signer": signer_principal(CREDENTIAL)},
        )
        self.assertEqual(r.status_code, 422)
        self.assertEqual(self.client.get("/records").json()["addresses"], [address])

        address = self._deploy(timeout=2**63 - 1)
        self.assertEqual(self.client.get(f"/records/{address}").json()["lease_timeout_seconds"], 2**63 - 1)

    def test_events_and_verify(self):
        address = self._deploy(timeout=10, initial_holder="A")
        self.client.post(f"/records/{address}/renew", json={"identity": "A"}, headers=self.auth)
        self.clock.advance(11)
        self.client.post(f"/records/{address}/claim", json={"identity": "B"}, headers=self.auth)

        events = self.client.get(f"/records/{address}/events").json()["events"]
        self.assertEqual([e["seq"] for e in events], [1, 2, 3])
        later = self.client.get(f"/records/{address}/events", params={"after": 2}).json()["events"]
        self.assertEqual([e["kind"] for e in later], ["LeaderElected"])

        verify = self.client.get(f"/records/{address}/verify").json()
        self.assertTrue(verify["ok"])
        self.assertTrue(verify["hash_chain"]["ok"])
        self.assertTrue(verify["replay"]["ok"])

    def test_unknown_record_is_404(self):
        missing = "0x" + "f" * 40
        for path in ("", "/leader", "/state", "/events", "/verify", "/events/stream"):
            r = self.client.get(f"/records/{missing}{path}")
            self.assertEqual(r.status_code, 404, path)
            self.assertEqual(r.json()["error"], "RecordNotFound")
        r = self.client.post(f"/records/{missing}/claim", json={"identity": "A"}, headers=self.auth)
        self.assertEqual(r.status_code, 404)

    def test_admin_endpoints(self):
        self._deploy(initial_holder="A")
        self.assertEqual(self.client.get("/health").json()["status"], "ok")

        ready = self.client.get("/ready")
        self.assertEqual(ready.status_code, 200)
        self.assertTrue(ready.json()["checks"]["invariants"]["ok"])

        metrics = self.client.get("/metrics").json()
        self.assertEqual(metrics["total_records"], 1)
        self.assertEqual(metrics["total_elections"], 1)

    def test_ready_reports_broken_invariants(self):
        address = self._deploy(initial_holder="A")
        from leasekeeper.daemon.db import get_db_connection

        with get_db_connection(self.store.path) as conn:
            conn.execute("UPDATE records SET head_seq = 5 WHERE address = ?", (address,))
        r = self.client.get("/ready")
        self.assertEqual(r.status_code, 503)
        failed = [c["name"] for c in r.json()["checks"]["invariants"]["failed"]]
        self.assertEqual(failed, ["event_head_matches"])


if __name__ == "__main__":
    unittest.main()
