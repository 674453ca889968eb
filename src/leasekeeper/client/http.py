"""HTTP ledger client for the leasekeeper ledger service."""

from __future__ import annotations

import asyncio
import json
from typing import Any

import httpx

from ..daemon.ledger import DerivedState, EventKind, LeaderInfo, LedgerEvent, RejectionKind
from ..utils.logging_config import StructuredLogger
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
from .outcomes import Committed, LedgerTransportError, Outcome, Rejected, TransportFailure

logger = StructuredLogger(__name__)


def _trim_text(text: str, limit: int = 220) -> str:
    clean = " ".join((text or "").split())
    if len(clean) <= limit:
        return clean
    return clean[: limit - 3] + "..."


class HttpLedgerClient(LedgerClient):
    def __init__(
        self,
        base_url: str,
        address: str,
        credential: str | None = None,
        timeout: float = 10.0,
        reconnect_delay: float = 2.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        super().__init__()
        self.address = address
        self._credential = credential
        self._timeout = timeout
        self._reconnect_delay = reconnect_delay
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            transport=transport,
            limits=httpx.Limits(max_connections=10, max_keepalive_connections=5),
        )
        self._stream_task: asyncio.Task | None = None
        self._cursor: int | None = None
        self._closed = False

    def _path(self, suffix: str = "") -> str:
        return f"/records/{self.address}{suffix}"

    def _auth_headers(self) -> dict[str, str]:
        if self._credential:
            return {"Authorization": f"Bearer {self._credential}"}
        return {}

    # ── Queries ─────────────────────────────────────────────────────────

    async def _get_json(self, path: str, params: dict | None = None) -> dict[str, Any]:
        try:
            response = await self._client.get(path, params=params)
        except httpx.HTTPError as e:
            raise LedgerTransportError(f"{type(e).__name__}: {e}") from e

        if response.status_code != 200:
            raise LedgerTransportError(f"HTTP {response.status_code} from {path}: {_trim_text(response.text)}")
        try:
            data = response.json()
        except ValueError as e:
            raise LedgerTransportError(f"Malformed response from {path}") from e
        if not isinstance(data, dict):
            raise LedgerTransportError(f"Malformed response from {path}")
        return data

    async def query(self, op: Query) -> Any:
        try:
            if isinstance(op, GetCurrentLeader):
                data = await self._get_json(self._path("/leader"))
                return LeaderInfo(
                    holder_id=str(data["holder_id"]),
                    last_renewal=int(data["last_renewal"]),
                    alive=bool(data["alive"]),
                )
            if isinstance(op, GetDerivedState):
                data = await self._get_json(self._path("/state"))
                return DerivedState(data["state"])
            if isinstance(op, IsAlive):
                data = await self._get_json(self._path("/alive"))
                return bool(data["alive"])
            if isinstance(op, GetLiveness):
                data = await self._get_json(self._path("/liveness"), params={"identity": op.identity})
                return int(data["last_renewal"])
            if isinstance(op, GetLeaseTimeout):
                data = await self._get_json(self._path())
                return int(data["lease_timeout_seconds"])
            if isinstance(op, GetAuthorizedSigner):
                data = await self._get_json(self._path())
                return str(data["authorized_signer"])
        except (KeyError, ValueError, TypeError) as e:
            raise LedgerTransportError(f"Malformed response for {type(op).__name__}: {e}") from e
        raise TypeError(f"Unsupported query: {op!r}")

    # ── Submissions ─────────────────────────────────────────────────────

    async def submit(self, op: Submission) -> Outcome:
        if isinstance(op, Claim):
            path, body = self._path("/claim"), {"identity": op.identity}
        elif isinstance(op, Renew):
            path, body = self._path("/renew"), {"identity": op.identity}
        elif isinstance(op, SetLeaseTimeout):
            path, body = self._path("/timeout"), {"seconds": op.seconds}
        else:
            raise TypeError(f"Unsupported submission: {op!r}")

        try:
            response = await self._client.post(path, json=body, headers=self._auth_headers())
        except httpx.HTTPError as e:
            # The operation may still have been ordered; the next read will tell.
            return TransportFailure(reason=f"{type(e).__name__}: {e}")

        try:
            data = response.json()
        except ValueError:
            return TransportFailure(reason=f"HTTP {response.status_code}: malformed response")

        if response.status_code == 200:
            try:
                events = tuple(LedgerEvent.from_dict(e) for e in data["events"])
            except (KeyError, ValueError, TypeError) as e:
                return TransportFailure(reason=f"Malformed commit response: {e}")
            return Committed(events=events)

        if response.status_code in (403, 409):
            try:
                return Rejected(kind=RejectionKind(data["error"]), detail=str(data.get("detail", "")))
            except (KeyError, ValueError, TypeError):
                pass

        return TransportFailure(reason=f"HTTP {response.status_code}: {_trim_text(response.text)}")

    # ── Subscriptions ───────────────────────────────────────────────────

    def subscribe(self, kind: EventKind, handler: EventHandler) -> None:
        super().subscribe(kind, handler)
        if self._stream_task is None:
            self._stream_task = asyncio.get_running_loop().create_task(self._stream_events())

    def _handle_sse_data(self, data: str) -> None:
        try:
            event = LedgerEvent.from_dict(json.loads(data))
        except (KeyError, ValueError, TypeError) as e:
            logger.warning("Dropping malformed ledger event", error=str(e))
            return
        if self._cursor is not None and event.seq <= self._cursor:
            return
        self._cursor = event.seq
        self._dispatch(event)

    async def _stream_events(self) -> None:
        while not self._closed:
            try:
                if self._cursor is None:
                    # Only commits after subscription are delivered.
                    record = await self._get_json(self._path())
                    self._cursor = int(record["sequence"])

                async with self._client.stream(
                    "GET",
                    self._path("/events/stream"),
                    params={"after": self._cursor},
                    timeout=httpx.Timeout(self._timeout, read=None),
                ) as response:
                    if response.status_code != 200:
                        raise LedgerTransportError(f"HTTP {response.status_code} from event stream")
                    data_lines: list[str] = []
                    async for line in response.aiter_lines():
                        if line.startswith("data:"):
                            data_lines.append(line[5:].lstrip())
                        elif not line and data_lines:
                            self._handle_sse_data("\n".join(data_lines))
                            data_lines = []
                    if data_lines:
                        self._handle_sse_data("\n".join(data_lines))
            except asyncio.CancelledError:
                raise
            except (httpx.HTTPError, LedgerTransportError, KeyError, ValueError) as e:
                logger.warning("Event stream interrupted", address=self.address, error=str(e))

            if self._closed:
                break
            await asyncio.sleep(self._reconnect_delay)

    async def close(self) -> None:
        self._closed = True
        if self._stream_task is not None:
            self._stream_task.cancel()
            try:
                await self._stream_task
            except asyncio.CancelledError:
                pass
            self._stream_task = None
        await self._client.aclose()
