"""Abstract ledger client contract shared by the HTTP and in-process adapters."""

from __future__ import annotations

import asyncio
import inspect
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Union

from ..daemon.ledger import EventKind, LedgerEvent
from ..utils.logging_config import StructuredLogger
from .operations import Query, Submission
from .outcomes import Outcome

logger = StructuredLogger(__name__)

EventHandler = Callable[[LedgerEvent], Union[Awaitable[None], None]]


async def _run_handler(handler: EventHandler, event: LedgerEvent) -> None:
    try:
        result = handler(event)
        if inspect.isawaitable(result):
            await result
    except Exception as e:
        logger.error("Event handler failed", event=event.kind.value, seq=event.seq, error=str(e))


class LedgerClient(ABC):
    def __init__(self):
        self._handlers: dict[EventKind, list[EventHandler]] = {}
        self._handler_tasks: set[asyncio.Task] = set()

    @abstractmethod
    async def query(self, op: Query) -> Any:
        """Read ledger state. Raises LedgerTransportError when the ledger cannot be read."""

    @abstractmethod
    async def submit(self, op: Submission) -> Outcome:
        """Submit a mutating operation and wait until it is committed or rejected."""

    def subscribe(self, kind: EventKind, handler: EventHandler) -> None:
        """Invoke `handler` (fire-and-forget) for every future commit of `kind`."""
        self._handlers.setdefault(EventKind(kind), []).append(handler)

    def _dispatch(self, event: LedgerEvent) -> None:
        for handler in self._handlers.get(event.kind, []):
            task = asyncio.get_running_loop().create_task(_run_handler(handler, event))
            self._handler_tasks.add(task)
            task.add_done_callback(self._handler_tasks.discard)

    async def close(self) -> None:
        pass

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()
