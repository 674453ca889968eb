"""Post-election hooks, invoked once per leadership claim this node commits."""

from __future__ import annotations

import asyncio
import hashlib
import hmac
import json
import os
from abc import ABC, abstractmethod
from datetime import UTC, datetime

import httpx

from ..utils.config_loader import ConfigError, NodeConfig
from ..utils.logging_config import StructuredLogger

logger = StructuredLogger(__name__)


def _utc_now_iso() -> str:
    return datetime.now(UTC).replace(microsecond=0).isoformat()


def _signature(secret: str, body: str) -> str:
    return hmac.new(secret.encode("utf-8"), body.encode("utf-8"), hashlib.sha256).hexdigest()


class PostElectionHook(ABC):
    name = "base"

    @abstractmethod
    async def on_elected(self, identity: str) -> None:
        """Called after this node's claim committed. Exceptions are logged by the caller."""

    async def close(self) -> None:
        pass


class LoggingHook(PostElectionHook):
    name = "log"

    async def on_elected(self, identity: str) -> None:
        logger.info("Elected leader; no post-election action configured", identity=identity)


class WebhookHook(PostElectionHook):
    """POST a signed JSON envelope to an operator endpoint."""

    name = "webhook"

    def __init__(self, url: str, secret: str | None = None, timeout: float = 10.0, transport=None):
        self.url = url
        self.secret = secret
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def on_elected(self, identity: str) -> None:
        envelope = {
            "event_type": "leader.elected",
            "identity": identity,
            "ts": _utc_now_iso(),
        }
        body = json.dumps(envelope, ensure_ascii=True, sort_keys=True)
        headers = {
            "Content-Type": "application/json",
            "X-Leasekeeper-Event-Type": "leader.elected",
        }
        if self.secret:
            headers["X-Leasekeeper-Signature"] = _signature(self.secret, body)

        response = await self._client.post(self.url, content=body.encode("utf-8"), headers=headers)
        if response.status_code >= 400:
            raise RuntimeError(f"Webhook returned HTTP {response.status_code}")
        logger.info("Election webhook delivered", url=self.url, http_status=response.status_code)

    async def close(self) -> None:
        await self._client.aclose()


class CommandHook(PostElectionHook):
    """Run a shell command with the elected identity in its environment."""

    name = "command"

    def __init__(self, command: str):
        self.command = command

    async def on_elected(self, identity: str) -> None:
        env = os.environ.copy()
        env["LEASEKEEPER_ELECTED_IDENTITY"] = identity
        proc = await asyncio.create_subprocess_shell(
            self.command,
            env=env,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
        )
        output, _ = await proc.communicate()
        text = (output or b"").decode("utf-8", errors="replace").strip()
        if proc.returncode != 0:
            raise RuntimeError(f"Hook command exited with {proc.returncode}: {text[-500:]}")
        logger.info("Election command completed", command=self.command, output=text[-500:])


HOOKS = {
    LoggingHook.name: LoggingHook,
    WebhookHook.name: WebhookHook,
    CommandHook.name: CommandHook,
}


def create_hook(config: NodeConfig) -> PostElectionHook:
    if config.hook == LoggingHook.name:
        return LoggingHook()
    if config.hook == WebhookHook.name:
        return WebhookHook(config.hook_url, secret=config.hook_secret, timeout=config.request_timeout_seconds)
    if config.hook == CommandHook.name:
        return CommandHook(config.hook_command)
    raise ConfigError(f"Unknown post-election hook: '{config.hook}'. Supported: {', '.join(HOOKS)}")
