import os
from pathlib import Path
from typing import Any, Dict, Literal, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from .logging_config import StructuredLogger

logger = StructuredLogger(__name__)

LEASEKEEPER_DIR = Path.home() / ".leasekeeper"
DEFAULT_CONFIG_FILE = LEASEKEEPER_DIR / "node.yaml"
DEFAULT_LEDGER_URL = "http://127.0.0.1:9100"

# env var -> config field
ENV_FIELDS = {
    "LEASEKEEPER_LEDGER_URL": "ledger_endpoint",
    "LEASEKEEPER_SIGNER_KEY": "signer_credential",
    "LEASEKEEPER_RECORD_ADDRESS": "record_address",
    "LEASEKEEPER_CHECK_INTERVAL": "poll_interval_seconds",
    "LEASEKEEPER_NODE_ID": "node_identity",
    "LEASEKEEPER_REQUEST_TIMEOUT": "request_timeout_seconds",
    "LEASEKEEPER_HOOK": "hook",
    "LEASEKEEPER_HOOK_URL": "hook_url",
    "LEASEKEEPER_HOOK_SECRET": "hook_secret",
    "LEASEKEEPER_HOOK_COMMAND": "hook_command",
}


class ConfigError(ValueError):
    """Missing or invalid configuration. Fatal at process startup."""


class NodeConfig(BaseModel):
    ledger_endpoint: str = DEFAULT_LEDGER_URL
    signer_credential: str = Field(..., min_length=1)
    record_address: str = Field(..., min_length=1)
    poll_interval_seconds: float = Field(30.0, gt=0)
    node_identity: Optional[str] = None
    request_timeout_seconds: float = Field(10.0, gt=0)
    hook: Literal["log", "webhook", "command"] = "log"
    hook_url: Optional[str] = None
    hook_secret: Optional[str] = None
    hook_command: Optional[str] = None

    @field_validator("ledger_endpoint")
    def validate_endpoint(cls, v):
        v = v.strip().rstrip("/")
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"Ledger endpoint must be an http(s) URL, got '{v}'")
        return v

    @field_validator("node_identity")
    def blank_identity_is_unset(cls, v):
        if v is not None and not v.strip():
            return None
        return v

    @model_validator(mode="after")
    def validate_hook_settings(self):
        if self.hook == "webhook" and not self.hook_url:
            raise ValueError("hook_url is required when hook is 'webhook'")
        if self.hook == "command" and not self.hook_command:
            raise ValueError("hook_command is required when hook is 'command'")
        return self


def _read_env() -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for env_name, field in ENV_FIELDS.items():
        raw = os.getenv(env_name)
        if raw is not None and raw.strip():
            out[field] = raw.strip()
    return out


# --- Config Loader (Atomic Reload) ---

class ConfigLoader:
    def __init__(self, config_file: Optional[Path] = None):
        raw = (os.getenv("LEASEKEEPER_CONFIG_FILE") or "").strip()
        self.config_file = config_file or (Path(raw).expanduser() if raw else DEFAULT_CONFIG_FILE)
        self.config: Optional[NodeConfig] = None

    def _read_file(self) -> Dict[str, Any]:
        if not self.config_file.exists():
            return {}
        with open(self.config_file, "r") as f:
            data = yaml.safe_load(f)
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigError(f"Config file {self.config_file} must contain a mapping")
        return data

    def load_config(self, overrides: Optional[Dict[str, Any]] = None) -> NodeConfig:
        """
        Merges the YAML file, LEASEKEEPER_* env vars and explicit overrides
        (in that precedence order) and validates the result.
        ATOMIC: On failure, previous config is preserved.
        Raises ConfigError if invalid.
        """
        load_dotenv(LEASEKEEPER_DIR / ".env")
        load_dotenv()

        try:
            merged: Dict[str, Any] = {}
            merged.update(self._read_file())
            merged.update(_read_env())
            merged.update({k: v for k, v in (overrides or {}).items() if v is not None})

            # Validate into a temporary; self.config is only replaced on success
            new_config = NodeConfig(**merged)
        except (ValidationError, yaml.YAMLError, ConfigError) as e:
            logger.error("Configuration validation failed", path=str(self.config_file), error=str(e))
            if self.config is not None:
                logger.warning("Keeping previous valid configuration")
                raise ConfigError(f"Invalid configuration (previous config retained): {e}") from e
            raise ConfigError(f"Invalid configuration: {e}") from e

        self.config = new_config
        logger.info(
            "Configuration loaded",
            ledger_endpoint=new_config.ledger_endpoint,
            record_address=new_config.record_address,
            poll_interval_seconds=new_config.poll_interval_seconds,
            hook=new_config.hook,
        )
        return new_config
