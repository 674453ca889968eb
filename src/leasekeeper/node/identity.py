"""Local node identity resolution."""

import psutil

from ..utils.logging_config import StructuredLogger

logger = StructuredLogger(__name__)

_ZERO_MAC = "00:00:00:00:00:00"


class IdentityError(RuntimeError):
    pass


def _normalize_mac(raw: str) -> str:
    return raw.replace("-", ":").upper()


def local_mac_address() -> str:
    """First non-loopback, non-zero hardware address, sorted by interface name."""
    interfaces = psutil.net_if_addrs()
    for name in sorted(interfaces):
        for addr in interfaces[name]:
            if addr.family != psutil.AF_LINK or not addr.address:
                continue
            mac = _normalize_mac(addr.address)
            if mac == _ZERO_MAC or name == "lo" or name.startswith("lo"):
                continue
            return mac
    raise IdentityError("Unable to determine local MAC address")


def resolve_node_identity(override: str | None = None) -> str:
    """Explicit override, else the host's MAC address."""
    if override and override.strip():
        return override.strip()
    identity = local_mac_address()
    logger.info("Node identity auto-detected", identity=identity)
    return identity
