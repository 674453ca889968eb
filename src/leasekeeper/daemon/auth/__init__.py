"""Signer authentication: credential hashing and the FastAPI dependency.

Re-exports public API so consumers can use:
    from .auth import signer_principal, get_caller_principal
"""

from .hashing import MIN_CREDENTIAL_LEN, signer_principal
from .middleware import get_caller_principal

__all__ = [
    "MIN_CREDENTIAL_LEN",
    "signer_principal",
    "get_caller_principal",
]
