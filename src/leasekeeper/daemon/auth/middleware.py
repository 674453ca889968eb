"""FastAPI dependency resolving the calling principal from a bearer credential."""

from typing import Optional

from fastapi import Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ...utils.logging_config import StructuredLogger
from .hashing import MIN_CREDENTIAL_LEN, signer_principal

logger = StructuredLogger(__name__)
security = HTTPBearer(auto_error=False)


def get_caller_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(security),
) -> Optional[str]:
    """Return the caller's principal, or None for an unauthenticated caller.

    Authorization itself happens in the state machine, which rejects any
    principal other than the record's authorized signer with Unauthorized.
    """
    if credentials is None:
        logger.warning("Unauthenticated mutating request")
        return None

    token = credentials.credentials
    if len(token) < MIN_CREDENTIAL_LEN:
        logger.warning("Rejected short signer credential", length=len(token))
        return None

    return signer_principal(token)
