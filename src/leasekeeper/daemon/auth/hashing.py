"""Credential hashing for signer principals."""

import hashlib

# Minimum credential length in hex chars (16 bytes)
MIN_CREDENTIAL_LEN = 32


def signer_principal(raw_credential: str) -> str:
    """SHA-256 of a signer credential; this is what a record stores as its authorized signer."""
    return hashlib.sha256(raw_credential.encode("utf-8")).hexdigest()
