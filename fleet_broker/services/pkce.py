"""PKCE and state generation for a single authorization attempt."""

from __future__ import annotations

import base64
import hashlib
import secrets
from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class PKCEPair:
    verifier: str
    challenge: str


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def generate_state() -> str:
    """Return a fresh 128-bit correlation value, hex encoded."""
    return secrets.token_hex(16)


def compute_code_challenge(verifier: str) -> str:
    """Derive the S256 challenge sent in place of the verifier."""
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return _b64url(digest)


def generate_pkce() -> PKCEPair:
    """Generate a verifier from 32 random bytes and its S256 challenge."""
    verifier = _b64url(secrets.token_bytes(32))
    return PKCEPair(verifier=verifier, challenge=compute_code_challenge(verifier))


__all__ = ["PKCEPair", "compute_code_challenge", "generate_pkce", "generate_state"]
