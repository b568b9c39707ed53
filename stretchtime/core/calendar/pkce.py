"""PKCE verifier and challenge generation (RFC 7636, S256)"""

import base64
import hashlib
import secrets
from typing import NamedTuple

CHALLENGE_METHOD = "S256"


class PKCEPair(NamedTuple):
    verifier: str
    challenge: str


def base64url(data: bytes) -> str:
    """URL-safe base64 without padding"""
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def challenge_for(verifier: str) -> str:
    return base64url(hashlib.sha256(verifier.encode("ascii")).digest())


def generate_pkce() -> PKCEPair:
    """Generate a high-entropy verifier and its S256 challenge."""
    verifier = base64url(secrets.token_bytes(64))
    return PKCEPair(verifier=verifier, challenge=challenge_for(verifier))
