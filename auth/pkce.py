"""PKCE (Proof Key for Code Exchange) generation"""

import base64
import hashlib
import secrets
from dataclasses import dataclass

VERIFIER_BYTES = 32


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


@dataclass(frozen=True)
class PKCEChallenge:
    """Code verifier and S256 challenge for one login attempt

    Held in memory only. It is created when a login starts, its verifier is
    sent once in the token exchange, and then it is dropped.

    Attributes:
        verifier: base64url (no padding) of 32 random bytes
        challenge: base64url (no padding) of SHA-256 over the verifier text
    """
    verifier: str
    challenge: str

    @classmethod
    def generate(cls) -> "PKCEChallenge":
        # 32 random bytes -> 43 character verifier (RFC 7636 allows 43-128)
        verifier = _b64url(secrets.token_bytes(VERIFIER_BYTES))
        return cls(verifier=verifier, challenge=challenge_for(verifier))


def challenge_for(verifier: str) -> str:
    """Compute the S256 code challenge for a verifier"""
    return _b64url(hashlib.sha256(verifier.encode("ascii")).digest())
