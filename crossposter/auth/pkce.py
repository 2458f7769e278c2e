"""Correlation tokens and PKCE (Proof Key for Code Exchange).

RFC 7636 - Proof Key for Code Exchange for OAuth 2.0 public clients.
Uses S256 challenge method (SHA-256 hash of the code verifier).
"""

from __future__ import annotations

import hashlib
import secrets

from base64 import urlsafe_b64encode
from dataclasses import dataclass


STATE_BYTES = 32


def new_state(nbytes: int = STATE_BYTES) -> str:
    """Generate an unguessable, URL-safe correlation token.

    Parameters
    ----------
    nbytes : int
        Bytes of randomness (default 32, i.e. 256 bits).
    """
    return secrets.token_urlsafe(nbytes)


def s256(verifier: str) -> str:
    """Base64url (no padding) SHA-256 digest of a code verifier."""
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


@dataclass(frozen=True)
class PKCEChallenge:
    """PKCE code verifier and challenge pair.

    Attributes
    ----------
    verifier : str
        The code verifier (high-entropy random string).
    challenge : str
        The code challenge (base64url-encoded SHA-256 hash of verifier).
    method : str
        The challenge method, always "S256".
    """

    verifier: str
    challenge: str
    method: str = "S256"

    @classmethod
    def generate(cls, length: int = 64) -> PKCEChallenge:
        """Generate a new PKCE code verifier and challenge.

        Parameters
        ----------
        length : int
            Number of random bytes behind the verifier (default 64, which
            encodes to 86 characters; RFC 7636 allows 43 to 128).

        Returns
        -------
        PKCEChallenge
            A new PKCE challenge pair.
        """
        verifier = secrets.token_urlsafe(length)
        return cls(verifier=verifier, challenge=s256(verifier))

    @classmethod
    def from_verifier(cls, verifier: str) -> PKCEChallenge:
        """Rebuild the pair from a stored verifier."""
        return cls(verifier=verifier, challenge=s256(verifier))
