"""Signed session cookies.

The browser only ever holds an opaque session id signed with the server's
secret; everything else lives in the :class:`~crossposter.state.base.SessionStore`.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
import time


def new_session_id() -> str:
    """Generate a random session identifier."""
    return secrets.token_urlsafe(32)


def sign_session_id(
    session_id: str,
    secret: str,
    expires_at: float | None = None,
) -> str:
    """Generate the signed cookie value for a session.

    Parameters
    ----------
    session_id : str
        The session ID (must not contain ``:``).
    secret : str
        Secret key for signing.
    expires_at : float or None
        Expiration timestamp. If None, the cookie value doesn't expire.

    Returns
    -------
    str
        Cookie value in the form ``session_id:expiry:signature``.
    """
    expiry = int(expires_at) if expires_at else 0
    payload = f"{session_id}:{expiry}"
    signature = hmac.new(
        secret.encode(),
        payload.encode(),
        hashlib.sha256,
    ).hexdigest()
    return f"{payload}:{signature}"


def unsign_session_id(value: str, secret: str, now: float | None = None) -> str | None:
    """Verify a signed cookie value and extract the session ID.

    Parameters
    ----------
    value : str
        The cookie value.
    secret : str
        Secret key for verification.
    now : float or None
        Current time (defaults to ``time.time()``).

    Returns
    -------
    str or None
        The session ID, or None if the value is malformed, expired or forged.
    """
    parts = value.split(":")
    if len(parts) != 3:
        return None

    session_id, expiry_str, signature = parts
    try:
        expiry = int(expiry_str)
    except ValueError:
        return None

    current = time.time() if now is None else now
    if 0 < expiry < current:
        return None

    payload = f"{session_id}:{expiry_str}"
    expected_sig = hmac.new(
        secret.encode(),
        payload.encode(),
        hashlib.sha256,
    ).hexdigest()
    if not hmac.compare_digest(signature, expected_sig):
        return None
    return session_id
