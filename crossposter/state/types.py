"""Type definitions for CrossPoster state management.

Shared types used by the session store, the correlation cache, the
providers and the flow orchestrator.
"""

from __future__ import annotations

import time

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ProviderFamily(str, Enum):
    """OAuth variant spoken by a platform."""

    OAUTH1 = "oauth1"
    OAUTH2 = "oauth2"
    PKCE = "pkce"


class FlowState(str, Enum):
    """State of one provider's connection flow within a session."""

    IDLE = "idle"
    PENDING = "pending"
    EXCHANGING = "exchanging"
    CONNECTED = "connected"
    FAILED = "failed"


@dataclass
class PendingAuth:
    """Correlation material for an authorization that has not called back yet.

    Attributes
    ----------
    provider : str
        Platform the flow was started for.
    state : str
        The correlation token echoed back by the provider. For OAuth 1.0a
        this is the request token.
    redirect_uri : str
        Callback URL sent at start; OAuth 2.0 exchanges must repeat it.
    code_verifier : str or None
        PKCE verifier, only for PKCE flows.
    token_secret : str or None
        Request-token secret, only for OAuth 1.0a flows.
    created_at : float
        Unix timestamp when the flow started.
    expires_at : float
        Unix timestamp after which the entry is treated as absent.
    """

    provider: str
    state: str
    redirect_uri: str = ""
    code_verifier: str | None = None
    token_secret: str | None = None
    created_at: float = 0.0
    expires_at: float = 0.0

    def is_expired_at(self, now: float) -> bool:
        """Check expiry against an explicit clock reading."""
        return now >= self.expires_at


@dataclass
class Credential:
    """Finalized credential for one platform.

    Attributes
    ----------
    access_token : str
        Bearer token (OAuth 2.0) or access token (OAuth 1.0a).
    token_type : str
        Token type, typically "Bearer".
    refresh_token : str or None
        Refresh token, when the platform issues one.
    access_secret : str or None
        OAuth 1.0a access-token secret.
    expires_in : int or None
        Token lifetime in seconds from issuance.
    scope : str
        Granted scopes as reported by the platform.
    user_id : str or None
        Platform account id, when known.
    username : str or None
        Platform handle or display name, when known.
    raw : dict[str, Any]
        The raw token response from the provider.
    issued_at : float
        Unix timestamp when the token was issued.
    """

    access_token: str
    token_type: str = "Bearer"  # noqa: S105
    refresh_token: str | None = None
    access_secret: str | None = None
    expires_in: int | None = None
    scope: str = ""
    user_id: str | None = None
    username: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)
    issued_at: float = field(default_factory=time.time)

    @property
    def expires_at(self) -> float | None:
        """Get the expiry timestamp, or None if no expiry."""
        if self.expires_in is None:
            return None
        return self.issued_at + self.expires_in

    def is_expired_at(self, now: float) -> bool:
        """Check expiry against an explicit clock reading."""
        expires_at = self.expires_at
        return expires_at is not None and now >= expires_at


@dataclass
class ProviderIdentity:
    """Account the credential belongs to, as reported by the platform."""

    provider: str
    user_id: str
    username: str | None = None
    display_name: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Public representation (no raw payload)."""
        return {
            "id": self.user_id,
            "username": self.username,
            "name": self.display_name,
        }


@dataclass
class AuthorizationRequest:
    """Where to send the user, and what to remember until they come back."""

    authorize_url: str
    pending: PendingAuth


@dataclass
class CallbackParams:
    """Callback input normalized across OAuth variants.

    ``state`` is the OAuth 2.0 state or the OAuth 1.0a ``oauth_token``;
    ``code`` is the authorization code or the ``oauth_verifier``.
    """

    state: str | None = None
    code: str | None = None
    denied: bool = False
    error: str | None = None
    error_description: str | None = None


@dataclass
class FlowResult:
    """Outcome of a completed callback or exchange."""

    success: bool
    provider: str
    credential: Credential | None = None
    identity: ProviderIdentity | None = None


@dataclass
class ConnectionStatus:
    """Whether a platform is usable from a session."""

    provider: str
    connected: bool
    verified: bool = False
    identity: ProviderIdentity | None = None
    last_error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """JSON body for the status endpoints."""
        return {
            "provider": self.provider,
            "connected": self.connected,
            "verified": self.verified,
            "user": self.identity.to_dict() if self.identity else None,
            "lastError": self.last_error,
        }


@dataclass
class SessionRecord:
    """Server-side session holding every provider's flow material.

    Attributes
    ----------
    session_id : str
        Opaque identifier carried by the signed session cookie.
    created_at : float
        Unix timestamp of creation.
    expires_at : float or None
        Unix timestamp after which the session is dropped.
    pending : dict[str, PendingAuth]
        At most one in-flight authorization per provider.
    credentials : dict[str, Credential]
        At most one credential per provider.
    flow_states : dict[str, FlowState]
        Last known flow state per provider (absent means IDLE).
    failures : dict[str, str]
        Error code of the last failed flow per provider.
    """

    session_id: str
    created_at: float = 0.0
    expires_at: float | None = None
    pending: dict[str, PendingAuth] = field(default_factory=dict)
    credentials: dict[str, Credential] = field(default_factory=dict)
    flow_states: dict[str, FlowState] = field(default_factory=dict)
    failures: dict[str, str] = field(default_factory=dict)

    def is_expired_at(self, now: float) -> bool:
        """Check expiry against an explicit clock reading."""
        return self.expires_at is not None and now >= self.expires_at
