"""CrossPoster session state.

The server-side session store keeps each browser session's pending
authorizations, credentials and flow states. Only an HMAC-signed session
id travels in the cookie.

Examples
--------
>>> from crossposter.state import MemorySessionStore
>>> store = MemorySessionStore()
>>> session = await store.create_session("abc", ttl=3600)
>>> await store.get_flow_state("abc", "twitter")
<FlowState.IDLE: 'idle'>
"""

from __future__ import annotations

from .auth import new_session_id, sign_session_id, unsign_session_id
from .base import SessionStore
from .memory import MemorySessionStore
from .types import (
    AuthorizationRequest,
    CallbackParams,
    ConnectionStatus,
    Credential,
    FlowResult,
    FlowState,
    PendingAuth,
    ProviderFamily,
    ProviderIdentity,
    SessionRecord,
)


__all__ = [
    "AuthorizationRequest",
    "CallbackParams",
    "ConnectionStatus",
    "Credential",
    "FlowResult",
    "FlowState",
    "MemorySessionStore",
    "PendingAuth",
    "ProviderFamily",
    "ProviderIdentity",
    "SessionRecord",
    "SessionStore",
    "new_session_id",
    "sign_session_id",
    "unsign_session_id",
]
