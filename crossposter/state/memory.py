"""In-memory session store.

Default backend for single-process deployments and development.
Expired sessions and pending entries are evicted lazily on access.
"""

from __future__ import annotations

import asyncio
import hmac
import time

from typing import TYPE_CHECKING

from .base import SessionStore
from .types import FlowState, SessionRecord


if TYPE_CHECKING:
    from collections.abc import Callable

    from .types import Credential, PendingAuth


class MemorySessionStore(SessionStore):
    """In-memory session store.

    Parameters
    ----------
    clock : Callable[[], float], optional
        Source of the current time (defaults to ``time.time``).
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        """Initialize the memory session store."""
        self._sessions: dict[str, SessionRecord] = {}
        self._clock = clock
        self._lock = asyncio.Lock()

    def _live(self, session_id: str) -> SessionRecord | None:
        """Return the session if present and unexpired. Caller holds the lock."""
        session = self._sessions.get(session_id)
        if session is None:
            return None
        if session.is_expired_at(self._clock()):
            self._sessions.pop(session_id, None)
            return None
        return session

    async def create_session(self, session_id: str, ttl: int | None = None) -> SessionRecord:
        """Create a new, empty session."""
        async with self._lock:
            now = self._clock()
            session = SessionRecord(
                session_id=session_id,
                created_at=now,
                expires_at=now + ttl if ttl else None,
            )
            self._sessions[session_id] = session
            return session

    async def get_session(self, session_id: str) -> SessionRecord | None:
        """Get a session by ID."""
        async with self._lock:
            return self._live(session_id)

    async def delete_session(self, session_id: str) -> bool:
        """Delete a session."""
        async with self._lock:
            return self._sessions.pop(session_id, None) is not None

    async def set_pending(self, session_id: str, pending: PendingAuth) -> bool:
        """Store the pending entry, replacing any earlier one for the provider."""
        async with self._lock:
            session = self._live(session_id)
            if session is None:
                return False
            session.pending[pending.provider] = pending
            return True

    async def pop_pending(self, session_id: str, provider: str, state: str) -> PendingAuth | None:
        """Remove and return the pending entry if the state matches."""
        async with self._lock:
            session = self._live(session_id)
            if session is None:
                return None
            pending = session.pending.get(provider)
            if pending is None:
                return None
            if pending.is_expired_at(self._clock()):
                del session.pending[provider]
                return None
            if not hmac.compare_digest(pending.state.encode(), state.encode()):
                return None
            del session.pending[provider]
            return pending

    async def clear_pending(self, session_id: str, provider: str) -> None:
        """Drop any pending entry for the provider."""
        async with self._lock:
            session = self._live(session_id)
            if session is not None:
                session.pending.pop(provider, None)

    async def set_credential(self, session_id: str, provider: str, credential: Credential) -> bool:
        """Store the provider's credential."""
        async with self._lock:
            session = self._live(session_id)
            if session is None:
                return False
            session.credentials[provider] = credential
            return True

    async def get_credential(self, session_id: str, provider: str) -> Credential | None:
        """Get the provider's credential."""
        async with self._lock:
            session = self._live(session_id)
            if session is None:
                return None
            return session.credentials.get(provider)

    async def clear_credential(self, session_id: str, provider: str) -> bool:
        """Remove the provider's credential."""
        async with self._lock:
            session = self._live(session_id)
            if session is None:
                return False
            return session.credentials.pop(provider, None) is not None

    async def set_flow_state(
        self,
        session_id: str,
        provider: str,
        state: FlowState,
        reason: str | None = None,
    ) -> None:
        """Record the provider's flow state."""
        async with self._lock:
            session = self._live(session_id)
            if session is None:
                return
            session.flow_states[provider] = state
            if state is FlowState.FAILED and reason:
                session.failures[provider] = reason
            else:
                session.failures.pop(provider, None)

    async def get_flow_state(self, session_id: str, provider: str) -> FlowState:
        """Get the provider's flow state."""
        async with self._lock:
            session = self._live(session_id)
            if session is None:
                return FlowState.IDLE
            return session.flow_states.get(provider, FlowState.IDLE)

    async def get_failure(self, session_id: str, provider: str) -> str | None:
        """Get the error code of the provider's last failed flow."""
        async with self._lock:
            session = self._live(session_id)
            if session is None:
                return None
            return session.failures.get(provider)
