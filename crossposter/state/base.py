"""Abstract base class for the server-side session store.

The session store is the primary home of a browser session's flow
material: pending correlation entries, finalized credentials and the
per-provider flow state. Backends must be safe under concurrent async use.
"""

# pylint: disable=unnecessary-ellipsis
# Ellipsis (...) is the standard Python idiom for abstract method bodies

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING


if TYPE_CHECKING:
    from .types import Credential, FlowState, PendingAuth, SessionRecord


class SessionStore(ABC):
    """Abstract session storage interface.

    Every per-provider operation is a no-op (or returns None/False) when the
    session does not exist or has expired.
    """

    @abstractmethod
    async def create_session(self, session_id: str, ttl: int | None = None) -> SessionRecord:
        """Create a new, empty session.

        Parameters
        ----------
        session_id : str
            Unique session identifier.
        ttl : int or None
            Time-to-live in seconds (None for no expiry).

        Returns
        -------
        SessionRecord
            The created session.
        """
        ...

    @abstractmethod
    async def get_session(self, session_id: str) -> SessionRecord | None:
        """Get a session by ID.

        Returns
        -------
        SessionRecord or None
            The session if found and not expired, None otherwise.
        """
        ...

    @abstractmethod
    async def delete_session(self, session_id: str) -> bool:
        """Delete a session.

        Returns
        -------
        bool
            True if the session existed.
        """
        ...

    @abstractmethod
    async def set_pending(self, session_id: str, pending: PendingAuth) -> bool:
        """Store the pending entry for ``pending.provider``, replacing any earlier one.

        Returns
        -------
        bool
            False if the session does not exist.
        """
        ...

    @abstractmethod
    async def pop_pending(self, session_id: str, provider: str, state: str) -> PendingAuth | None:
        """Atomically remove and return the pending entry if ``state`` matches it.

        A pending entry for a different state is left untouched. An expired
        entry is removed and None is returned.
        """
        ...

    @abstractmethod
    async def clear_pending(self, session_id: str, provider: str) -> None:
        """Drop any pending entry for the provider."""
        ...

    @abstractmethod
    async def set_credential(self, session_id: str, provider: str, credential: Credential) -> bool:
        """Store the provider's credential, replacing any earlier one.

        Returns
        -------
        bool
            False if the session does not exist.
        """
        ...

    @abstractmethod
    async def get_credential(self, session_id: str, provider: str) -> Credential | None:
        """Get the provider's credential, if any."""
        ...

    @abstractmethod
    async def clear_credential(self, session_id: str, provider: str) -> bool:
        """Remove the provider's credential.

        Returns
        -------
        bool
            True if a credential was removed.
        """
        ...

    @abstractmethod
    async def set_flow_state(
        self,
        session_id: str,
        provider: str,
        state: FlowState,
        reason: str | None = None,
    ) -> None:
        """Record the provider's flow state and, for failures, the error code."""
        ...

    @abstractmethod
    async def get_flow_state(self, session_id: str, provider: str) -> FlowState:
        """Get the provider's flow state (IDLE when unknown)."""
        ...

    @abstractmethod
    async def get_failure(self, session_id: str, provider: str) -> str | None:
        """Get the error code of the provider's last failed flow, if any."""
        ...
