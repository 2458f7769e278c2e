"""Session/cache store for OAuth correlation material and credentials.

Pending correlation material is written to the server-side session (the
primary copy) and to the process-wide :class:`CorrelationCache` (the
fallback copy). Reads consult the session first; a value that is taken is
removed from both places, so it can be consumed at most once.
"""

# pylint: disable=logging-too-many-args

from __future__ import annotations

import asyncio
import logging

from typing import TYPE_CHECKING


if TYPE_CHECKING:
    from ..state.base import SessionStore
    from ..state.types import Credential, PendingAuth
    from .state_store import CorrelationCache


logger = logging.getLogger("crossposter.auth")


class SessionCredentialStore:
    """Read-through store over the session and the fallback cache.

    Parameters
    ----------
    sessions : SessionStore
        Primary, per-browser-session store.
    cache : CorrelationCache
        Volatile fallback keyed by correlation token.
    """

    def __init__(self, sessions: SessionStore, cache: CorrelationCache) -> None:
        self.sessions = sessions
        self.cache = cache
        self._take_lock = asyncio.Lock()

    async def put(self, session_id: str, pending: PendingAuth, ttl: float) -> None:
        """Persist pending correlation material in both stores.

        Overwrites any earlier pending entry of the same provider in this
        session, in the session and in the cache alike.
        """
        stored = await self.sessions.set_pending(session_id, pending)
        if not stored:
            logger.debug(
                "Session %s missing; %s correlation kept in fallback cache only",
                session_id[:8],
                pending.provider,
            )
        self.cache.put(session_id, pending, ttl)

    async def take(
        self,
        session_id: str,
        provider: str,
        state: str,
        adopt: bool = False,
    ) -> PendingAuth | None:
        """Consume the pending entry matching ``state``.

        The session copy wins over the cache copy when both exist. Both are
        cleared either way. The cache copy alone is only honoured for the
        session it was issued to, or for any session when ``adopt`` is set
        (the callback had to start a new session). Returns None when no
        live entry qualifies.
        """
        async with self._take_lock:
            primary = await self.sessions.pop_pending(session_id, provider, state)
            if primary is not None:
                self.cache.pop(provider, state)
                return primary
            fallback = self.cache.pop(provider, state, session_id=None if adopt else session_id)
        if fallback is not None:
            logger.debug("Recovered %s correlation from fallback cache", provider)
        return fallback

    async def clear_pending(self, session_id: str, provider: str) -> None:
        """Drop any pending entry for the provider from both stores."""
        await self.sessions.clear_pending(session_id, provider)
        self.cache.discard(session_id, provider)

    async def put_credential(self, session_id: str, provider: str, credential: Credential) -> None:
        """Persist the provider's credential in the session."""
        stored = await self.sessions.set_credential(session_id, provider, credential)
        if not stored:
            logger.warning(
                "Session %s expired before %s credential could be stored",
                session_id[:8],
                provider,
            )

    async def get_credential(self, session_id: str, provider: str) -> Credential | None:
        """Get the provider's credential, if any."""
        return await self.sessions.get_credential(session_id, provider)

    async def clear_credential(self, session_id: str, provider: str) -> None:
        """Remove the provider's credential."""
        await self.sessions.clear_credential(session_id, provider)
