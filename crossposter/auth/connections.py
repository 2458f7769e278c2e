"""Connection status across every configured platform.

:class:`ConnectionManager` owns one :class:`OAuthFlow` per platform and
answers "which platforms can this session post to?".
"""

from __future__ import annotations

import asyncio
import time

from typing import TYPE_CHECKING

from ..exceptions import UnknownProvider
from .flow import OAuthFlow
from .providers import create_providers_from_settings
from .session import SessionCredentialStore
from .state_store import CorrelationCache


if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

    from ..config import CrossPosterSettings
    from ..state.base import SessionStore
    from ..state.types import ConnectionStatus, ProviderIdentity
    from .providers import OAuthProvider


class ConnectionManager:
    """Registry of per-platform flows sharing one session/cache store.

    Parameters
    ----------
    flows : dict[str, OAuthFlow]
        Flows keyed by platform name.
    """

    def __init__(self, flows: dict[str, OAuthFlow]) -> None:
        self._flows = flows

    @classmethod
    def from_providers(
        cls,
        providers: dict[str, OAuthProvider],
        store: SessionCredentialStore,
        redirect_uris: dict[str, str],
        pending_ttl: float = 600.0,
        clock: Callable[[], float] = time.time,
    ) -> ConnectionManager:
        """Wire a flow around each provider."""
        flows = {
            name: OAuthFlow(
                provider,
                store,
                redirect_uri=redirect_uris[name],
                pending_ttl=pending_ttl,
                clock=clock,
            )
            for name, provider in providers.items()
        }
        return cls(flows)

    @classmethod
    def from_settings(
        cls,
        settings: CrossPosterSettings,
        sessions: SessionStore,
        clock: Callable[[], float] = time.time,
    ) -> ConnectionManager:
        """Build every enabled platform from configuration."""
        providers = create_providers_from_settings(settings)
        store = SessionCredentialStore(
            sessions,
            CorrelationCache(max_pending=settings.session.max_pending, clock=clock),
        )
        return cls.from_providers(
            providers,
            store,
            redirect_uris={name: settings.redirect_uri_for(name) for name in providers},
            pending_ttl=settings.session.pending_ttl,
            clock=clock,
        )

    def __contains__(self, name: str) -> bool:
        return name in self._flows

    def __iter__(self) -> Iterator[str]:
        return iter(self._flows)

    def get_flow(self, name: str) -> OAuthFlow:
        """Return the flow for a platform.

        Raises
        ------
        UnknownProvider
            If no such platform is registered.
        """
        flow = self._flows.get(name)
        if flow is None:
            msg = f"Unknown provider: {name}"
            raise UnknownProvider(msg, provider=name)
        return flow

    async def is_connected(self, session_id: str, provider: str, live: bool = False) -> bool:
        """Whether a credential is held (and, with ``live``, still accepted)."""
        status = await self.get_flow(provider).status(session_id, live=live)
        return status.connected

    async def status(self, session_id: str, provider: str, live: bool = False) -> ConnectionStatus:
        """Detailed status of one platform."""
        return await self.get_flow(provider).status(session_id, live=live)

    async def whoami(self, session_id: str, provider: str) -> ProviderIdentity:
        """Strict identity lookup; raises ``NotConnected`` when nothing is held."""
        return await self.get_flow(provider).whoami(session_id)

    async def statuses(self, session_id: str) -> dict[str, ConnectionStatus]:
        """Stored-credential status of every platform."""
        results = await asyncio.gather(*(flow.status(session_id) for flow in self._flows.values()))
        return dict(zip(self._flows, results, strict=True))

    async def close(self) -> None:
        """Close every provider's HTTP client."""
        for flow in self._flows.values():
            await flow.provider.close()
