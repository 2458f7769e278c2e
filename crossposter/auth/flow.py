"""OAuth flow orchestrator.

One :class:`OAuthFlow` drives the connection state machine of one
platform, identically for every OAuth family::

    IDLE -> PENDING -> EXCHANGING -> CONNECTED
                 \\            \\
                  -> FAILED     -> FAILED

The provider object supplies the family-specific pieces; the orchestrator
owns ordering: correlation material is consumed before any exchange call,
and a credential is only stored once the exchange succeeded.
"""

# pylint: disable=logging-too-many-args

from __future__ import annotations

import logging
import time

from dataclasses import replace
from typing import TYPE_CHECKING, TypeVar

from ..exceptions import (
    AuthenticationError,
    InvalidRequest,
    NetworkError,
    NotConnected,
    ProviderNotConfigured,
    ProviderRejected,
    RefreshFailed,
    StateMismatch,
    UserDenied,
)
from ..state.types import ConnectionStatus, FlowResult, FlowState, ProviderIdentity


if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from ..state.types import AuthorizationRequest, CallbackParams, Credential
    from .providers import OAuthProvider
    from .session import SessionCredentialStore


logger = logging.getLogger("crossposter.auth")

T = TypeVar("T")


class OAuthFlow:
    """Orchestrates connection flows for one platform.

    Parameters
    ----------
    provider : OAuthProvider
        The platform's provider.
    store : SessionCredentialStore
        Session/cache store for correlation material and credentials.
    redirect_uri : str
        Callback URL registered with the platform.
    pending_ttl : float
        Seconds an issued correlation token stays valid (default ``600``).
    clock : Callable[[], float], optional
        Source of the current time (defaults to ``time.time``).
    fetch_identity : bool
        Look up the connected account right after the exchange (default ``True``).
    """

    def __init__(
        self,
        provider: OAuthProvider,
        store: SessionCredentialStore,
        redirect_uri: str,
        pending_ttl: float = 600.0,
        clock: Callable[[], float] = time.time,
        fetch_identity: bool = True,
    ) -> None:
        """Initialize the flow."""
        self.provider = provider
        self.store = store
        self.redirect_uri = redirect_uri
        self.pending_ttl = pending_ttl
        self.fetch_identity = fetch_identity
        self._clock = clock

    @property
    def name(self) -> str:
        """Platform name."""
        return self.provider.name

    async def _set_state(
        self,
        session_id: str,
        state: FlowState,
        reason: str | None = None,
    ) -> None:
        await self.store.sessions.set_flow_state(session_id, self.name, state, reason)

    async def flow_state(self, session_id: str) -> FlowState:
        """Current flow state of this platform in the session."""
        return await self.store.sessions.get_flow_state(session_id, self.name)

    async def start(self, session_id: str) -> AuthorizationRequest:
        """Begin a connection flow.

        Any earlier, unfinished flow for this platform in the session is
        superseded: its correlation token stops being accepted.

        Raises
        ------
        ProviderNotConfigured
            If the platform has no client credentials.
        ProviderRejected, NetworkError
            If an OAuth 1.0a request token cannot be obtained.
        """
        if not self.provider.configured:
            msg = f"{self.name} is not configured"
            raise ProviderNotConfigured(msg, provider=self.name)

        # Supersede the earlier flow even if the request-token call below fails
        await self.store.clear_pending(session_id, self.name)
        request = await self.provider.begin_authorization(self.redirect_uri)
        now = self._clock()
        pending = replace(
            request.pending,
            created_at=now,
            expires_at=now + self.pending_ttl,
        )
        await self.store.put(session_id, pending, self.pending_ttl)
        await self._set_state(session_id, FlowState.PENDING)
        logger.info("Started %s flow for session %s", self.name, session_id[:8])
        return replace(request, pending=pending)

    async def callback(
        self,
        session_id: str,
        params: CallbackParams,
        new_session: bool = False,
    ) -> FlowResult:
        """Complete a flow from the provider's callback parameters.

        A correlation token issued to another session is only honoured when
        ``new_session`` says this request had to start a fresh session
        (the browser came back without its cookie).

        Returns
        -------
        FlowResult
            The successful result, carrying the stored credential.

        Raises
        ------
        UserDenied
            The user declined consent.
        InvalidRequest
            State or code is missing.
        StateMismatch
            The correlation token is unknown, expired, consumed or superseded.
        ProviderRejected
            The provider reported an error or refused the exchange.
        NetworkError
            The provider could not be reached.
        """
        try:
            # 1. Reject what the provider already told us failed
            if params.denied:
                msg = params.error_description or "The user denied access"
                raise UserDenied(msg, provider=self.name)
            if params.error:
                msg = params.error_description or params.error
                raise ProviderRejected(msg, provider=self.name, provider_error=params.error)
            if not params.state or not params.code:
                msg = "Callback is missing the state or the authorization code"
                raise InvalidRequest(msg, provider=self.name)

            # 2. Consume the correlation material (single use)
            pending = await self.store.take(
                session_id, self.name, params.state, adopt=new_session
            )
            if pending is None:
                msg = "Unknown, expired or already used authorization state"
                raise StateMismatch(msg, provider=self.name, flow_id=params.state[:8])

            # 3. Exchange
            await self._set_state(session_id, FlowState.EXCHANGING)
            credential = await self.provider.complete_authorization(pending, params.code)
        except AuthenticationError as exc:
            # A stray callback does not undo an existing connection
            if await self.store.get_credential(session_id, self.name) is None:
                await self._set_state(session_id, FlowState.FAILED, exc.code)
            else:
                await self._set_state(session_id, FlowState.CONNECTED)
            logger.warning("%s flow failed: %s", self.name, exc)
            raise

        credential = replace(credential, issued_at=self._clock())

        # 4. Identify the account (best effort)
        identity = None
        if self.fetch_identity and credential.user_id is None:
            try:
                identity = await self.provider.get_identity(credential)
            except (ProviderRejected, NetworkError) as exc:
                logger.warning("Failed to fetch %s identity: %s", self.name, exc)
            else:
                credential = replace(
                    credential,
                    user_id=identity.user_id,
                    username=identity.username or identity.display_name,
                )

        # 5. Persist
        await self.store.put_credential(session_id, self.name, credential)
        await self._set_state(session_id, FlowState.CONNECTED)
        logger.info("Connected %s for session %s", self.name, session_id[:8])

        return FlowResult(
            success=True,
            provider=self.name,
            credential=credential,
            identity=identity,
        )

    async def refresh(self, session_id: str) -> Credential:
        """Replace the stored credential with a refreshed one.

        A failure leaves the stored credential untouched.

        Raises
        ------
        NotConnected
            No credential is stored.
        RefreshFailed
            The platform has no refresh support, no refresh token is held,
            or the platform refused the refresh token.
        NetworkError
            The provider could not be reached.
        """
        current = await self.store.get_credential(session_id, self.name)
        if current is None:
            msg = f"{self.name} is not connected"
            raise NotConnected(msg, provider=self.name)
        if not self.provider.supports_refresh or not current.refresh_token:
            msg = f"{self.name} credential cannot be refreshed; reconnect required"
            raise RefreshFailed(msg, provider=self.name)

        fresh = await self.provider.refresh_tokens(current.refresh_token)
        credential = replace(
            fresh,
            refresh_token=fresh.refresh_token or current.refresh_token,
            user_id=fresh.user_id or current.user_id,
            username=fresh.username or current.username,
            issued_at=self._clock(),
        )
        await self.store.put_credential(session_id, self.name, credential)
        logger.debug("Refreshed %s credential for session %s", self.name, session_id[:8])
        return credential

    async def credential(self, session_id: str) -> Credential:
        """Return a currently valid credential, refreshing an expired one.

        Raises
        ------
        NotConnected
            No credential is stored.
        RefreshFailed
            The credential expired and cannot be refreshed.
        """
        current = await self.store.get_credential(session_id, self.name)
        if current is None:
            msg = f"{self.name} is not connected"
            raise NotConnected(msg, provider=self.name)
        if current.is_expired_at(self._clock()):
            return await self.refresh(session_id)
        return current

    async def call_with_credential(
        self,
        session_id: str,
        call: Callable[[Credential], Awaitable[T]],
    ) -> T:
        """Run a platform API call with a valid credential.

        An authentication-specific rejection from the call clears the
        credential, so the next status check reports the platform as
        disconnected.
        """
        credential = await self.credential(session_id)
        try:
            return await call(credential)
        except ProviderRejected as exc:
            if exc.is_auth_failure:
                logger.warning("%s rejected the stored credential; clearing it", self.name)
                await self._forget(session_id)
            raise

    async def whoami(self, session_id: str) -> ProviderIdentity:
        """Strict identity lookup with the stored credential."""
        return await self.call_with_credential(session_id, self.provider.get_identity)

    async def status(self, session_id: str, live: bool = False) -> ConnectionStatus:
        """Report whether the platform is usable.

        Without ``live`` this is a pure lookup. With ``live`` the credential
        is proven against the platform: an authentication rejection triggers
        one refresh attempt (when a refresh token is held) and clears the
        credential if that does not help. Transport failures leave the
        credential in place and report it unverified. A disconnected
        platform reports the error code of its last failed flow, if any.
        """
        credential = await self.store.get_credential(session_id, self.name)
        if credential is None:
            return ConnectionStatus(
                provider=self.name,
                connected=False,
                last_error=await self.store.sessions.get_failure(session_id, self.name),
            )
        if not live:
            return ConnectionStatus(
                provider=self.name,
                connected=True,
                identity=_stored_identity(self.name, credential),
            )

        try:
            identity = await self.provider.get_identity(credential)
        except ProviderRejected as exc:
            if not exc.is_auth_failure:
                logger.warning("%s live check inconclusive: %s", self.name, exc)
                return self._unverified(credential)
            return await self._recover(session_id, credential)
        except NetworkError as exc:
            logger.warning("%s live check inconclusive: %s", self.name, exc)
            return self._unverified(credential)

        return ConnectionStatus(
            provider=self.name,
            connected=True,
            verified=True,
            identity=identity,
        )

    async def _recover(self, session_id: str, credential: Credential) -> ConnectionStatus:
        """Try one refresh after the platform rejected the credential.

        The credential is forgotten only when the platform refuses it or its
        refresh token. Transport failures and rate limits at either step keep
        whatever credential is stored by then, reported unverified.
        """
        if not self.provider.supports_refresh or not credential.refresh_token:
            await self._forget(session_id)
            return ConnectionStatus(provider=self.name, connected=False)

        try:
            credential = await self.refresh(session_id)
            identity = await self.provider.get_identity(credential)
        except RefreshFailed as exc:
            logger.info("%s refresh after rejection failed: %s", self.name, exc)
        except ProviderRejected as exc:
            if not exc.is_auth_failure:
                logger.warning("%s live check inconclusive: %s", self.name, exc)
                return self._unverified(credential)
            logger.info("%s rejected the refreshed credential: %s", self.name, exc)
        except NetworkError as exc:
            logger.warning("%s live check inconclusive: %s", self.name, exc)
            return self._unverified(credential)
        else:
            return ConnectionStatus(
                provider=self.name,
                connected=True,
                verified=True,
                identity=identity,
            )
        await self._forget(session_id)
        return ConnectionStatus(provider=self.name, connected=False)

    def _unverified(self, credential: Credential) -> ConnectionStatus:
        return ConnectionStatus(
            provider=self.name,
            connected=True,
            verified=False,
            identity=_stored_identity(self.name, credential),
        )

    async def _forget(self, session_id: str) -> None:
        await self.store.clear_credential(session_id, self.name)
        await self._set_state(session_id, FlowState.IDLE)

    async def disconnect(self, session_id: str, revoke: bool = True) -> None:
        """Forget the platform in this session.

        Clears the credential and any pending correlation material. The
        provider-side revocation is best effort. Disconnecting a platform
        that is not connected is a no-op.
        """
        credential = await self.store.get_credential(session_id, self.name)
        if credential is not None and revoke:
            revoked = await self.provider.revoke_token(credential)
            logger.debug("%s revocation %s", self.name, "succeeded" if revoked else "skipped")
        await self.store.clear_credential(session_id, self.name)
        await self.store.clear_pending(session_id, self.name)
        await self._set_state(session_id, FlowState.IDLE)
        logger.info("Disconnected %s for session %s", self.name, session_id[:8])


def _stored_identity(provider: str, credential: Credential) -> ProviderIdentity | None:
    """Identity remembered on the credential, without asking the platform."""
    if not credential.user_id:
        return None
    return ProviderIdentity(
        provider=provider,
        user_id=credential.user_id,
        username=credential.username,
    )
