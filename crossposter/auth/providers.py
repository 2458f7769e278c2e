"""OAuth provider abstractions.

Defines the OAuthProvider ABC, one intermediate class per OAuth family
(1.0a, 2.0 authorization code, 2.0 with PKCE) and the concrete platforms:
Twitter/X, LinkedIn, YouTube, Facebook, Instagram and TikTok.

Every provider speaks the same four-step contract to the flow
orchestrator: ``begin_authorization``, ``parse_callback``,
``complete_authorization`` and ``get_identity``. Errors are mapped onto
:class:`ProviderRejected` (the provider said no), :class:`NetworkError`
(the provider could not be reached) and :class:`RefreshFailed`.
"""

# pylint: disable=logging-too-many-args

from __future__ import annotations

import logging
import time

from abc import ABC, abstractmethod
from dataclasses import replace
from typing import TYPE_CHECKING, Any, ClassVar
from urllib.parse import urlencode

import httpx

from authlib.integrations.base_client import OAuthError
from authlib.integrations.httpx_client import AsyncOAuth1Client

from ..exceptions import (
    ChallengeMismatch,
    InvalidRequest,
    NetworkError,
    ProviderRejected,
    RefreshFailed,
)
from ..log import redact_sensitive_data
from ..state.types import (
    AuthorizationRequest,
    CallbackParams,
    Credential,
    PendingAuth,
    ProviderFamily,
    ProviderIdentity,
)
from .pkce import PKCEChallenge, new_state


if TYPE_CHECKING:
    from collections.abc import Mapping

    from ..config import CrossPosterSettings


logger = logging.getLogger("crossposter.auth")

DEFAULT_TIMEOUT = 30.0

# OAuth 2.0 error codes that mean the user backed out of the consent screen.
_DENIAL_ERRORS = frozenset({"access_denied", "user_denied", "user_cancelled", "consent_required"})


def _safe_json(response: Any) -> dict[str, Any]:
    """Decode a response body as a JSON object, or return an empty dict."""
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def _int_or_none(value: Any) -> int | None:
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def _is_transient(status_code: int | None) -> bool:
    """Rate limits and server errors say nothing about the refresh token."""
    return status_code is not None and (status_code == 429 or status_code >= 500)


class OAuthProvider(ABC):
    """Abstract base class for OAuth providers.

    Parameters
    ----------
    client_id : str
        The client ID (consumer key for OAuth 1.0a).
    client_secret : str
        The client secret (consumer secret for OAuth 1.0a).
    scopes : list[str]
        Requested scopes.
    authorize_url : str
        The provider's authorization (consent) endpoint.
    token_url : str
        The provider's token exchange endpoint.
    userinfo_url : str
        The read-only profile endpoint used to prove a token works.
    revocation_url : str
        The provider's token revocation endpoint.
    timeout : float
        Seconds allowed for every request to the provider.
    """

    name: ClassVar[str] = ""
    family: ClassVar[ProviderFamily]
    supports_refresh: ClassVar[bool] = False

    def __init__(
        self,
        client_id: str,
        client_secret: str = "",
        scopes: list[str] | None = None,
        authorize_url: str = "",
        token_url: str = "",
        userinfo_url: str = "",
        revocation_url: str = "",
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        """Initialize OAuth provider."""
        self.client_id = client_id
        self.client_secret = client_secret
        self.scopes = scopes or []
        self.authorize_url = authorize_url
        self.token_url = token_url
        self.userinfo_url = userinfo_url
        self.revocation_url = revocation_url
        self.timeout = timeout
        self._http_client: httpx.AsyncClient | None = None

    @property
    def configured(self) -> bool:
        """Whether client credentials are present."""
        return bool(self.client_id and self.client_secret)

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the shared HTTP client."""
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(timeout=self.timeout)
        return self._http_client

    async def close(self) -> None:
        """Close the shared HTTP client. Call from app shutdown lifecycle."""
        if self._http_client is not None and not self._http_client.is_closed:
            await self._http_client.aclose()
            self._http_client = None

    @abstractmethod
    async def begin_authorization(self, redirect_uri: str) -> AuthorizationRequest:
        """Produce the consent URL and the correlation material to remember.

        Parameters
        ----------
        redirect_uri : str
            The callback URL registered with the provider.

        Returns
        -------
        AuthorizationRequest
            Consent URL plus the pending entry (TTL not yet applied).
        """

    @abstractmethod
    def parse_callback(self, params: Mapping[str, str]) -> CallbackParams:
        """Normalize the callback query (or exchange body) of this OAuth family."""

    @abstractmethod
    async def complete_authorization(self, pending: PendingAuth, code: str) -> Credential:
        """Trade the callback code (or verifier) for a credential.

        Raises
        ------
        ProviderRejected
            If the provider refuses the exchange.
        NetworkError
            If the provider cannot be reached.
        """

    @abstractmethod
    async def get_identity(self, credential: Credential) -> ProviderIdentity:
        """Fetch the account the credential belongs to (read-only call)."""

    async def refresh_tokens(self, refresh_token: str) -> Credential:
        """Refresh an expired access token.

        Raises
        ------
        RefreshFailed
            Always, unless the provider issues refresh tokens.
        """
        msg = f"{self.name} does not issue refresh tokens"
        raise RefreshFailed(msg, provider=self.name)

    async def revoke_token(self, credential: Credential) -> bool:
        """Revoke a credential at the provider.

        Posts the access token to ``revocation_url`` if one is configured.
        Subclasses with non-standard revocation APIs should override.

        Returns
        -------
        bool
            True if revocation succeeded, False if no endpoint
            is configured or the request failed.
        """
        if not self.revocation_url:
            return False
        try:
            client = await self._get_client()
            resp = await client.post(
                self.revocation_url,
                data={"token": credential.access_token, "client_id": self.client_id},
                timeout=self.timeout,
            )
        except httpx.HTTPError as exc:
            logger.debug("%s revocation request failed: %s", self.name, exc)
            return False
        return bool(resp.is_success)

    # ── Error mapping ────────────────────────────────────────────────

    def _body_error(self, raw: dict[str, Any]) -> tuple[str, str] | None:
        """Extract ``(error_code, description)`` from an error payload, if any."""
        error = raw.get("error")
        if isinstance(error, str) and error:
            return error, str(raw.get("error_description") or error)
        if isinstance(error, dict):
            code = str(error.get("code") or "")
            if code and code != "ok":
                return code, str(error.get("message") or code)
            if not code and error.get("message"):
                return str(error.get("type") or "error"), str(error["message"])
        return None

    def _rejected(
        self,
        action: str,
        status_code: int | None,
        body: dict[str, Any],
    ) -> ProviderRejected:
        """Build the exception for a refused request."""
        found = self._body_error(body)
        provider_error, description = found if found else (None, None)
        if body:
            logger.warning(
                "%s %s rejected (%s): %s",
                self.name,
                action,
                status_code,
                redact_sensitive_data(body),
            )
        msg = f"{action} failed"
        if status_code is not None:
            msg = f"{msg}: {status_code}"
        if description:
            msg = f"{msg} ({description})"
        return ProviderRejected(
            msg,
            provider=self.name,
            status_code=status_code,
            provider_error=provider_error,
        )

    async def _request_json(
        self,
        method: str,
        url: str,
        action: str,
        **kwargs: Any,
    ) -> dict[str, Any]:
        """Send a request and return the decoded JSON object.

        Raises
        ------
        ProviderRejected
            On an error status or an error payload in a success response.
        NetworkError
            On transport failures and timeouts.
        """
        try:
            client = await self._get_client()
            if method == "GET":
                resp = await client.get(url, timeout=self.timeout, **kwargs)
            else:
                resp = await client.post(url, timeout=self.timeout, **kwargs)
            resp.raise_for_status()
            raw = resp.json()
        except httpx.HTTPStatusError as exc:
            raise self._rejected(
                action, exc.response.status_code, _safe_json(exc.response)
            ) from exc
        except httpx.HTTPError as exc:
            msg = f"{action} request failed: {exc}"
            raise NetworkError(msg, provider=self.name) from exc
        except ValueError as exc:
            msg = f"{action} returned a non-JSON response"
            raise ProviderRejected(msg, provider=self.name) from exc

        if not isinstance(raw, dict):
            msg = f"{action} returned an unexpected payload"
            raise ProviderRejected(msg, provider=self.name)
        if self._body_error(raw):
            raise self._rejected(action, None, raw)
        return raw


class OAuth2Provider(OAuthProvider):
    """OAuth 2.0 authorization code provider with a confidential client."""

    family = ProviderFamily.OAUTH2
    supports_refresh = True
    scope_separator: ClassVar[str] = " "
    client_id_param: ClassVar[str] = "client_id"

    def build_authorize_url(
        self,
        redirect_uri: str,
        state: str,
        pkce: PKCEChallenge | None = None,
        extra_params: dict[str, str] | None = None,
    ) -> str:
        """Build the full authorization URL.

        Parameters
        ----------
        redirect_uri : str
            The callback URL to redirect to after authorization.
        state : str
            Correlation token.
        pkce : PKCEChallenge, optional
            PKCE challenge for PKCE flows.
        extra_params : dict, optional
            Additional query parameters.

        Returns
        -------
        str
            The full authorization URL.
        """
        params: dict[str, str] = {
            "response_type": "code",
            self.client_id_param: self.client_id,
            "redirect_uri": redirect_uri,
            "state": state,
            "scope": self.scope_separator.join(self.scopes),
        }
        if pkce:
            params["code_challenge"] = pkce.challenge
            params["code_challenge_method"] = pkce.method
        if extra_params:
            params.update(extra_params)
        return f"{self.authorize_url}?{urlencode(params)}"

    async def begin_authorization(self, redirect_uri: str) -> AuthorizationRequest:
        """Issue a fresh state and build the consent URL."""
        state = new_state()
        return AuthorizationRequest(
            authorize_url=self.build_authorize_url(redirect_uri, state),
            pending=PendingAuth(provider=self.name, state=state, redirect_uri=redirect_uri),
        )

    def parse_callback(self, params: Mapping[str, str]) -> CallbackParams:
        """Read ``state``/``code`` and any ``error`` the provider sent back."""
        error = params.get("error") or None
        return CallbackParams(
            state=params.get("state") or None,
            code=params.get("code") or None,
            denied=error in _DENIAL_ERRORS,
            error=error,
            error_description=params.get("error_description") or params.get("error_reason"),
        )

    async def complete_authorization(self, pending: PendingAuth, code: str) -> Credential:
        """Exchange the authorization code with the redirect URI used at start."""
        return await self.exchange_code(code, pending.redirect_uri)

    def _token_request(self, data: dict[str, str]) -> dict[str, str]:
        """Add client authentication to a token endpoint form."""
        return {
            **data,
            self.client_id_param: self.client_id,
            "client_secret": self.client_secret,
        }

    def _credential_from_token(
        self,
        raw: dict[str, Any],
        refresh_token: str | None = None,
    ) -> Credential:
        """Build a credential from a token endpoint response."""
        access_token = raw.get("access_token")
        if not access_token:
            msg = "Token response did not include an access token"
            raise ProviderRejected(msg, provider=self.name)
        return Credential(
            access_token=access_token,
            token_type=raw.get("token_type") or "Bearer",
            refresh_token=raw.get("refresh_token") or refresh_token,
            expires_in=_int_or_none(raw.get("expires_in")),
            scope=raw.get("scope") or "",
            raw=raw,
            issued_at=time.time(),
        )

    async def exchange_code(
        self,
        code: str,
        redirect_uri: str,
        pkce_verifier: str | None = None,
    ) -> Credential:
        """Exchange authorization code for tokens.

        Parameters
        ----------
        code : str
            The authorization code from the callback.
        redirect_uri : str
            The redirect URI used in the authorization request.
        pkce_verifier : str, optional
            The PKCE code verifier if PKCE was used.

        Returns
        -------
        Credential
            The credential issued by the provider.
        """
        data = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": redirect_uri,
        }
        if pkce_verifier:
            data["code_verifier"] = pkce_verifier
        raw = await self._request_json(
            "POST",
            self.token_url,
            "Token exchange",
            data=self._token_request(data),
            headers={"Accept": "application/json"},
        )
        return self._credential_from_token(raw)

    async def refresh_tokens(self, refresh_token: str) -> Credential:
        """Refresh tokens via the token endpoint.

        The old refresh token is kept when the provider does not rotate it.

        Raises
        ------
        RefreshFailed
            If the provider refuses the refresh token.
        ProviderRejected
            If the provider is rate limiting or failing (429 or 5xx).
        NetworkError
            If the provider cannot be reached.
        """
        try:
            raw = await self._request_json(
                "POST",
                self.token_url,
                "Token refresh",
                data=self._token_request(
                    {"grant_type": "refresh_token", "refresh_token": refresh_token}
                ),
                headers={"Accept": "application/json"},
            )
            return self._credential_from_token(raw, refresh_token=refresh_token)
        except ProviderRejected as exc:
            if _is_transient(exc.status_code):
                raise
            raise RefreshFailed(exc.message, provider=self.name) from exc

    def _identity_params(self) -> dict[str, str] | None:
        """Query parameters for the identity request."""
        return None

    def _parse_identity(self, raw: dict[str, Any]) -> ProviderIdentity:
        """Map a profile payload to an identity."""
        user_id = raw.get("sub") or raw.get("id")
        if not user_id:
            msg = "Profile response did not include an account id"
            raise ProviderRejected(msg, provider=self.name)
        return ProviderIdentity(
            provider=self.name,
            user_id=str(user_id),
            username=raw.get("username") or raw.get("email"),
            display_name=raw.get("name"),
            raw=raw,
        )

    async def get_identity(self, credential: Credential) -> ProviderIdentity:
        """Fetch the profile with the bearer token."""
        raw = await self._request_json(
            "GET",
            self.userinfo_url,
            "Profile request",
            params=self._identity_params(),
            headers={"Authorization": f"Bearer {credential.access_token}"},
        )
        return self._parse_identity(raw)


class PKCEProvider(OAuth2Provider):
    """OAuth 2.0 authorization code provider that also requires PKCE (S256)."""

    family = ProviderFamily.PKCE

    async def begin_authorization(self, redirect_uri: str) -> AuthorizationRequest:
        """Issue a fresh state and verifier; only the challenge leaves the server."""
        state = new_state()
        pkce = PKCEChallenge.generate()
        return AuthorizationRequest(
            authorize_url=self.build_authorize_url(redirect_uri, state, pkce=pkce),
            pending=PendingAuth(
                provider=self.name,
                state=state,
                redirect_uri=redirect_uri,
                code_verifier=pkce.verifier,
            ),
        )

    async def complete_authorization(self, pending: PendingAuth, code: str) -> Credential:
        """Exchange the code together with the stored verifier."""
        if not pending.code_verifier:
            msg = "No PKCE verifier stored for this flow"
            raise InvalidRequest(msg, provider=self.name)
        try:
            return await self.exchange_code(code, pending.redirect_uri, pending.code_verifier)
        except ProviderRejected as exc:
            if self._is_challenge_error(exc):
                raise ChallengeMismatch(
                    exc.message,
                    provider=self.name,
                    status_code=exc.status_code,
                    provider_error=exc.provider_error,
                ) from exc
            raise

    @staticmethod
    def _is_challenge_error(exc: ProviderRejected) -> bool:
        text = f"{exc.provider_error or ''} {exc.message}".lower()
        return "verifier" in text or "challenge" in text


class OAuth1Provider(OAuthProvider):
    """OAuth 1.0a three-legged provider (HMAC-SHA1 signed requests via authlib).

    Parameters
    ----------
    request_token_url : str
        Endpoint issuing temporary request tokens.
    **kwargs : Any
        Passed to :class:`OAuthProvider`; ``token_url`` is the access-token endpoint.
    """

    family = ProviderFamily.OAUTH1

    def __init__(self, *args: Any, request_token_url: str = "", **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.request_token_url = request_token_url

    def _oauth1_client(self, **kwargs: Any) -> AsyncOAuth1Client:
        """Create a signing client for one request/response exchange."""
        return AsyncOAuth1Client(
            self.client_id,
            self.client_secret,
            timeout=self.timeout,
            **kwargs,
        )

    async def get_request_token(self, callback_url: str) -> tuple[str, str]:
        """Obtain a temporary request token and secret.

        Returns
        -------
        tuple[str, str]
            ``(oauth_token, oauth_token_secret)``.
        """
        try:
            async with self._oauth1_client(redirect_uri=callback_url) as client:
                token = await client.fetch_request_token(self.request_token_url)
        except OAuthError as exc:
            msg = f"Request token failed: {exc.description or exc.error}"
            raise ProviderRejected(msg, provider=self.name, provider_error=exc.error) from exc
        except httpx.HTTPError as exc:
            msg = f"Request token request failed: {exc}"
            raise NetworkError(msg, provider=self.name) from exc

        if str(token.get("oauth_callback_confirmed", "true")).lower() != "true":
            msg = "Provider did not confirm the callback URL"
            raise ProviderRejected(msg, provider=self.name)
        return token["oauth_token"], token["oauth_token_secret"]

    async def get_access_token(self, token: str, token_secret: str, verifier: str) -> dict[str, Any]:
        """Trade an authorized request token and verifier for an access token."""
        try:
            async with self._oauth1_client(token=token, token_secret=token_secret) as client:
                raw = await client.fetch_access_token(self.token_url, verifier=verifier)
        except OAuthError as exc:
            msg = f"Access token exchange failed: {exc.description or exc.error}"
            raise ProviderRejected(msg, provider=self.name, provider_error=exc.error) from exc
        except httpx.HTTPError as exc:
            msg = f"Access token request failed: {exc}"
            raise NetworkError(msg, provider=self.name) from exc
        return dict(raw)

    async def begin_authorization(self, redirect_uri: str) -> AuthorizationRequest:
        """Fetch a request token; it doubles as the correlation token."""
        oauth_token, oauth_token_secret = await self.get_request_token(redirect_uri)
        query = urlencode({"oauth_token": oauth_token})
        return AuthorizationRequest(
            authorize_url=f"{self.authorize_url}?{query}",
            pending=PendingAuth(
                provider=self.name,
                state=oauth_token,
                redirect_uri=redirect_uri,
                token_secret=oauth_token_secret,
            ),
        )

    def parse_callback(self, params: Mapping[str, str]) -> CallbackParams:
        """Read ``oauth_token``/``oauth_verifier``; ``denied`` marks a refusal."""
        return CallbackParams(
            state=params.get("oauth_token") or None,
            code=params.get("oauth_verifier") or None,
            denied="denied" in params,
        )

    async def complete_authorization(self, pending: PendingAuth, code: str) -> Credential:
        """Exchange the verifier for an access token and secret."""
        if not pending.token_secret:
            msg = "No request token secret stored for this flow"
            raise InvalidRequest(msg, provider=self.name)
        raw = await self.get_access_token(pending.state, pending.token_secret, code)
        if not raw.get("oauth_token") or not raw.get("oauth_token_secret"):
            msg = "Access token response was incomplete"
            raise ProviderRejected(msg, provider=self.name)
        return Credential(
            access_token=raw["oauth_token"],
            token_type="OAuth1",  # noqa: S106
            access_secret=raw["oauth_token_secret"],
            user_id=raw.get("user_id"),
            username=raw.get("screen_name"),
            raw=redact_sensitive_data(raw),  # type: ignore[arg-type]
            issued_at=time.time(),
        )

    async def _signed_get(self, credential: Credential, url: str, action: str) -> dict[str, Any]:
        try:
            async with self._oauth1_client(
                token=credential.access_token,
                token_secret=credential.access_secret,
            ) as client:
                resp = await client.get(url)
                resp.raise_for_status()
                raw = resp.json()
        except httpx.HTTPStatusError as exc:
            raise self._rejected(
                action, exc.response.status_code, _safe_json(exc.response)
            ) from exc
        except httpx.HTTPError as exc:
            msg = f"{action} request failed: {exc}"
            raise NetworkError(msg, provider=self.name) from exc
        except ValueError as exc:
            msg = f"{action} returned a non-JSON response"
            raise ProviderRejected(msg, provider=self.name) from exc
        return raw if isinstance(raw, dict) else {}


class TwitterProvider(OAuth1Provider):
    """Twitter/X OAuth 1.0a provider.

    The access-token response already names the account (``user_id``,
    ``screen_name``); live validation uses ``GET /2/users/me``.
    """

    name = "twitter"

    def __init__(
        self,
        client_id: str,
        client_secret: str = "",
        scopes: list[str] | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        """Initialize Twitter provider."""
        super().__init__(
            client_id=client_id,
            client_secret=client_secret,
            scopes=scopes,
            authorize_url="https://api.twitter.com/oauth/authorize",
            token_url="https://api.twitter.com/oauth/access_token",  # noqa: S106
            userinfo_url="https://api.twitter.com/2/users/me",
            revocation_url="https://api.twitter.com/1.1/oauth/invalidate_token",
            timeout=timeout,
            request_token_url="https://api.twitter.com/oauth/request_token",
        )

    async def get_identity(self, credential: Credential) -> ProviderIdentity:
        """Fetch the authenticated account with a signed request."""
        raw = await self._signed_get(credential, self.userinfo_url, "Profile request")
        data = raw.get("data") or {}
        if not data.get("id"):
            raise self._rejected("Profile request", None, raw)
        return ProviderIdentity(
            provider=self.name,
            user_id=str(data["id"]),
            username=data.get("username"),
            display_name=data.get("name"),
            raw=data,
        )

    async def revoke_token(self, credential: Credential) -> bool:
        """Invalidate the access token with a signed request."""
        try:
            async with self._oauth1_client(
                token=credential.access_token,
                token_secret=credential.access_secret,
            ) as client:
                resp = await client.post(self.revocation_url)
        except (OAuthError, httpx.HTTPError) as exc:
            logger.debug("twitter revocation request failed: %s", exc)
            return False
        return bool(resp.is_success)


class LinkedInProvider(OAuth2Provider):
    """LinkedIn OAuth 2.0 provider (Sign In with LinkedIn using OpenID Connect)."""

    name = "linkedin"

    def __init__(
        self,
        client_id: str,
        client_secret: str = "",
        scopes: list[str] | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        """Initialize LinkedIn provider."""
        super().__init__(
            client_id=client_id,
            client_secret=client_secret,
            scopes=scopes or ["openid", "profile", "email", "w_member_social"],
            authorize_url="https://www.linkedin.com/oauth/v2/authorization",
            token_url="https://www.linkedin.com/oauth/v2/accessToken",  # noqa: S106
            userinfo_url="https://api.linkedin.com/v2/userinfo",
            revocation_url="https://www.linkedin.com/oauth/v2/revoke",
            timeout=timeout,
        )

    async def revoke_token(self, credential: Credential) -> bool:
        """Revoke with client authentication, as LinkedIn requires."""
        try:
            client = await self._get_client()
            resp = await client.post(
                self.revocation_url,
                data=self._token_request({"token": credential.access_token}),
                timeout=self.timeout,
            )
        except httpx.HTTPError as exc:
            logger.debug("linkedin revocation request failed: %s", exc)
            return False
        return bool(resp.is_success)


class YouTubeProvider(OAuth2Provider):
    """YouTube provider on Google's OAuth 2.0 endpoints.

    Requests offline access with a forced consent prompt so Google issues
    a refresh token on every connection. The identity is the user's own
    channel.
    """

    name = "youtube"

    def __init__(
        self,
        client_id: str,
        client_secret: str = "",
        scopes: list[str] | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        """Initialize YouTube provider."""
        super().__init__(
            client_id=client_id,
            client_secret=client_secret,
            scopes=scopes
            or [
                "https://www.googleapis.com/auth/youtube.upload",
                "https://www.googleapis.com/auth/youtube.readonly",
            ],
            authorize_url="https://accounts.google.com/o/oauth2/v2/auth",
            token_url="https://oauth2.googleapis.com/token",  # noqa: S106
            userinfo_url="https://www.googleapis.com/youtube/v3/channels",
            revocation_url="https://oauth2.googleapis.com/revoke",
            timeout=timeout,
        )

    def build_authorize_url(
        self,
        redirect_uri: str,
        state: str,
        pkce: PKCEChallenge | None = None,
        extra_params: dict[str, str] | None = None,
    ) -> str:
        """Build Google authorization URL with access_type=offline."""
        params = {
            "access_type": "offline",
            "prompt": "consent",
            "include_granted_scopes": "true",
        }
        if extra_params:
            params.update(extra_params)
        return super().build_authorize_url(redirect_uri, state, pkce, params)

    def _identity_params(self) -> dict[str, str]:
        return {"part": "snippet", "mine": "true"}

    def _parse_identity(self, raw: dict[str, Any]) -> ProviderIdentity:
        items = raw.get("items") or []
        if not items:
            msg = "No YouTube channel found for this account"
            raise ProviderRejected(msg, provider=self.name, provider_error="no_channel")
        channel = items[0]
        snippet = channel.get("snippet") or {}
        return ProviderIdentity(
            provider=self.name,
            user_id=str(channel["id"]),
            username=snippet.get("customUrl"),
            display_name=snippet.get("title"),
            raw=channel,
        )


class FacebookProvider(OAuth2Provider):
    """Facebook Login provider on the Graph API.

    Facebook issues no refresh tokens; an expired credential requires the
    user to connect again.
    """

    name = "facebook"
    supports_refresh = False
    scope_separator = ","
    default_scopes: ClassVar[list[str]] = [
        "public_profile",
        "pages_show_list",
        "pages_read_engagement",
        "pages_manage_posts",
    ]

    def __init__(
        self,
        client_id: str,
        client_secret: str = "",
        scopes: list[str] | None = None,
        graph_version: str = "v19.0",
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        """Initialize Facebook provider."""
        graph = f"https://graph.facebook.com/{graph_version}"
        super().__init__(
            client_id=client_id,
            client_secret=client_secret,
            scopes=scopes or list(self.default_scopes),
            authorize_url=f"https://www.facebook.com/{graph_version}/dialog/oauth",
            token_url=f"{graph}/oauth/access_token",
            userinfo_url=f"{graph}/me",
            revocation_url=f"{graph}/me/permissions",
            timeout=timeout,
        )
        self.graph_url = graph

    def _body_error(self, raw: dict[str, Any]) -> tuple[str, str] | None:
        error = raw.get("error")
        if isinstance(error, dict):
            message = str(error.get("message") or "Graph API error")
            # Graph error 190 is an invalid or expired access token
            if error.get("code") == 190:
                return "invalid_token", message
            return str(error.get("type") or error.get("code") or "error"), message
        return super()._body_error(raw)

    async def exchange_code(
        self,
        code: str,
        redirect_uri: str,
        pkce_verifier: str | None = None,
    ) -> Credential:
        """Exchange the code with a GET, as the Graph API documents it."""
        raw = await self._request_json(
            "GET",
            self.token_url,
            "Token exchange",
            params={
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "redirect_uri": redirect_uri,
                "code": code,
            },
        )
        return self._credential_from_token(raw)

    def _identity_params(self) -> dict[str, str]:
        return {"fields": "id,name"}

    async def revoke_token(self, credential: Credential) -> bool:
        """Remove the app's permissions for the user."""
        try:
            client = await self._get_client()
            resp = await client.delete(
                self.revocation_url,
                headers={"Authorization": f"Bearer {credential.access_token}"},
                timeout=self.timeout,
            )
        except httpx.HTTPError as exc:
            logger.debug("%s revocation request failed: %s", self.name, exc)
            return False
        return bool(resp.is_success)


class InstagramProvider(FacebookProvider):
    """Instagram professional accounts, connected through Facebook Login.

    The identity is the Instagram business account linked to one of the
    user's Facebook pages.
    """

    name = "instagram"
    default_scopes: ClassVar[list[str]] = [
        "instagram_basic",
        "instagram_content_publish",
        "pages_show_list",
        "business_management",
    ]

    async def get_identity(self, credential: Credential) -> ProviderIdentity:
        """Find the first page with a linked Instagram account."""
        raw = await self._request_json(
            "GET",
            f"{self.graph_url}/me/accounts",
            "Profile request",
            params={"fields": "name,instagram_business_account{id,username}"},
            headers={"Authorization": f"Bearer {credential.access_token}"},
        )
        for page in raw.get("data") or []:
            account = page.get("instagram_business_account")
            if account and account.get("id"):
                return ProviderIdentity(
                    provider=self.name,
                    user_id=str(account["id"]),
                    username=account.get("username"),
                    display_name=page.get("name"),
                    raw=account,
                )
        msg = "No Instagram professional account is linked to this Facebook user"
        raise ProviderRejected(msg, provider=self.name, provider_error="no_instagram_account")


class TikTokProvider(PKCEProvider):
    """TikTok Login Kit provider (OAuth 2.0 with PKCE).

    TikTok names the client id ``client_key``, separates scopes with commas
    and reports the account's ``open_id`` in the token response.
    """

    name = "tiktok"
    scope_separator = ","
    client_id_param = "client_key"

    def __init__(
        self,
        client_id: str,
        client_secret: str = "",
        scopes: list[str] | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        """Initialize TikTok provider."""
        super().__init__(
            client_id=client_id,
            client_secret=client_secret,
            scopes=scopes or ["user.info.basic", "video.upload"],
            authorize_url="https://www.tiktok.com/v2/auth/authorize/",
            token_url="https://open.tiktokapis.com/v2/oauth/token/",  # noqa: S106
            userinfo_url="https://open.tiktokapis.com/v2/user/info/",
            revocation_url="https://open.tiktokapis.com/v2/oauth/revoke/",
            timeout=timeout,
        )

    def _credential_from_token(
        self,
        raw: dict[str, Any],
        refresh_token: str | None = None,
    ) -> Credential:
        credential = super()._credential_from_token(raw, refresh_token)
        open_id = raw.get("open_id")
        return replace(credential, user_id=str(open_id)) if open_id else credential

    def _identity_params(self) -> dict[str, str]:
        return {"fields": "open_id,union_id,avatar_url,display_name"}

    def _parse_identity(self, raw: dict[str, Any]) -> ProviderIdentity:
        user = (raw.get("data") or {}).get("user") or {}
        if not user.get("open_id"):
            msg = "Profile response did not include an open_id"
            raise ProviderRejected(msg, provider=self.name)
        return ProviderIdentity(
            provider=self.name,
            user_id=str(user["open_id"]),
            display_name=user.get("display_name"),
            raw=user,
        )

    async def revoke_token(self, credential: Credential) -> bool:
        """Revoke with ``client_key`` client authentication."""
        try:
            client = await self._get_client()
            resp = await client.post(
                self.revocation_url,
                data=self._token_request({"token": credential.access_token}),
                timeout=self.timeout,
            )
        except httpx.HTTPError as exc:
            logger.debug("tiktok revocation request failed: %s", exc)
            return False
        return bool(resp.is_success)


PROVIDER_CLASSES: dict[str, type[OAuthProvider]] = {
    "twitter": TwitterProvider,
    "linkedin": LinkedInProvider,
    "youtube": YouTubeProvider,
    "facebook": FacebookProvider,
    "instagram": InstagramProvider,
    "tiktok": TikTokProvider,
}


def create_provider_from_settings(name: str, settings: CrossPosterSettings) -> OAuthProvider:
    """Create one provider from its settings section.

    Parameters
    ----------
    name : str
        Platform name (a key of ``PROVIDER_CLASSES``).
    settings : CrossPosterSettings
        The application settings.

    Returns
    -------
    OAuthProvider
        A configured provider instance.
    """
    section = settings.provider(name)
    kwargs: dict[str, Any] = {
        "client_id": section.client_id,
        "client_secret": section.client_secret,
        "scopes": section.scope_list,
        "timeout": settings.server.http_timeout,
    }
    graph_version = getattr(section, "graph_version", None)
    if graph_version:
        kwargs["graph_version"] = graph_version
    return PROVIDER_CLASSES[name](**kwargs)


def create_providers_from_settings(settings: CrossPosterSettings) -> dict[str, OAuthProvider]:
    """Create every enabled provider, keyed by platform name."""
    providers: dict[str, OAuthProvider] = {}
    for name in PROVIDER_CLASSES:
        if not settings.provider(name).enabled:
            continue
        providers[name] = create_provider_from_settings(name, settings)
        if not providers[name].configured:
            logger.info("%s has no client credentials configured", name)
    return providers
