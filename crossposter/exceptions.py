"""CrossPoster exception hierarchy.

All CrossPoster-specific exceptions inherit from CrossPosterException,
enabling catch-all handling while supporting specific error types.

Every authentication error carries a stable ``code`` that is safe to hand
to a frontend (query string or JSON body) and the ``http_status`` the HTTP
layer answers with.
"""

from __future__ import annotations

from typing import Any, ClassVar


class CrossPosterException(Exception):
    """Base exception for all CrossPoster errors."""

    def __init__(self, message: str, **context: Any) -> None:
        """Initialize CrossPoster exception.

        Parameters
        ----------
        message : str
            Human-readable error message.
        **context : Any
            Additional context (provider, status_code, etc.).
        """
        super().__init__(message)
        self.message = message
        self.context = context

    def __str__(self) -> str:
        """Format exception with context."""
        ctx = {k: v for k, v in self.context.items() if v is not None}
        if ctx:
            rendered = ", ".join(f"{k}={v!r}" for k, v in ctx.items())
            return f"{self.message} ({rendered})"
        return self.message


class ConfigurationError(CrossPosterException):
    """Configuration is invalid or incomplete."""


class AuthenticationError(CrossPosterException):
    """Base exception for all authentication failures.

    Raised when an OAuth flow, a token exchange, a refresh or a
    credential lookup fails.
    """

    code: ClassVar[str] = "authentication_error"
    http_status: ClassVar[int] = 400

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        flow_id: str | None = None,
        **context: Any,
    ) -> None:
        """Initialize authentication error.

        Parameters
        ----------
        message : str
            Human-readable error message.
        provider : str, optional
            The platform name (e.g., "twitter", "tiktok").
        flow_id : str, optional
            The correlation token of the flow that failed.
        **context : Any
            Additional context.
        """
        super().__init__(message, provider=provider, **context)
        self.provider = provider
        self.flow_id = flow_id


class InvalidRequest(AuthenticationError):
    """Callback or exchange request is missing required parameters."""

    code = "missing_parameters"


class StateMismatch(AuthenticationError):
    """Correlation token is unknown, expired, already consumed or overwritten.

    Raised before any request reaches the provider's token endpoint.
    """

    code = "invalid_or_expired_state"


class UserDenied(AuthenticationError):
    """The user declined the consent screen."""

    code = "user_denied"
    http_status = 403


class UnknownProvider(AuthenticationError):
    """No platform is registered under the requested name."""

    code = "unknown_provider"
    http_status = 404


class ProviderNotConfigured(AuthenticationError):
    """The platform is known but has no client credentials configured."""

    code = "provider_not_configured"
    http_status = 503


# Provider error codes that mean the presented token itself is no good.
_AUTH_FAILURE_ERRORS = frozenset(
    {
        "invalid_token",
        "expired_token",
        "access_token_invalid",
        "access_token_expired",
        "unauthorized",
    }
)


class ProviderRejected(AuthenticationError):
    """The provider answered with an error.

    Raised for non-success HTTP statuses and for error payloads returned
    with a success status.
    """

    code = "provider_rejected"
    http_status = 502

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        status_code: int | None = None,
        provider_error: str | None = None,
        **context: Any,
    ) -> None:
        """Initialize provider rejection.

        Parameters
        ----------
        message : str
            Human-readable error message.
        provider : str, optional
            The platform name.
        status_code : int, optional
            HTTP status returned by the provider.
        provider_error : str, optional
            The provider's own error code (e.g. ``invalid_grant``).
        **context : Any
            Additional context.
        """
        super().__init__(
            message,
            provider=provider,
            status_code=status_code,
            provider_error=provider_error,
            **context,
        )
        self.status_code = status_code
        self.provider_error = provider_error

    @property
    def is_auth_failure(self) -> bool:
        """Whether the rejection means the credential is no longer valid."""
        if self.status_code in (401, 403):
            return True
        return (self.provider_error or "").lower() in _AUTH_FAILURE_ERRORS


class ChallengeMismatch(ProviderRejected):
    """The PKCE verifier did not match the challenge sent at start."""

    code = "challenge_mismatch"


class NetworkError(AuthenticationError):
    """The provider could not be reached or did not answer in time."""

    code = "network_error"
    http_status = 504


class RefreshFailed(AuthenticationError):
    """The credential cannot be refreshed; the user must re-authenticate."""

    code = "reauthentication_required"
    http_status = 401


class NotConnected(AuthenticationError):
    """No credential is stored for the platform in this session."""

    code = "not_connected"
    http_status = 401
