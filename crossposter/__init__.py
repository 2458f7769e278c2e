"""CrossPoster: connect one account to many publishing platforms.

Runs the OAuth flows for Twitter/X, LinkedIn, YouTube, Facebook,
Instagram and TikTok, keeps the resulting credentials in a server-side
session and hands valid credentials to platform API calls.
"""

from __future__ import annotations

from .app import create_app
from .auth import ConnectionManager, OAuthFlow
from .config import CrossPosterSettings, get_settings
from .exceptions import (
    AuthenticationError,
    ChallengeMismatch,
    CrossPosterException,
    InvalidRequest,
    NetworkError,
    NotConnected,
    ProviderRejected,
    RefreshFailed,
    StateMismatch,
    UserDenied,
)


__version__ = "0.1.0"

__all__ = [
    "AuthenticationError",
    "ChallengeMismatch",
    "ConnectionManager",
    "CrossPosterException",
    "CrossPosterSettings",
    "InvalidRequest",
    "NetworkError",
    "NotConnected",
    "OAuthFlow",
    "ProviderRejected",
    "RefreshFailed",
    "StateMismatch",
    "UserDenied",
    "__version__",
    "create_app",
    "get_settings",
]
