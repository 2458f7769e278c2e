"""OAuth connection system for CrossPoster.

Provides provider abstractions for the three OAuth families, the
session/cache store for correlation material and credentials, the
per-platform flow orchestrator and the FastAPI routes.
"""

from __future__ import annotations

from .connections import ConnectionManager
from .flow import OAuthFlow
from .pkce import PKCEChallenge, new_state
from .providers import (
    FacebookProvider,
    InstagramProvider,
    LinkedInProvider,
    OAuth1Provider,
    OAuth2Provider,
    OAuthProvider,
    PKCEProvider,
    TikTokProvider,
    TwitterProvider,
    YouTubeProvider,
    create_provider_from_settings,
    create_providers_from_settings,
)
from .routes import create_auth_router
from .session import SessionCredentialStore
from .state_store import CorrelationCache


__all__ = [
    "ConnectionManager",
    "CorrelationCache",
    "FacebookProvider",
    "InstagramProvider",
    "LinkedInProvider",
    "OAuth1Provider",
    "OAuth2Provider",
    "OAuthFlow",
    "OAuthProvider",
    "PKCEChallenge",
    "PKCEProvider",
    "SessionCredentialStore",
    "TikTokProvider",
    "TwitterProvider",
    "YouTubeProvider",
    "create_auth_router",
    "create_provider_from_settings",
    "create_providers_from_settings",
    "new_state",
]
