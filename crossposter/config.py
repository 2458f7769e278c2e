"""Configuration system for CrossPoster using pydantic-settings.

Supports layered configuration:
1. Built-in defaults (lowest priority)
2. pyproject.toml [tool.crossposter] section (project-level)
3. ./crossposter.toml (project-level, explicit)
4. ~/.config/crossposter/config.toml (user-level, overrides project)
5. Environment variables (highest priority)

Environment variables use CROSSPOSTER_ prefix with nested delimiter __.
Example: CROSSPOSTER_TWITTER__CLIENT_ID, CROSSPOSTER_SESSION__PENDING_TTL
"""

from __future__ import annotations

import os
import secrets
import sys
import tomllib

from functools import lru_cache
from pathlib import Path
from typing import Annotated, Any, ClassVar, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


PROVIDER_NAMES: tuple[str, ...] = (
    "twitter",
    "linkedin",
    "youtube",
    "facebook",
    "instagram",
    "tiktok",
)


def _find_config_files() -> list[Path]:
    """Find all configuration files in order of precedence (lowest first)."""
    files = []

    pyproject = Path("pyproject.toml")
    if pyproject.exists():
        files.append(pyproject)

    project_toml = Path("crossposter.toml")
    if project_toml.exists():
        files.append(project_toml)

    if sys.platform == "win32":
        user_config = Path(os.environ.get("APPDATA", "~")) / "crossposter" / "config.toml"
    else:
        user_config = Path("~/.config/crossposter/config.toml")
    user_config = user_config.expanduser()
    if user_config.exists():
        files.append(user_config)

    env_config = os.environ.get("CROSSPOSTER_CONFIG_FILE")
    if env_config:
        env_path = Path(env_config)
        if env_path.exists():
            files.append(env_path)

    return files


def _load_toml_config() -> dict[str, Any]:
    """Load and merge all TOML configuration files."""
    merged: dict[str, Any] = {}

    for config_file in _find_config_files():
        try:
            data = tomllib.loads(config_file.read_text(encoding="utf-8"))
        except (OSError, tomllib.TOMLDecodeError) as exc:
            # Logged lazily to avoid an import cycle with .log
            from .log import get_logger

            get_logger().warning("Ignoring unreadable config file %s: %s", config_file, exc)
            continue

        if config_file.name == "pyproject.toml":
            data = data.get("tool", {}).get("crossposter", {})

        merged = _deep_merge(merged, data)

    return merged


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Deep merge two dictionaries."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


# Field names that contain sensitive data and must be redacted in output.
_SENSITIVE_FIELDS: set[str] = {
    "client_secret",
    "secret",
}

_REDACTED = "********"


class LogSettings(BaseSettings):
    """Logging settings.

    Environment prefix: CROSSPOSTER_LOG__
    Example: CROSSPOSTER_LOG__LEVEL=DEBUG
    """

    model_config = SettingsConfigDict(
        env_prefix="CROSSPOSTER_LOG__",
        extra="ignore",
    )

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "WARNING"
    format: str = "%(asctime)s %(name)s - %(levelname)s - %(message)s"


class ServerSettings(BaseSettings):
    """HTTP server and frontend settings.

    Environment prefix: CROSSPOSTER_SERVER__
    Example: CROSSPOSTER_SERVER__FRONTEND_URL=https://app.example.com
    """

    model_config = SettingsConfigDict(
        env_prefix="CROSSPOSTER_SERVER__",
        extra="ignore",
    )

    host: str = Field(default="127.0.0.1", description="Server bind address")
    port: int = Field(default=8000, ge=1, le=65535, description="Server port")
    log_level: Literal["critical", "error", "warning", "info", "debug", "trace"] = Field(
        default="info", description="Uvicorn log level"
    )
    reload: bool = Field(default=False, description="Enable auto-reload (dev mode)")

    backend_url: str = Field(
        default="http://localhost:8000",
        description="Public base URL of this backend, used to build OAuth redirect URIs",
    )
    frontend_url: str = Field(
        default="http://localhost:3000",
        description="Base URL of the frontend that receives callback redirects",
    )
    frontend_callback_path: str = Field(
        default="/{provider}-callback",
        description="Frontend path template for callback redirects ({provider} is substituted)",
    )

    cors_origins: Annotated[list[str], NoDecode] = Field(
        default_factory=list,
        description="Extra allowed CORS origins (the frontend URL is always allowed)",
    )

    http_timeout: float = Field(
        default=30.0,
        gt=0,
        description="Timeout in seconds for every request made to a provider",
    )

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_comma_separated(cls, v: Any) -> list[str]:
        """Parse comma-separated strings from env vars."""
        if isinstance(v, str):
            return [s.strip() for s in v.split(",") if s.strip()]
        return v or []

    @property
    def allowed_origins(self) -> list[str]:
        """Frontend origin followed by any extra CORS origins."""
        origins = [self.frontend_url.rstrip("/")]
        origins.extend(o.rstrip("/") for o in self.cors_origins if o.rstrip("/") not in origins)
        return origins

    def frontend_callback_url(self, provider: str) -> str:
        """Frontend URL the browser lands on after a provider callback."""
        path = self.frontend_callback_path.format(provider=provider)
        return f"{self.frontend_url.rstrip('/')}{path}"


class SessionSettings(BaseSettings):
    """Server-side session and correlation-state settings.

    Environment prefix: CROSSPOSTER_SESSION__
    Example: CROSSPOSTER_SESSION__SECRET=change-me
    """

    model_config = SettingsConfigDict(
        env_prefix="CROSSPOSTER_SESSION__",
        extra="ignore",
    )

    secret: str = Field(
        default_factory=lambda: secrets.token_hex(32),
        description="HMAC key for signing session cookies (random per process when unset)",
    )
    cookie_name: str = Field(default="crossposter_session", description="Session cookie name")
    ttl: int = Field(default=86400, ge=60, description="Session lifetime in seconds")
    pending_ttl: int = Field(
        default=600,
        ge=30,
        description="Seconds an issued correlation token stays valid",
    )
    max_pending: int = Field(
        default=1000,
        ge=1,
        description="Capacity of the process-wide fallback correlation cache",
    )
    same_site: Literal["lax", "strict", "none"] = Field(
        default="lax",
        description="SameSite attribute of the session cookie",
    )
    force_https: bool = Field(
        default=False,
        description="Always mark the session cookie Secure",
    )


class ProviderSettings(BaseSettings):
    """Client registration for one platform.

    Subclasses bind the environment prefix, e.g. CROSSPOSTER_TIKTOK__CLIENT_ID.
    """

    model_config = SettingsConfigDict(extra="ignore")

    enabled: bool = Field(default=True, description="Expose this platform's routes")
    client_id: str = Field(
        default="",
        description="Client ID (consumer key for Twitter, client key for TikTok)",
    )
    client_secret: str = Field(default="", description="Client secret")
    scopes: str = Field(
        default="",
        description="Space-separated scopes (empty uses the platform defaults)",
    )
    redirect_uri: str = Field(
        default="",
        description="Registered callback URL (empty derives it from server.backend_url)",
    )

    @property
    def configured(self) -> bool:
        """Whether client credentials are present."""
        return bool(self.client_id and self.client_secret)

    @property
    def scope_list(self) -> list[str] | None:
        """Configured scopes, or None for the platform defaults."""
        parts = self.scopes.replace(",", " ").split()
        return parts or None


class TwitterSettings(ProviderSettings):
    """Twitter/X OAuth 1.0a consumer credentials.

    Environment prefix: CROSSPOSTER_TWITTER__
    """

    model_config = SettingsConfigDict(env_prefix="CROSSPOSTER_TWITTER__", extra="ignore")


class LinkedInSettings(ProviderSettings):
    """LinkedIn OAuth 2.0 client.

    Environment prefix: CROSSPOSTER_LINKEDIN__
    """

    model_config = SettingsConfigDict(env_prefix="CROSSPOSTER_LINKEDIN__", extra="ignore")


class YouTubeSettings(ProviderSettings):
    """YouTube (Google) OAuth 2.0 client.

    Environment prefix: CROSSPOSTER_YOUTUBE__
    """

    model_config = SettingsConfigDict(env_prefix="CROSSPOSTER_YOUTUBE__", extra="ignore")


class FacebookSettings(ProviderSettings):
    """Facebook Login app.

    Environment prefix: CROSSPOSTER_FACEBOOK__
    """

    model_config = SettingsConfigDict(env_prefix="CROSSPOSTER_FACEBOOK__", extra="ignore")

    graph_version: str = Field(default="v19.0", description="Graph API version")


class InstagramSettings(FacebookSettings):
    """Instagram publishing through Facebook Login.

    Environment prefix: CROSSPOSTER_INSTAGRAM__
    """

    model_config = SettingsConfigDict(env_prefix="CROSSPOSTER_INSTAGRAM__", extra="ignore")


class TikTokSettings(ProviderSettings):
    """TikTok OAuth 2.0 + PKCE client.

    Environment prefix: CROSSPOSTER_TIKTOK__
    """

    model_config = SettingsConfigDict(env_prefix="CROSSPOSTER_TIKTOK__", extra="ignore")


class CrossPosterSettings(BaseSettings):
    """Main settings aggregating all configuration sections.

    Environment prefix: CROSSPOSTER__

    Configuration sources (in order of precedence):
    1. Built-in defaults
    2. pyproject.toml [tool.crossposter] section
    3. ./crossposter.toml (project-level)
    4. ~/.config/crossposter/config.toml (user-level, overrides project)
    5. Environment variables (highest priority)
    """

    model_config = SettingsConfigDict(
        env_prefix="CROSSPOSTER__",
        env_nested_delimiter="__",
        extra="ignore",
    )

    log: LogSettings = Field(default_factory=LogSettings)
    server: ServerSettings = Field(default_factory=ServerSettings)
    session: SessionSettings = Field(default_factory=SessionSettings)
    twitter: TwitterSettings = Field(default_factory=TwitterSettings)
    linkedin: LinkedInSettings = Field(default_factory=LinkedInSettings)
    youtube: YouTubeSettings = Field(default_factory=YouTubeSettings)
    facebook: FacebookSettings = Field(default_factory=FacebookSettings)
    instagram: InstagramSettings = Field(default_factory=InstagramSettings)
    tiktok: TikTokSettings = Field(default_factory=TikTokSettings)

    _SECTIONS: ClassVar[tuple[tuple[str, str], ...]] = (
        ("Logging", "log"),
        ("Server", "server"),
        ("Session", "session"),
        ("Twitter/X", "twitter"),
        ("LinkedIn", "linkedin"),
        ("YouTube", "youtube"),
        ("Facebook", "facebook"),
        ("Instagram", "instagram"),
        ("TikTok", "tiktok"),
    )

    def __init__(self, **data: Any) -> None:
        toml_config = _load_toml_config()
        merged = _deep_merge(toml_config, data)
        super().__init__(**merged)

    def provider(self, name: str) -> ProviderSettings:
        """Return the settings section for a platform."""
        if name not in PROVIDER_NAMES:
            msg = f"Unknown provider: {name}"
            raise KeyError(msg)
        section: ProviderSettings = getattr(self, name)
        return section

    def redirect_uri_for(self, name: str) -> str:
        """Callback URL registered with the platform."""
        section = self.provider(name)
        if section.redirect_uri:
            return section.redirect_uri
        return f"{self.server.backend_url.rstrip('/')}/auth/{name}/callback"

    def to_env(self) -> str:
        """Export settings as shell environment variables."""
        lines = [
            "# CrossPoster Environment Variables",
            "# Generated by: crossposter config --env",
            "",
        ]

        all_data = self.model_dump(
            exclude={attr: _SENSITIVE_FIELDS for _, attr in self._SECTIONS},
        )

        for _, attr_name in self._SECTIONS:
            env_prefix = attr_name.upper()
            for field_name, field_value in all_data.get(attr_name, {}).items():
                env_name = f"CROSSPOSTER_{env_prefix}__{field_name.upper()}"
                if isinstance(field_value, list):
                    value_str = ",".join(str(v) for v in field_value)
                elif isinstance(field_value, bool):
                    value_str = "true" if field_value else "false"
                else:
                    value_str = str(field_value)
                lines.append(f'export {env_name}="{value_str}"')
            section_cls = type(getattr(self, attr_name))
            for redacted_name in sorted(_SENSITIVE_FIELDS & section_cls.model_fields.keys()):
                env_name = f"CROSSPOSTER_{env_prefix}__{redacted_name.upper()}"
                lines.append(f'export {env_name}="{_REDACTED}"')

        return "\n".join(lines)

    def show(self) -> str:
        """Format settings as a readable table."""
        lines = ["CrossPoster Configuration", "=" * 60, ""]

        all_data = self.model_dump(
            exclude={attr: _SENSITIVE_FIELDS for _, attr in self._SECTIONS},
        )

        for display_name, attr_name in self._SECTIONS:
            lines.append(f"\n{display_name}")
            lines.append("-" * 40)
            for field_name, field_value in all_data.get(attr_name, {}).items():
                value_str = str(field_value)
                if len(value_str) > 50:
                    value_str = value_str[:47] + "..."
                lines.append(f"  {field_name:22} = {value_str}")
            section_cls = type(getattr(self, attr_name))
            lines.extend(
                f"  {rn:22} = {_REDACTED}"
                for rn in sorted(_SENSITIVE_FIELDS & section_cls.model_fields.keys())
            )

        return "\n".join(lines)


@lru_cache(maxsize=1)
def get_settings() -> CrossPosterSettings:
    """Get the global settings instance (cached).

    Call clear_settings() to reload configuration.
    """
    return CrossPosterSettings()


def clear_settings() -> None:
    """Clear the cached settings to force reload."""
    get_settings.cache_clear()
