# Application settings.
# Created: 2026-10-12
#
# All configuration comes from PROJECTFLOW_* environment variables (or a .env
# file). The base URL and JWT secret have no defaults: a deployment without
# them fails loudly on first use rather than minting tokens for a guessed issuer.

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from projectflow.errors import ConfigurationError


class Settings(BaseSettings):
    """Runtime configuration for the authorization server and resource API."""

    model_config = SettingsConfigDict(
        env_prefix="PROJECTFLOW_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Public origin of this deployment, e.g. https://projectflow.example
    base_url: str | None = None
    mcp_resource_path: str = "/api/mcp"

    jwt_secret: str | None = None
    jwt_algorithm: str = "HS256"

    session_secret: str | None = None
    session_cookie_name: str = "projectflow_session"
    session_ttl_hours: int = 24

    cron_secret: str | None = None

    environment: Literal["development", "test", "production"] = "production"
    dev_tokens_enabled: bool = False

    access_token_ttl_seconds: int = Field(default=3600, gt=0)
    refresh_token_ttl_days: int = Field(default=30, gt=0)
    code_ttl_minutes: int = Field(default=10, gt=0)

    native_callback_url: str = "cursor://anysphere.cursor-mcp/oauth/callback"
    login_path: str = "/auth/login"
    require_consent: bool = False

    token_store_path: Path | None = None
    cors_allowed_origins: list[str] = Field(default_factory=list)
    log_level: str = "INFO"

    @classmethod
    def load(cls) -> Settings:
        """Build settings from the current environment."""
        return cls()

    @property
    def issuer(self) -> str:
        if not self.base_url:
            raise ConfigurationError("PROJECTFLOW_BASE_URL is not configured")
        return self.base_url.rstrip("/")

    @property
    def resource_url(self) -> str:
        """Identifier of the protected MCP resource (the access-token audience)."""
        return f"{self.issuer}{self.mcp_resource_path}"

    @property
    def resource_metadata_url(self) -> str:
        return f"{self.issuer}/.well-known/oauth-protected-resource"

    @property
    def effective_session_secret(self) -> str | None:
        return self.session_secret or self.jwt_secret

    @property
    def dev_tokens_active(self) -> bool:
        """Same-origin development tokens need both the flag and a dev deployment."""
        return self.environment == "development" and self.dev_tokens_enabled

    def require_jwt_secret(self) -> str:
        if not self.jwt_secret:
            raise ConfigurationError("PROJECTFLOW_JWT_SECRET is not configured")
        return self.jwt_secret


_settings: Settings | None = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings.load()
    return _settings


def reset_settings() -> None:
    """Drop the cached settings (for testing)."""
    global _settings
    _settings = None
