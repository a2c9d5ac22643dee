"""Application configuration loaded from environment variables."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """CloudSync application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Core
    secret_key: str = "change-me-in-production"
    debug: bool = False
    expose_docs: bool = False

    # Database
    database_url: str = "sqlite+aiosqlite:///data/db/cloudsync.db"

    # Server
    host: str = "0.0.0.0"
    port: int = Field(default=8000, ge=1, le=65535)

    # CORS
    cors_origins: list[str] = Field(default_factory=list)
    trusted_hosts: list[str] = Field(default_factory=list)

    # Admin access
    admin_api_token: str = ""

    # OAuth
    public_base_url: str = "http://localhost:8000"
    admin_redirect_url: str = "/"
    oauth_state_ttl_seconds: int = Field(default=600, ge=1)

    # Provider HTTP calls
    http_timeout_seconds: float = Field(default=20.0, gt=0)

    # Sync defaults, used until an administrator saves general settings
    default_auto_sync: bool = True
    default_sync_interval: str = "10"
    scheduler_enabled: bool = True

    # Observability ring buffer
    sync_log_capacity: int = Field(default=200, ge=1)

    # Response hardening
    security_headers_enabled: bool = True

    def validate_runtime_security(self) -> None:
        """Validate security-critical production settings."""
        if self.debug:
            return

        violations: list[str] = []
        if self.secret_key == "change-me-in-production" or len(self.secret_key) < 32:
            violations.append(
                "SECRET_KEY must be overridden with a high-entropy value (>=32 chars)"
            )
        if len(self.admin_api_token) < 24:
            violations.append("ADMIN_API_TOKEN must be set to a strong value (>=24 chars)")
        if not self.trusted_hosts:
            violations.append("TRUSTED_HOSTS must be configured in production")

        if violations:
            joined = "; ".join(violations)
            raise ValueError(f"Insecure production configuration: {joined}")

    def oauth_redirect_uri(self, provider: str) -> str:
        """Return the OAuth callback URL registered with *provider*."""
        base_url = self.public_base_url.rstrip("/")
        return f"{base_url}/api/providers/{provider}/callback"
