"""Application configuration using pydantic-settings."""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="DRIVEHUB_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Application
    app_name: str = "DriveHub"
    version: str = "0.3.0"
    debug: bool = False
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # Server
    host: str = "0.0.0.0"
    port: int = Field(default=4000, description="Server port")

    # Paths
    config_path: Path = Field(
        default=Path("/config"),
        description="Path for configuration files and the SQLite database",
    )

    # Database
    database_url: str | None = Field(
        default=None,
        description="Database connection URL (defaults to SQLite under config_path)",
    )

    # CORS
    cors_origins: list[str] = Field(
        default=["http://localhost:5173"],
        description="Allowed CORS origins",
    )

    # Google OAuth
    google_client_id: str | None = Field(
        default=None,
        description="OAuth client ID from Google Cloud Console",
    )
    google_client_secret: str | None = Field(
        default=None,
        description="OAuth client secret from Google Cloud Console",
    )
    google_redirect_uri: str = Field(
        default="http://localhost:4000/api/v1/accounts/oauth/callback",
        description="Redirect URI registered for the OAuth client",
    )
    google_request_timeout: float = Field(
        default=30.0,
        gt=0,
        le=300,
        description="Timeout in seconds for each outbound Google API call",
    )

    # Token encryption
    encryption_key: str | None = Field(
        default=None,
        description="Fernet key used to encrypt stored OAuth tokens",
    )

    # Sync settings
    drive_page_size: int = Field(
        default=1000,
        ge=1,
        le=1000,
        description="Files requested per Drive listing page (1-1000)",
    )
    sync_max_concurrency: int = Field(
        default=4,
        ge=1,
        le=32,
        description="Maximum account pipelines running at once during a sync",
    )
    quota_cache_ttl: int = Field(
        default=600,
        ge=0,
        description="Seconds a cached storage quota stays fresh (default 10 minutes)",
    )

    # Listings
    duplicate_page_limit: int = Field(
        default=50,
        ge=1,
        le=500,
        description="Default number of duplicate groups per page",
    )

    @property
    def google_oauth_configured(self) -> bool:
        """Check if Google OAuth client credentials are configured."""
        return bool(self.google_client_id and self.google_client_secret)

    @property
    def db_path(self) -> Path:
        """Get the SQLite database file path."""
        return self.config_path / "drivehub.db"


# Global settings instance
settings = Settings()
