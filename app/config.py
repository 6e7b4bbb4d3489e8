"""
Application Configuration
=========================

Centralized configuration using Pydantic Settings.
Loads from environment variables with validation.
"""

from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    ENVIRONMENT: str = Field(default="development")

    # Server
    PORT: int = Field(default=8080, description="Port to bind to (Railway/Render inject this)")
    PUBLIC_BASE_URL: str = Field(
        default="",
        description="Absolute prefix for stream URLs; empty means relative URLs",
    )
    ALLOWED_ORIGINS: str = Field(default="*")

    # APNs (Live Activities)
    APNS_KEY_ID: Optional[str] = Field(default=None)
    APNS_TEAM_ID: Optional[str] = Field(default=None)
    APNS_PRIVATE_KEY_PATH: Optional[str] = Field(default=None)
    APNS_ENVIRONMENT: str = Field(default="sandbox")
    APNS_TIMEOUT_SECONDS: float = Field(default=10.0)
    BUNDLE_IDENTIFIER: str = Field(default="fitsyu2.LiveWallet")

    # Stream buffers
    SEGMENT_WINDOW_SIZE: int = Field(default=10, ge=1)
    DEFAULT_SEGMENT_DURATION_SECONDS: float = Field(default=10.0, gt=0)

    # Session lifecycle
    FRAME_STREAM_GRACE_SECONDS: float = Field(default=30)
    SEGMENT_STREAM_GRACE_SECONDS: float = Field(default=3600)  # 1 hour
    REALTIME_STREAM_GRACE_SECONDS: float = Field(default=5)
    SESSION_IDLE_TTL_SECONDS: float = Field(default=60 * 30)  # 30 minutes
    SESSION_SWEEP_INTERVAL_SECONDS: float = Field(default=60)

    # Uploads
    MAX_FRAME_UPLOAD_SIZE_MB: int = Field(default=10)
    MAX_SEGMENT_UPLOAD_SIZE_MB: int = Field(default=50)

    @property
    def allowed_origins_list(self) -> List[str]:
        """Parse ALLOWED_ORIGINS into a list."""
        return [origin.strip() for origin in self.ALLOWED_ORIGINS.split(",")]

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.ENVIRONMENT.lower() == "development"

    @property
    def apns_configured(self) -> bool:
        """
        Check if real APNs delivery is possible.

        All three credentials must be set and the key file must exist,
        otherwise notifications are simulated.
        """
        if not (self.APNS_KEY_ID and self.APNS_TEAM_ID and self.APNS_PRIVATE_KEY_PATH):
            return False
        return Path(self.APNS_PRIVATE_KEY_PATH).is_file()

    @property
    def apns_host(self) -> str:
        """APNs base URL for the configured environment."""
        if self.APNS_ENVIRONMENT == "production":
            return "https://api.push.apple.com"
        return "https://api.sandbox.push.apple.com"

    @field_validator("APNS_ENVIRONMENT")
    @classmethod
    def validate_apns_environment(cls, v: str) -> str:
        """Only the two APNs gateways are valid."""
        v = v.lower()
        if v not in ("sandbox", "production"):
            raise ValueError("APNS_ENVIRONMENT must be 'sandbox' or 'production'")
        return v


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are loaded only once.
    """
    return Settings()


# Export a default settings instance
settings = get_settings()
