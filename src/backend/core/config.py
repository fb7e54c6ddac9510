"""
Application configuration using Pydantic Settings.

All configuration is loaded from environment variables (or a local .env file).
"""

from functools import lru_cache
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Placeholder secret that older deployments shipped with. Never valid in production.
INSECURE_TOTP_SECRET = "geoverify-secret-key-change-in-production"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Application
    APP_NAME: str = "GeoVerify"
    APP_ENV: str = "development"
    DEBUG: bool = False

    # Server-side secret for one-time redemption codes
    TOTP_SECRET: str = ""  # Required - loaded from environment

    # Timezone used for business-hours checks when a campaign declares none
    DEFAULT_TIMEZONE: str = "Africa/Nairobi"

    # CORS - stored as comma-separated string to avoid pydantic-settings JSON parsing issues
    CORS_ORIGINS: str = "http://localhost:3000"

    @field_validator("TOTP_SECRET")
    @classmethod
    def validate_required_secrets(cls, v: str, info: Any) -> str:
        """Validate that required secrets are set."""
        if not v:
            raise ValueError(f"{info.field_name} must be set in environment")
        return v

    @field_validator("DEFAULT_TIMEZONE")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        """The fallback timezone must itself resolve."""
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"DEFAULT_TIMEZONE {v!r} is not a known timezone") from e
        return v

    @model_validator(mode="after")
    def reject_placeholder_secret(self) -> "Settings":
        """Refuse to run production with the well-known placeholder secret."""
        if self.is_production and self.TOTP_SECRET == INSECURE_TOTP_SECRET:
            raise ValueError("TOTP_SECRET is set to the placeholder value")
        return self

    @property
    def is_production(self) -> bool:
        return self.APP_ENV.lower() == "production"

    @property
    def cors_origins_list(self) -> list[str]:
        """Get CORS origins as a list."""
        import json

        try:
            return json.loads(self.CORS_ORIGINS)
        except json.JSONDecodeError:
            return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
