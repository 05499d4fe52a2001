"""
Application configuration using Pydantic Settings.

All configuration is loaded from environment variables or a local .env file.
"""

from functools import lru_cache
from typing import Any

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Application
    APP_NAME: str = "BotGuard"
    APP_ENV: str = "development"
    DEBUG: bool = False
    SECRET_KEY: str = ""  # Required - loaded from environment

    @field_validator("SECRET_KEY")
    @classmethod
    def validate_required_secrets(cls, v: str, info: Any) -> str:
        """Validate that required secrets are set."""
        if not v:
            raise ValueError(f"{info.field_name} must be set in environment")
        return v

    # Database (async driver URL: postgresql+asyncpg://... or sqlite+aiosqlite:///...)
    DATABASE_URL: str = "sqlite+aiosqlite:///./botguard.db"
    SQL_ECHO: bool = False

    # Logging
    LOG_JSON: bool = True

    # Client identity
    FINGERPRINT_SALT: str | None = None  # Falls back to SECRET_KEY
    # Only honour X-Forwarded-For / X-Real-IP behind a trusted reverse proxy
    TRUST_PROXY_HEADERS: bool = False

    # Bot scoring thresholds (0-100)
    BOT_CHALLENGE_THRESHOLD: int = 80
    BOT_FLAG_THRESHOLD: int = 60
    SUSPICIOUS_SCORE_THRESHOLD: int = 50

    # CAPTCHA challenges
    CAPTCHA_TTL_SECONDS: int = 300
    CAPTCHA_AMNESTY_POINTS: int = 30
    CAPTCHA_CLEANUP_ENABLED: bool = True
    CAPTCHA_CLEANUP_INTERVAL_MINUTES: int = 15

    # Rate limiting
    VOTE_RATE_LIMIT_PER_MINUTE: int = 3
    CAPTCHA_VERIFY_RATE_LIMIT_PER_MINUTE: int = 10

    # Admin API (security console). Admin endpoints are disabled when unset.
    ADMIN_API_KEY: str | None = None

    # CORS - stored as comma-separated string to avoid pydantic-settings JSON parsing issues
    CORS_ORIGINS: str = "http://localhost:3000"

    @property
    def fingerprint_salt(self) -> str:
        """Salt used for fingerprint HMACs."""
        return self.FINGERPRINT_SALT or self.SECRET_KEY

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
