"""
Environment configuration — single source of truth for all settings.

Uses pydantic-settings for type-safe config with .env file support.
Every value has a default that works for a local chat platform on
port 3100 and an in-memory dedup registry.

Usage:
    from alertbot.core.config import settings
    print(settings.MAIN_SERVER_URL)
"""

from __future__ import annotations

from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Service settings loaded from environment variables or .env file.

    Precedence: env var > .env file > default value
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # ── Application ──
    APP_NAME: str = "Weather Alert Bot"
    APP_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"  # development | staging | production
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"  # DEBUG | INFO | WARNING | ERROR | CRITICAL

    # ── Server ──
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # ── CORS ──
    CORS_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://localhost:3100",
    ]
    CORS_ALLOW_ALL: bool = True  # False in production

    # ── Chat platform ──
    MAIN_SERVER_URL: str = "http://localhost:3100"
    PUBLISH_TIMEOUT_SECONDS: float = 15.0
    IMAGE_TEMP_DIR: Optional[str] = None  # None → system temp dir

    # ── Bot identity ──
    BOT_ID: str = "weatherbot"
    BOT_USERNAME: str = "WeatherBot"
    BOT_API_KEY: Optional[str] = None
    BOT_AUTH_TOKEN: Optional[str] = None  # pre-issued token, skips first login

    # ── Alert processing ──
    ALERT_MIN_SEVERITY: str = "Moderate"  # Extreme | Severe | Moderate | Minor | Unknown
    THRESHOLD_SOURCE: str = "fixed"  # fixed | bot_config
    DISTRIBUTE_TO_SUBSCRIBERS: bool = False  # also send direct messages
    GEOFENCE_PROXIMITY_KM: Optional[float] = None  # e.g. 50.0 to include near-boundary users

    # ── Deduplication ──
    DEDUP_BACKEND: str = "memory"  # memory | redis
    DEDUP_TTL_SECONDS: int = 7 * 24 * 3600
    REDIS_URL: str = "redis://localhost:6379/0"
    REDIS_KEY_PREFIX: str = "alertbot:processed:"

    # ── Fallback location (New York City) ──
    DEFAULT_LATITUDE: float = 40.7128
    DEFAULT_LONGITUDE: float = -74.0060

    # ── Rate limiting (platform 429 handling) ──
    RATE_LIMIT_DEFAULT_SECONDS: int = 60
    RATE_LIMIT_MIN_SECONDS: int = 30
    RATE_LIMIT_MAX_SECONDS: int = 1800
    RATE_LIMIT_MAX_JITTER_MS: int = 5000

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT == "development"


@lru_cache()
def get_settings() -> Settings:
    """Cached settings singleton."""
    return Settings()


settings = get_settings()
