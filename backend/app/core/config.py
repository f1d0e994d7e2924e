"""
Environment configuration — single source of truth for all settings.

Uses pydantic-settings for type-safe config with .env file support.
All values have sensible defaults for local development.

Settings are built once by the application factory and handed to the
aggregation controller; nothing reads them through a module global.

Usage:
    from backend.app.core.config import get_settings
    settings = get_settings()
    print(settings.SOS_ALERTS_URL)
"""

from __future__ import annotations

from functools import lru_cache
from typing import Any, Dict, List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application-wide settings loaded from environment variables or .env file.

    Precedence: env var > .env file > default value
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # ── Application ──
    APP_NAME: str = "Emergency Alert Dashboard"
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
        "http://localhost:5173",
    ]
    CORS_ALLOW_ALL: bool = True  # False in production

    # ── Alert sources ──
    SOS_ALERTS_URL: str = "http://127.0.0.1:5000/alerts"
    EMERGENCY_ALERTS_URL: str = "http://127.0.0.1:5000/getAlerts"
    FETCH_TIMEOUT_SECONDS: Optional[float] = None  # None = wait indefinitely
    FETCH_MAX_RETRIES: int = 0  # network errors only; parse errors never retry
    FETCH_BACKOFF_BASE_SECONDS: float = 1.0  # wait = base * 2^(attempt-1)
    SHUTDOWN_GRACE_SECONDS: float = 5.0  # let in-flight fetches finish on close

    # ── Live video ──
    VIDEO_FEED_URL: str = "http://127.0.0.1:5000/video_feed"
    VIDEO_TITLE: str = "Live Stream"

    # ── Map ──
    MAP_DEFAULT_CENTER_LAT: float = 12.963829  # Bengaluru
    MAP_DEFAULT_CENTER_LON: float = 77.505777
    MAP_DEFAULT_ZOOM: int = 13
    MAP_TILE_URL: str = "https://{s}.tile.openstreetmap.org/{z}/{x}/{y}.png"
    MAP_ATTRIBUTION: str = (
        '&copy; <a href="https://www.openstreetmap.org/copyright">'
        "OpenStreetMap</a> contributors"
    )

    # ── Safe zones (detail map) ──
    SAFE_ZONES: List[Dict[str, Any]] = []  # [{id, name, latitude, longitude}]
    SAFE_ZONE_RADIUS_KM: Optional[float] = Field(None, gt=0)  # None = show every zone

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"


@lru_cache()
def get_settings() -> Settings:
    """Cached settings loaded from the environment."""
    return Settings()
