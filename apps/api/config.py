"""
Application configuration using Pydantic Settings.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List


QUEUE_MODES = ("auto", "rq", "inline")
CACHE_BACKENDS = ("memory", "redis")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./seo_audit.db"

    # Redis
    REDIS_URL: str = "redis://localhost:6379"

    # API
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000
    LOG_LEVEL: str = "INFO"
    AUTO_CREATE_DB_SCHEMA: bool = True

    # CORS
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://127.0.0.1:3000"]

    # Audit queue
    AUDIT_QUEUE_MODE: str = "auto"  # auto, rq, inline
    AUDIT_COOLDOWN_MINUTES: int = 60
    AUDIT_JOB_TIMEOUT_SECONDS: int = 600
    AUDIT_STALLED_AFTER_MINUTES: int = 120
    AUDIT_HISTORY_DAYS: int = 30

    # Free tier content limits per audit
    AUDIT_MAX_PRODUCTS: int = 50
    AUDIT_MAX_COLLECTIONS: int = 20
    AUDIT_MAX_PAGES: int = 20

    # Shopify Admin API
    SHOPIFY_API_VERSION: str = "2024-01"
    SHOPIFY_REQUEST_TIMEOUT_SECONDS: float = 20.0

    # Broken link probing
    LINK_CHECK_ENABLED: bool = True
    LINK_CHECK_TIMEOUT_SECONDS: float = 5.0
    LINK_CHECK_MAX_URLS: int = 100
    LINK_CHECK_CONCURRENCY: int = 10

    # Cache
    CACHE_BACKEND: str = "memory"  # memory, redis
    CACHE_MAX_ENTRIES: int = 1000
    CACHE_DEFAULT_TTL_SECONDS: int = 300

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True)


settings = Settings()


def validate_queue_settings() -> None:
    """Fail fast when queue or cache settings name an unknown backend."""
    mode = (settings.AUDIT_QUEUE_MODE or "").strip().lower()
    if mode not in QUEUE_MODES:
        raise ValueError(
            f"AUDIT_QUEUE_MODE must be one of {', '.join(QUEUE_MODES)} (got {settings.AUDIT_QUEUE_MODE!r})"
        )
    backend = (settings.CACHE_BACKEND or "").strip().lower()
    if backend not in CACHE_BACKENDS:
        raise ValueError(
            f"CACHE_BACKEND must be one of {', '.join(CACHE_BACKENDS)} (got {settings.CACHE_BACKEND!r})"
        )
    if settings.AUDIT_COOLDOWN_MINUTES < 0:
        raise ValueError("AUDIT_COOLDOWN_MINUTES cannot be negative.")
