"""Application configuration via Pydantic Settings."""

from typing import List
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Global application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
    )

    # App
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    LOG_JSON: bool = False

    # Browser engine / session pool
    HEADLESS: bool = True
    MAX_SESSIONS: int = 5  # Checked-out sessions at any one time
    IDLE_POOL_SIZE: int = 5  # Idle sessions kept warm for reuse
    SESSION_PROBE_TIMEOUT_SECONDS: float = 5.0

    # Scheduler / rate limiting
    SCHEDULER_CONCURRENCY: int = 1
    RATE_LIMIT_DELAY_SECONDS: float = 2.0

    # Retry / timeouts
    RETRY_MAX_ATTEMPTS: int = 3
    RETRY_BACKOFF_SECONDS: float = 2.0  # attempt_index * base
    NAVIGATION_TIMEOUT_SECONDS: float = 45.0
    REQUEST_DEADLINE_SECONDS: float = 90.0
    FETCH_JITTER_MAX_SECONDS: float = 1.0
    WAIT_CONDITIONS: str = "domcontentloaded,load"  # Comma-separated page.goto wait_until values

    # Fetch mode: "browser", "http" (lightweight fallback only) or "auto"
    FETCH_MODE: str = "auto"
    HTTP_MAX_REDIRECTS: int = 5

    # Result cache
    CACHE_TTL_SECONDS: int = 60 * 60  # 1 hour
    DEFAULT_AVAILABILITY: str = "unknown"
    CACHE_BACKEND: str = "file"  # "memory", "file" or "redis"
    CACHE_DIR: str = "cache"
    REDIS_URL: str = "redis://localhost:6379/0"

    # Combined export
    EXPORT_DIR: str = "exports"
    EXPORT_INTERVAL_MINUTES: int = 60  # 0 disables the periodic job

    # Extractors
    DEFAULT_SITE: str = "myntra"

    @field_validator("FETCH_MODE")
    @classmethod
    def check_fetch_mode(cls, value: str) -> str:
        value = value.lower()
        if value not in ("browser", "http", "auto"):
            raise ValueError(f"Invalid FETCH_MODE: {value}")
        return value

    @field_validator("CACHE_BACKEND")
    @classmethod
    def check_cache_backend(cls, value: str) -> str:
        value = value.lower()
        if value not in ("memory", "file", "redis"):
            raise ValueError(f"Invalid CACHE_BACKEND: {value}")
        return value

    @field_validator("DEFAULT_AVAILABILITY")
    @classmethod
    def check_default_availability(cls, value: str) -> str:
        value = value.lower()
        if value not in ("in_stock", "out_of_stock", "unknown"):
            raise ValueError(f"Invalid DEFAULT_AVAILABILITY: {value}")
        return value

    def get_wait_conditions(self) -> List[str]:
        """Parse WAIT_CONDITIONS into a list of page.goto wait_until values.

        Returns:
            List of wait conditions, ["domcontentloaded"] if none are set
        """
        conditions = [c.strip() for c in self.WAIT_CONDITIONS.split(",") if c.strip()]
        return conditions or ["domcontentloaded"]


settings = Settings()
