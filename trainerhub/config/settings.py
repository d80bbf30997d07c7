from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application
    APP_VERSION: str = "0.3.0"
    APP_ENV: Literal["development", "staging", "production"] = "development"
    DEBUG: bool = False

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./trainerhub.db"
    DB_POOL_SIZE: int = 20
    DB_MAX_OVERFLOW: int = 10

    # Redis (per-trainer locks, Celery broker)
    REDIS_URL: str = "redis://localhost:6379/0"

    # Per-trainer lock held across availability check and write
    TRAINER_LOCK_TIMEOUT_SECONDS: int = 30  # auto-release if the holder dies
    TRAINER_LOCK_BLOCKING_TIMEOUT_SECONDS: int = 10  # how long a caller waits

    # Expiration sweep
    BOOKING_SWEEP_INTERVAL_SECONDS: int = 300
    BOOKING_SWEEP_MAX_RETRIES: int = 3

    # Assignments. None means a trainer may serve any number of colleges.
    MAX_COLLEGES_PER_TRAINER: int | None = None

    # Observability (GlitchTip/Sentry)
    GLITCHTIP_DSN: str = ""
    GLITCHTIP_TRACES_SAMPLE_RATE: float = 0.2
    GLITCHTIP_PROFILES_SAMPLE_RATE: float = 0.1

    @property
    def is_development(self) -> bool:
        return self.APP_ENV == "development"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
