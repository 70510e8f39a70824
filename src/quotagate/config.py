"""Configuration module using Pydantic Settings."""

import logging
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class Settings(BaseSettings):
    """Limiter settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="QUOTAGATE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Logging
    log_level: str = "INFO"

    # Scheduling loop
    poll_interval: float = 0.1  # Fallback admission re-check (seconds)

    # Default quota used when a limiter is created without one
    default_concurrency: int | None = None
    default_rate: int | None = None
    default_interval: float | None = None  # Seconds
    default_max_delay: float = 0.0  # Seconds, 0 = wait forever


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def configure_logging(settings: Settings | None = None) -> None:
    """
    Configure root logging for applications embedding the limiter.

    The library itself never calls this; it only emits records through
    module-level loggers.

    Args:
        settings: Settings to read the log level from (cached settings if None)
    """
    settings = settings or get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format=LOG_FORMAT,
    )
