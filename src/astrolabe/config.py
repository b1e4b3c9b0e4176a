"""Application configuration from environment variables."""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Engine settings loaded from environment variables."""

    # External calculator
    swetest_path: str = Field(default="/usr/local/bin/swetest", alias="SWEPH_PATH")
    sweph_data_path: str = Field(default="", alias="SWEPH_DATA_PATH")

    # Subprocess limits
    ephemeris_timeout_seconds: float = Field(default=15.0, gt=0, alias="EPHEMERIS_TIMEOUT_SECONDS")
    ephemeris_max_concurrency: int = Field(default=4, ge=1, alias="EPHEMERIS_MAX_CONCURRENCY")

    # Charts
    default_house_system: str = Field(default="P", alias="DEFAULT_HOUSE_SYSTEM")

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def reset_settings_cache() -> None:
    """Clear cached settings (useful in tests)."""
    get_settings.cache_clear()
