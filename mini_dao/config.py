"""Connection settings loaded from environment variables."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """Database handle settings (``MINI_DAO_DB_*`` environment variables)."""

    model_config = SettingsConfigDict(
        env_prefix="MINI_DAO_DB_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    backend: Literal["sqlite", "postgres", "mysql"] = "mysql"
    host: str = "localhost"
    port: int = 3306
    username: str = "root"
    password: str = ""
    # For sqlite this is the database file path.
    database_name: str = ""

    max_size: int = Field(default=20, ge=1)
    acquire_timeout: float | None = Field(default=None, gt=0)


@lru_cache(maxsize=1)
def get_settings() -> DatabaseSettings:
    """Get the cached settings instance."""
    return DatabaseSettings()


def reset_settings() -> None:
    """Reset cached settings (for testing)."""
    get_settings.cache_clear()
