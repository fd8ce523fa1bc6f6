"""
Configuration management using pydantic-settings.

Loads runner settings from TOOLS_RUNNER_* environment variables. These
control where the cache lives and how it is maintained; the per-project
tool definition lives in the project's .toolsEnv file (see environment.py).
"""

from __future__ import annotations

from datetime import timedelta
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runner settings loaded from environment variables.

    Optional (all prefixed with TOOLS_RUNNER_):
        HOME_DIR: Root for config.json and the cache/ directory
        RETENTION_DAYS: Days since last use before a cache slot is swept
        SWEEP_ON_RUN: Run the retention sweep after each resolution
        ENV_FILENAME: Project config file name
        ENV_DIR_VARIABLE: Env var that receives the project directory
        UNZIP_PATH: Archive extraction tool
        FETCH_TIMEOUT: Download timeout in seconds
        LOG_LEVEL: Console logging level
        LOG_FILE: Optional JSON-lines log file
    """

    model_config = SettingsConfigDict(
        env_prefix="TOOLS_RUNNER_",
        extra="ignore",
    )

    HOME_DIR: Path = Field(
        default_factory=lambda: Path.home() / ".toolsRunner",
        description="Root directory for the cache index and cache slots",
    )
    RETENTION_DAYS: int = Field(
        default=30, ge=1, description="Retention window for unused cache slots"
    )
    SWEEP_ON_RUN: bool = Field(
        default=True, description="Sweep stale cache slots after each run"
    )

    ENV_FILENAME: str = Field(
        default=".toolsEnv", min_length=1, description="Project config file name"
    )
    ENV_DIR_VARIABLE: str = Field(
        default="TOOLS_EVN_DIR",
        min_length=1,
        description="Environment variable passed to the tool with the project directory",
    )

    UNZIP_PATH: str = Field(default="unzip", description="Archive extraction tool")
    FETCH_TIMEOUT: float = Field(
        default=60.0, gt=0.0, description="Download timeout in seconds"
    )

    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="WARNING", description="Logging level"
    )
    LOG_FILE: Path | None = Field(default=None, description="JSON-lines log file")

    @field_validator("HOME_DIR", "LOG_FILE")
    @classmethod
    def expand_user(cls, v: Path | None) -> Path | None:
        """Expand ~ in configured paths."""
        return v.expanduser() if v is not None else None

    @property
    def index_path(self) -> Path:
        """Path of the persisted cache index."""
        return self.HOME_DIR / "config.json"

    @property
    def cache_dir(self) -> Path:
        """Directory holding one subdirectory per cache slot."""
        return self.HOME_DIR / "cache"

    @property
    def retention(self) -> timedelta:
        """Retention window as a timedelta."""
        return timedelta(days=self.RETENTION_DAYS)

    def display(self) -> dict[str, str | int | float | bool | None]:
        """Return settings for display."""
        return {
            "HOME_DIR": str(self.HOME_DIR),
            "RETENTION_DAYS": self.RETENTION_DAYS,
            "SWEEP_ON_RUN": self.SWEEP_ON_RUN,
            "ENV_FILENAME": self.ENV_FILENAME,
            "ENV_DIR_VARIABLE": self.ENV_DIR_VARIABLE,
            "UNZIP_PATH": self.UNZIP_PATH,
            "FETCH_TIMEOUT": self.FETCH_TIMEOUT,
            "LOG_LEVEL": self.LOG_LEVEL,
            "LOG_FILE": str(self.LOG_FILE) if self.LOG_FILE else None,
        }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings singleton.

    Returns:
        Settings instance loaded from environment.

    Raises:
        ValidationError: If settings are invalid.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache (useful for testing)."""
    get_settings.cache_clear()
