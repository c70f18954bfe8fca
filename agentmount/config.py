"""
Host configuration via pydantic-settings.

Settings are loaded from environment variables prefixed with ``AGENTMOUNT_``
(or a .env file in dev). Plugin resource configuration lives here too, keyed
by each manifest's ``config_key``; the plugin config resolver reads it and
layers programmatic overrides on top.
"""

from __future__ import annotations

from enum import StrEnum
from functools import lru_cache
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(StrEnum):
    DEV = "dev"
    PROD = "prod"
    TEST = "test"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="AGENTMOUNT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ------------------------------------------------------------------ #
    # Application
    # ------------------------------------------------------------------ #
    environment: Environment = Environment.DEV
    debug: bool = False

    # ------------------------------------------------------------------ #
    # Logging
    # ------------------------------------------------------------------ #
    log_level: str = Field(
        default="INFO",
        description="Minimum log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    log_json: bool = Field(
        default=False,
        description="Render logs as JSON (production) instead of the dev console format",
    )

    # ------------------------------------------------------------------ #
    # Scheduling
    # ------------------------------------------------------------------ #
    default_timezone: str = Field(
        default="Etc/UTC",
        description="Timezone for plugin schedules that do not declare one",
    )

    # ------------------------------------------------------------------ #
    # Plugin resource configuration
    # ------------------------------------------------------------------ #
    plugin_config: dict[str, dict[str, Any]] = Field(
        default_factory=dict,
        description=(
            "Resource configuration per plugin config_key, e.g. "
            'AGENTMOUNT_PLUGIN_CONFIG=\'{"slack": {"token": "xoxb-..."}}\''
        ),
    )
    plugin_config_file: Path | None = Field(
        default=None,
        description=(
            "Optional JSON file with the same shape as plugin_config. "
            "Environment values win over file values."
        ),
    )

    @field_validator("log_level")
    @classmethod
    def _validate_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {value!r}")
        return level

    @field_validator("default_timezone")
    @classmethod
    def _validate_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"Unknown timezone: {value!r}") from exc
        return value

    @property
    def is_dev(self) -> bool:
        return self.environment in (Environment.DEV, Environment.TEST)

    @property
    def is_prod(self) -> bool:
        return self.environment == Environment.PROD


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings singleton.

    Call directly at composition time (agent class definition, scripts).
    Tests clear the cache with ``get_settings.cache_clear()``.
    """
    return Settings()
