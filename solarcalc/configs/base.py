"""
Shared settings for the solar calculator backend.

Every settings group reads the same ``.env`` file and ignores keys that
belong to other groups. The root log level lives here because the API,
the queue workers and the Excel automation all log through it.

Dependencies: pydantic, pydantic_settings
System role: Common base of the settings groups
"""

import logging
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings as PydanticBaseSettings, SettingsConfigDict

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class BaseSettings(PydanticBaseSettings):
    """Settings read from the environment and ``.env``."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    log_level: LogLevel = Field(
        default="INFO",
        description="Root log level for the API, the operation queue and PowerShell runs",
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def normalise_log_level(cls, value: str | int) -> str:
        """Accept ``debug``/``Info`` or numeric levels as well as upper-case names."""
        if isinstance(value, int):
            return logging.getLevelName(value)
        return str(value).strip().upper()
