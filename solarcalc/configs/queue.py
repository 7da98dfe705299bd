"""
Operation queue and user session settings.

Concurrency limits per operation category, session expiry and the
root directory for per-user working folders.

Dependencies: pydantic, pydantic_settings
System role: Session/queue configuration
"""

from pathlib import Path

from pydantic import Field
from pydantic_settings import SettingsConfigDict

from solarcalc.configs.base import BaseSettings


class QueueSettings(BaseSettings):
    """Per-category concurrency limits and session lifecycle."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="QUEUE_",
        case_sensitive=False,
        extra="ignore",
    )

    max_concurrent_com: int = Field(default=5, ge=1, description="Concurrent COM (Excel/PowerPoint) operations")
    max_concurrent_non_com: int = Field(default=15, ge=1, description="Concurrent file/PDF operations")
    max_concurrent_database: int = Field(default=20, ge=1, description="Concurrent database operations")
    max_concurrent_api: int = Field(default=10, ge=1, description="Concurrent outbound API operations")

    session_timeout_seconds: float = Field(
        default=30 * 60,
        gt=0,
        description="Idle time after which a user session expires",
    )
    cleanup_interval_seconds: float = Field(
        default=5 * 60,
        gt=0,
        description="Interval between expired-session sweeps",
    )
    base_working_dir: Path = Field(
        default=Path("."),
        description="Root under which user-sessions/<user>/<session> folders are created",
    )
    record_operations: bool = Field(
        default=True,
        description="Persist request lifecycle transitions to the operations table",
    )

    def concurrency_limits(self) -> dict[str, int]:
        """
        Limits keyed by operation type value.

        Returns:
            dict[str, int]: e.g. {"com": 5, "non-com": 15, ...}
        """
        return {
            "com": self.max_concurrent_com,
            "non-com": self.max_concurrent_non_com,
            "database": self.max_concurrent_database,
            "api": self.max_concurrent_api,
        }
