"""
Configuration and settings for the time capsule backend.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Any, Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_MESSAGE_CHECK_INTERVAL_MS = 60000


class Settings(BaseSettings):
    """Environment-backed settings for the API and the delivery scheduler."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    api_prefix: str = Field(default="/api")

    # Database (Postgres expected)
    database_url: Optional[str] = Field(default=None)

    # Development toggles
    use_in_memory_backends: bool = Field(
        default=False,
        validation_alias=AliasChoices(
            "TIMECAPSULE_USE_IN_MEMORY_BACKENDS", "use_in_memory_backends"
        ),
    )

    # Sweep lock (Redis). Without a URL the lock is process-local.
    redis_url: Optional[str] = Field(default=None)
    delivery_lock_key: str = Field(default="timecapsule:delivery-sweep")
    delivery_lock_ttl_seconds: int = Field(default=300, ge=1)

    # Delivery scheduler, interval in milliseconds
    message_check_interval: int = Field(default=DEFAULT_MESSAGE_CHECK_INTERVAL_MS)
    delivery_call_timeout_seconds: float = Field(default=5.0, gt=0)
    run_scheduler_in_app: bool = Field(default=False)

    # Identity provider (Supabase auth)
    supabase_url: Optional[str] = Field(default=None)
    supabase_service_role_key: Optional[str] = Field(default=None)

    log_level: str = Field(default="INFO")

    @field_validator("message_check_interval", mode="before")
    @classmethod
    def _parse_interval(cls, value: Any) -> int:
        # Blank or garbage values fall back to one minute.
        try:
            interval = int(str(value).strip())
        except (TypeError, ValueError):
            return DEFAULT_MESSAGE_CHECK_INTERVAL_MS
        if interval <= 0:
            return DEFAULT_MESSAGE_CHECK_INTERVAL_MS
        return interval

    @property
    def message_check_interval_seconds(self) -> float:
        return self.message_check_interval / 1000.0


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
