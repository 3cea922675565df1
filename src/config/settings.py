"""Configuration settings for the gap engine with caching utilities."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from datetime import time
from pathlib import Path
from threading import RLock
from typing import Any

from pydantic import SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Gap scanning and notification settings"""

    model_config = SettingsConfigDict(
        env_file=[".env.test", ".env"],
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Notification policy
    notification_level: str = "balanced"  # off / minimal / balanced / aggressive
    quiet_hours_enabled: bool = True
    quiet_hours_start: time = time(22, 0)
    quiet_hours_end: time = time(7, 0)

    # Gap detection
    min_gap_seconds: int = 60
    max_gap_seconds: int = 300
    scan_window_hours: int = 48
    skip_all_day_events: bool = False

    # Calendar sources
    source_fetch_timeout_seconds: float = 30.0
    google_calendar_access_token: SecretStr | None = None
    google_calendar_ids: str = "primary"

    # Notification history
    history_file: Path = Path("./data/notification_history.json")
    history_max_records: int = 1000

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"

    @field_validator("notification_level")
    @classmethod
    def validate_notification_level(cls, v: str) -> str:
        level = v.strip().lower()
        if level not in {"off", "minimal", "balanced", "aggressive"}:
            raise ValueError(f"Unknown notification level: {v}")
        return level

    @model_validator(mode="after")
    def validate_gap_bounds(self) -> Settings:
        if self.min_gap_seconds <= 0:
            raise ValueError("min_gap_seconds must be positive")
        if self.min_gap_seconds > self.max_gap_seconds:
            raise ValueError("min_gap_seconds must not exceed max_gap_seconds")
        if self.scan_window_hours <= 0:
            raise ValueError("scan_window_hours must be positive")
        return self

    def get_google_calendar_ids(self) -> list[str]:
        """Return configured Google calendar ids, deduplicated in order"""
        ids: list[str] = []
        for raw in self.google_calendar_ids.split(","):
            calendar_id = raw.strip()
            if calendar_id and calendar_id not in ids:
                ids.append(calendar_id)
        return ids


_SETTINGS_LOCK = RLock()
_SETTINGS_CACHE: Settings | None = None


def get_settings(*, refresh: bool = False) -> Settings:
    """Return a cached ``Settings`` instance.

    Parameters
    ----------
    refresh:
        When ``True`` the cached instance is discarded and a new one is created.
    """

    global _SETTINGS_CACHE

    with _SETTINGS_LOCK:
        if refresh or _SETTINGS_CACHE is None:
            _SETTINGS_CACHE = Settings()
        return _SETTINGS_CACHE


def clear_settings_cache() -> None:
    """Clear the cached settings instance."""

    global _SETTINGS_CACHE

    with _SETTINGS_LOCK:
        _SETTINGS_CACHE = None


get_settings.cache_clear = clear_settings_cache  # type: ignore[attr-defined]


@contextmanager
def override_settings(**overrides: Any) -> Iterator[Settings]:
    """Temporarily override the cached settings within a context."""

    global _SETTINGS_CACHE

    with _SETTINGS_LOCK:
        previous_settings = _SETTINGS_CACHE

    base_settings = previous_settings or Settings()
    patched_settings = base_settings.model_copy(update=overrides)

    with _SETTINGS_LOCK:
        _SETTINGS_CACHE = patched_settings

    try:
        yield patched_settings
    finally:
        with _SETTINGS_LOCK:
            _SETTINGS_CACHE = previous_settings
