"""Calendar event sources."""

from src.calendar_sources.base import (
    CalendarAuthorizationError,
    CalendarEventSource,
    InMemoryCalendarSource,
    SourceFetchError,
    SourceMetrics,
    SourceStatus,
)
from src.calendar_sources.google_calendar import GoogleCalendarSource
from src.calendar_sources.registry import (
    SourceRegistry,
    register_source,
    source_registry,
)

register_source("google_calendar", GoogleCalendarSource.from_settings)

__all__ = [
    "CalendarAuthorizationError",
    "CalendarEventSource",
    "GoogleCalendarSource",
    "InMemoryCalendarSource",
    "SourceFetchError",
    "SourceMetrics",
    "SourceRegistry",
    "SourceStatus",
    "register_source",
    "source_registry",
]
