"""
Calendar source base classes

Every calendar provider implements ``CalendarEventSource``; the scheduling
service only talks to this interface.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum
from typing import Any

import structlog
from pydantic import BaseModel, Field

from src.gaps.models import CalendarEvent, TimeWindow

logger = structlog.get_logger(__name__)


class SourceFetchError(Exception):
    """A calendar provider could not deliver events for a window"""

    def __init__(self, message: str, source_id: str | None = None):
        super().__init__(message)
        self.source_id = source_id


class CalendarAuthorizationError(SourceFetchError):
    """A calendar provider rejected our credentials or has none"""


class SourceStatus(str, Enum):
    """Source status"""

    DISABLED = "disabled"
    ENABLED = "enabled"
    AUTHORIZED = "authorized"
    ERROR = "error"


class SourceMetrics(BaseModel):
    """Per-source fetch statistics"""

    source_id: str
    total_fetches: int = Field(default=0, description="Completed fetches")
    total_events: int = Field(default=0, description="Events returned overall")
    last_fetch_at: datetime | None = Field(None, description="Last successful fetch")
    last_fetch_duration: float | None = Field(
        None, description="Last fetch duration (seconds)"
    )

    total_errors: int = Field(default=0, description="Failed fetches")
    recent_errors: list[str] = Field(default_factory=list, description="Recent errors")


class CalendarEventSource(ABC):
    """Base class for calendar providers"""

    def __init__(self, source_id: str, enabled: bool = True):
        self.source_id = source_id
        self.enabled = enabled
        self.logger = structlog.get_logger(__name__, source_id=source_id)
        self.metrics = SourceMetrics(source_id=source_id)
        self._last_error: str | None = None

    @abstractmethod
    async def fetch_events(self, window: TimeWindow) -> list[CalendarEvent]:
        """Return the events overlapping ``window``.

        Raises ``SourceFetchError`` (or ``CalendarAuthorizationError``) when
        the provider cannot answer.
        """

    async def is_authorized(self) -> bool:
        """Whether the source currently has access to its calendar"""
        return self.enabled

    async def close(self) -> None:
        """Release network resources, if any"""

    def record_fetch(self, event_count: int, duration: float) -> None:
        self.metrics.total_fetches += 1
        self.metrics.total_events += event_count
        self.metrics.last_fetch_at = datetime.now()
        self.metrics.last_fetch_duration = duration
        self._last_error = None

    def add_error(self, error_message: str) -> None:
        """Record a failed fetch"""
        self._last_error = error_message
        self.metrics.total_errors += 1
        self.metrics.recent_errors.append(
            f"{datetime.now().isoformat()}: {error_message}"
        )

        # keep the 10 most recent errors only
        if len(self.metrics.recent_errors) > 10:
            self.metrics.recent_errors = self.metrics.recent_errors[-10:]

        self.logger.warning("Calendar source error", error=error_message)

    def get_status(self) -> SourceStatus:
        if not self.enabled:
            return SourceStatus.DISABLED
        elif self._last_error:
            return SourceStatus.ERROR
        elif self.metrics.total_fetches:
            return SourceStatus.AUTHORIZED
        else:
            return SourceStatus.ENABLED

    def get_health_info(self) -> dict[str, Any]:
        return {
            "source_id": self.source_id,
            "status": self.get_status().value,
            "last_fetch": self.metrics.last_fetch_at.isoformat()
            if self.metrics.last_fetch_at
            else None,
            "total_events": self.metrics.total_events,
            "recent_errors": len(self.metrics.recent_errors),
        }


class InMemoryCalendarSource(CalendarEventSource):
    """Source backed by a fixed list of events, e.g. manual entries"""

    def __init__(
        self,
        source_id: str,
        events: list[CalendarEvent] | None = None,
        enabled: bool = True,
    ):
        super().__init__(source_id, enabled)
        self._events: list[CalendarEvent] = list(events or [])

    def add_event(self, event: CalendarEvent) -> None:
        self._events.append(event)

    async def fetch_events(self, window: TimeWindow) -> list[CalendarEvent]:
        if not self.enabled:
            raise CalendarAuthorizationError(
                "Source is disabled", source_id=self.source_id
            )
        selected = [
            event
            for event in self._events
            if event.start_time < window.end
            and (event.end_time is None or event.end_time > window.start)
        ]
        self.record_fetch(len(selected), 0.0)
        return selected
