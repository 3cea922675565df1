"""Calendar and gap data models."""

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class InvalidWindowError(ValueError):
    """Raised when a time window does not end after it starts"""


class GapQuality(str, Enum):
    """Gap quality, ordered from worst to best."""

    POOR = "poor"
    FAIR = "fair"
    GOOD = "good"
    EXCELLENT = "excellent"

    @property
    def rank(self) -> int:
        return _QUALITY_RANK[self]

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, GapQuality):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other: object) -> bool:
        if not isinstance(other, GapQuality):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, GapQuality):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, GapQuality):
            return NotImplemented
        return self.rank >= other.rank


_QUALITY_RANK = {
    GapQuality.POOR: 0,
    GapQuality.FAIR: 1,
    GapQuality.GOOD: 2,
    GapQuality.EXCELLENT: 3,
}


class ActivityType(str, Enum):
    """Suggested micro-workout categories."""

    BREATHING = "breathing"
    STRETCHING = "stretching"
    HIIT = "hiit"
    CARDIO = "cardio"
    STRENGTH = "strength"
    FAMILY_FRIENDLY = "family_friendly"

    @property
    def display_name(self) -> str:
        return _ACTIVITY_DISPLAY_NAMES[self]


_ACTIVITY_DISPLAY_NAMES = {
    ActivityType.BREATHING: "breathing",
    ActivityType.STRETCHING: "stretching",
    ActivityType.HIIT: "HIIT",
    ActivityType.CARDIO: "cardio",
    ActivityType.STRENGTH: "strength",
    ActivityType.FAMILY_FRIENDLY: "family challenge",
}


class GapKind(str, Enum):
    """Where a gap sits relative to the busy intervals of a window."""

    LEAD = "lead"
    BETWEEN = "between"
    TRAIL = "trail"
    EMPTY_WINDOW = "empty_window"


class CalendarEvent(BaseModel):
    """A single event as reported by one calendar source."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Source specific event id")
    title: str = Field(default="", description="Event title")
    start_time: datetime
    end_time: datetime | None = Field(
        None, description="Missing end times are skipped by the detector"
    )
    is_all_day: bool = False
    source_id: str = Field(..., description="Calendar source that supplied it")

    def duplicate_key(self) -> tuple[str, datetime]:
        """Key under which two events count as the same meeting."""
        return (
            self.title.strip().casefold(),
            self.start_time.replace(second=0, microsecond=0),
        )


@dataclass(frozen=True)
class TimeWindow:
    """Half-open scan window; ``end`` must be after ``start``."""

    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        if self.end <= self.start:
            raise InvalidWindowError(
                f"Window end {self.end.isoformat()} is not after start "
                f"{self.start.isoformat()}"
            )

    @classmethod
    def from_now(cls, now: datetime, hours: float) -> "TimeWindow":
        return cls(start=now, end=now + timedelta(hours=hours))


class Gap(BaseModel):
    """A free interval eligible as a micro-workout suggestion.

    ``duration`` equals ``end - start`` unless ``capped`` is set, in which
    case the free interval was longer than the maximum suggestion length and
    ``duration`` holds that maximum.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    start: datetime
    end: datetime
    duration: timedelta
    kind: GapKind = GapKind.BETWEEN
    capped: bool = False
    quality: GapQuality | None = None
    suggested_activity: ActivityType | None = None
    source_ids: frozenset[str] = Field(default_factory=frozenset)

    @property
    def minutes(self) -> int:
        return int(self.duration.total_seconds() // 60)

    @property
    def is_classified(self) -> bool:
        return self.quality is not None and self.suggested_activity is not None
