"""Notification policy, history and decision models."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, time, timedelta
from enum import Enum
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field

from src.gaps.models import Gap

if TYPE_CHECKING:
    from src.config.settings import Settings


class PolicyLevel(str, Enum):
    """How many notifications a user is willing to receive per day."""

    OFF = "off"
    MINIMAL = "minimal"
    BALANCED = "balanced"
    AGGRESSIVE = "aggressive"

    @property
    def max_daily_notifications(self) -> int:
        return _DAILY_CAPS[self]


_DAILY_CAPS = {
    PolicyLevel.OFF: 0,
    PolicyLevel.MINIMAL: 1,
    PolicyLevel.BALANCED: 2,
    PolicyLevel.AGGRESSIVE: 3,
}


class BudgetCategory(str, Enum):
    """Daily budgets are counted per category, not per kind."""

    GAP_SUGGESTION = "gap_suggestion"
    STREAK = "streak"
    CHECK_IN = "check_in"


class NotificationKind(str, Enum):
    GAP_REMINDER = "gap_reminder"
    STREAK_RISK = "streak_risk"
    PERFECT_GAP = "perfect_gap"
    DAILY_CHECK = "daily_check"

    @property
    def category(self) -> BudgetCategory:
        return _KIND_CATEGORIES[self]


_KIND_CATEGORIES = {
    NotificationKind.GAP_REMINDER: BudgetCategory.GAP_SUGGESTION,
    NotificationKind.PERFECT_GAP: BudgetCategory.GAP_SUGGESTION,
    NotificationKind.STREAK_RISK: BudgetCategory.STREAK,
    NotificationKind.DAILY_CHECK: BudgetCategory.CHECK_IN,
}


class NotificationRecord(BaseModel):
    """One sent notification and what the user did with it."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    kind: NotificationKind
    sent_at: datetime
    was_opened: bool = False
    was_ignored: bool = False

    @property
    def is_resolved(self) -> bool:
        return self.was_opened or self.was_ignored


class NotificationPolicy(BaseModel):
    """User-owned notification configuration."""

    level: PolicyLevel = PolicyLevel.BALANCED
    quiet_hours_enabled: bool = True
    quiet_hours_start: time = time(22, 0)
    quiet_hours_end: time = time(7, 0)

    @property
    def max_daily_notifications(self) -> int:
        return self.level.max_daily_notifications

    @classmethod
    def from_settings(cls, settings: Settings) -> NotificationPolicy:
        return cls(
            level=PolicyLevel(settings.notification_level),
            quiet_hours_enabled=settings.quiet_hours_enabled,
            quiet_hours_start=settings.quiet_hours_start,
            quiet_hours_end=settings.quiet_hours_end,
        )


@dataclass(frozen=True)
class DecisionContext:
    """Per-evaluation snapshot of user state; never persisted."""

    now: datetime
    last_notification_time: datetime | None = None
    response_rate: float = 0.5
    recent_ignored_count: int = 0
    current_streak: int = 0
    hours_since_last_activity: float = 0.0
    upcoming_gap: Gap | None = None

    def has_upcoming_gap(
        self, min_duration: timedelta, within: timedelta | None = None
    ) -> bool:
        gap = self.upcoming_gap
        if gap is None or gap.duration < min_duration:
            return False
        if gap.start < self.now:
            return False
        if within is not None and gap.start - self.now > within:
            return False
        return True


class NotificationDecision(BaseModel):
    """An authorized notification handed to the delivery sink."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    kind: NotificationKind
    title: str
    body: str
    trigger_at: datetime
    gap: Gap | None = None
    payload: dict[str, Any] = Field(default_factory=dict)


class NotificationInsights(BaseModel):
    """Engagement summary over a trailing period."""

    period_days: int
    total_sent: int
    total_opened: int
    total_ignored: int
    response_rate: float
    ignore_rate: float
    average_per_day: float
    recommended_level: PolicyLevel
