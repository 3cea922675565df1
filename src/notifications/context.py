"""Assemble the per-evaluation ``DecisionContext``."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from src.gaps.models import Gap
from src.notifications.history import HistoryStoreError, NotificationHistoryStore
from src.notifications.models import DecisionContext, NotificationRecord
from src.utils.error_handler import ErrorHandler

if TYPE_CHECKING:
    from src.scheduling.activity import ActivityStateProvider

RESPONSE_RATE_PERIOD = timedelta(days=30)
RECENT_RECORD_COUNT = 10
DEFAULT_RESPONSE_RATE = 0.5


class DecisionContextBuilder:
    """Derives engagement figures from history and activity from a provider."""

    def __init__(
        self, history: NotificationHistoryStore, activity: ActivityStateProvider
    ) -> None:
        self.history = history
        self.activity = activity

    async def build(
        self, now: datetime, upcoming_gap: Gap | None = None
    ) -> DecisionContext:
        records = await self._load_records(now)
        recent = records[-RECENT_RECORD_COUNT:]

        return DecisionContext(
            now=now,
            last_notification_time=max(
                (record.sent_at for record in records), default=None
            ),
            response_rate=response_rate(records),
            recent_ignored_count=sum(1 for record in recent if record.was_ignored),
            current_streak=await self.activity.current_streak(),
            hours_since_last_activity=(
                await self.activity.hours_since_last_activity(now)
            ),
            upcoming_gap=upcoming_gap,
        )

    async def _load_records(self, now: datetime) -> list[NotificationRecord]:
        try:
            records = await self.history.recent_records(now - RESPONSE_RATE_PERIOD)
        except HistoryStoreError as e:
            return ErrorHandler.log_and_return_default(
                "read notification history", e, []
            )
        return sorted(records, key=lambda record: record.sent_at)


def response_rate(records: list[NotificationRecord]) -> float:
    """Share of notifications the user opened; 0.5 without any history."""
    if not records:
        return DEFAULT_RESPONSE_RATE
    return sum(1 for record in records if record.was_opened) / len(records)
