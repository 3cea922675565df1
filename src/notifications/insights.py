"""Engagement statistics over the notification history."""

from collections.abc import Sequence
from datetime import datetime, timedelta

from src.notifications.models import NotificationInsights, NotificationRecord
from src.notifications.rules import recommend_level

DEFAULT_PERIOD_DAYS = 30


def compute_insights(
    records: Sequence[NotificationRecord],
    now: datetime,
    days: int = DEFAULT_PERIOD_DAYS,
) -> NotificationInsights:
    """Summarize the last ``days`` days of notifications.

    The recommended level is advisory; it is never applied automatically.
    """
    since = now - timedelta(days=days)
    window = [record for record in records if since <= record.sent_at <= now]

    total_sent = len(window)
    total_opened = sum(1 for record in window if record.was_opened)
    total_ignored = sum(1 for record in window if record.was_ignored)

    response_rate = total_opened / total_sent if total_sent else 0.0
    ignore_rate = total_ignored / total_sent if total_sent else 0.0

    return NotificationInsights(
        period_days=days,
        total_sent=total_sent,
        total_opened=total_opened,
        total_ignored=total_ignored,
        response_rate=response_rate,
        ignore_rate=ignore_rate,
        average_per_day=total_sent / days if days > 0 else 0.0,
        recommended_level=recommend_level(response_rate, ignore_rate),
    )
