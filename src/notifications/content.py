"""Title, body and payload of outgoing notifications."""

from datetime import datetime, timedelta

from src.gaps.models import ActivityType, Gap
from src.notifications.models import NotificationDecision, NotificationKind

WORKOUT_CATEGORY = "WORKOUT_REMINDER"
STREAK_CATEGORY = "STREAK_REMINDER"

# Gap notifications fire shortly before the gap opens
LEAD_TIME = timedelta(minutes=5)


def trigger_time(gap: Gap, now: datetime) -> datetime:
    """When to deliver a gap notification; never earlier than ``now``."""
    return max(now, gap.start - LEAD_TIME)


def build_gap_decision(
    kind: NotificationKind, gap: Gap, now: datetime
) -> NotificationDecision:
    activity = gap.suggested_activity or ActivityType.STRETCHING
    title = "Perfect timing!"
    if kind == NotificationKind.GAP_REMINDER:
        title = "Time for a quick break"

    return NotificationDecision(
        kind=kind,
        title=title,
        body=(
            f"You've got {gap.minutes} minutes before your next meeting. "
            f"How about a quick {activity.display_name} session?"
        ),
        trigger_at=trigger_time(gap, now),
        gap=gap,
        payload={
            "gap_id": gap.id,
            "workout_type": activity.value,
            "duration_seconds": int(gap.duration.total_seconds()),
            "notification_type": kind.value,
            "category": WORKOUT_CATEGORY,
        },
    )


def build_engagement_decision(
    kind: NotificationKind, now: datetime
) -> NotificationDecision:
    if kind == NotificationKind.STREAK_RISK:
        title = "Your streak is counting on you"
        body = "Just a few minutes today keeps your momentum going strong 🔥"
    else:
        title = "Got a minute?"
        body = "A short stretch is all it takes to get moving again today."

    return NotificationDecision(
        kind=kind,
        title=title,
        body=body,
        trigger_at=now,
        payload={"notification_type": kind.value, "category": STREAK_CATEGORY},
    )
