"""Translate user responses to delivered notifications into history updates."""

import uuid
from collections.abc import Callable
from datetime import datetime, timedelta
from enum import Enum

from src.notifications.history import (
    NotificationHistoryStore,
    mark_ignored,
    mark_opened,
)
from src.notifications.models import (
    NotificationDecision,
    NotificationKind,
    NotificationRecord,
)
from src.utils.mixins import LoggerMixin

SNOOZE_DELAY = timedelta(minutes=30)


class NotificationAction(str, Enum):
    START_WORKOUT = "start_workout"
    SNOOZE_WORKOUT = "snooze_workout"
    DISMISS_WORKOUT = "dismiss_workout"
    DEFAULT = "default"
    DISMISS = "dismiss"


_OPENING_ACTIONS = {NotificationAction.START_WORKOUT, NotificationAction.DEFAULT}
_IGNORING_ACTIONS = {NotificationAction.DISMISS_WORKOUT, NotificationAction.DISMISS}


class NotificationFeedbackHandler(LoggerMixin):
    def __init__(
        self,
        history: NotificationHistoryStore,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.history = history
        self.clock = clock

    async def handle_action(
        self, action: NotificationAction | str, decision: NotificationDecision
    ) -> NotificationDecision | None:
        """Apply a delivery action.

        Returns the rescheduled decision for a snooze, otherwise ``None``.
        Unknown actions are logged and ignored.
        """
        try:
            action = NotificationAction(action)
        except ValueError:
            self.logger.debug("Unknown notification action", action=str(action))
            return None

        if action in _OPENING_ACTIONS:
            await self.record_opened(decision.kind)
        elif action in _IGNORING_ACTIONS:
            await self.record_ignored(decision.kind)
        elif action == NotificationAction.SNOOZE_WORKOUT:
            return self.snooze(decision)
        return None

    def snooze(self, decision: NotificationDecision) -> NotificationDecision:
        snoozed = decision.model_copy(
            update={
                "id": str(uuid.uuid4()),
                "trigger_at": self.clock() + SNOOZE_DELAY,
            }
        )
        self.logger.info(
            "Notification snoozed",
            kind=decision.kind.value,
            trigger_at=snoozed.trigger_at.isoformat(),
        )
        return snoozed

    async def record_opened(self, kind: NotificationKind) -> NotificationRecord | None:
        record = await self.history.update_latest(kind, mark_opened)
        if record is not None:
            self.logger.info("Notification opened", kind=kind.value)
        return record

    async def record_ignored(self, kind: NotificationKind) -> NotificationRecord | None:
        record = await self.history.update_latest(kind, mark_ignored)
        if record is not None:
            self.logger.info("Notification ignored", kind=kind.value)
        return record
