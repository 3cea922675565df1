"""User activity state consumed by the notification rules."""

from abc import ABC, abstractmethod
from datetime import datetime


class ActivityStateProvider(ABC):
    """Supplies workout streak data, e.g. from a workout tracker"""

    @abstractmethod
    async def current_streak(self) -> int:
        """Consecutive days with at least one workout"""

    @abstractmethod
    async def hours_since_last_activity(self, now: datetime) -> float:
        """Hours elapsed since the last completed workout"""


class StaticActivityState(ActivityStateProvider):
    """Fixed activity state, for tests and the command line"""

    def __init__(
        self, streak: int = 0, last_activity_at: datetime | None = None
    ) -> None:
        self.streak = streak
        self.last_activity_at = last_activity_at

    async def current_streak(self) -> int:
        return self.streak

    async def hours_since_last_activity(self, now: datetime) -> float:
        if self.last_activity_at is None:
            return 0.0
        return max(0.0, (now - self.last_activity_at).total_seconds() / 3600)
