"""Gap quality scoring and activity suggestion."""

import random
from collections.abc import Iterable

from src.gaps.models import ActivityType, Gap, GapQuality
from src.utils.mixins import LoggerMixin

# Hours of day (inclusive) in which a 3-5 minute gap is rated excellent
ACTIVE_HOURS = range(6, 21)

_ACTIVITY_CANDIDATES: dict[int, tuple[ActivityType, ...]] = {
    1: (ActivityType.BREATHING,),
    2: (ActivityType.STRETCHING,),
    3: (ActivityType.HIIT, ActivityType.CARDIO),
    4: (ActivityType.STRENGTH, ActivityType.FAMILY_FRIENDLY, ActivityType.STRETCHING),
    5: (ActivityType.STRENGTH, ActivityType.FAMILY_FRIENDLY, ActivityType.STRETCHING),
}


class GapQualityClassifier(LoggerMixin):
    """Score gaps by length and time of day, and suggest an activity.

    Where several activities fit a gap length one is picked at random for
    variety. Pass a seeded ``random.Random`` to make the pick reproducible.
    """

    def __init__(self, rng: random.Random | None = None) -> None:
        self.rng = rng or random.Random()

    def classify(self, gap: Gap) -> tuple[GapQuality, ActivityType]:
        minutes = gap.minutes
        return self.quality_for(minutes, gap.start.hour), self.suggest_activity(
            minutes
        )

    def quality_for(self, minutes: int, hour: int) -> GapQuality:
        if 3 <= minutes <= 5:
            if hour in ACTIVE_HOURS:
                return GapQuality.EXCELLENT
            return GapQuality.GOOD
        if minutes == 2:
            return GapQuality.GOOD
        if minutes == 1:
            return GapQuality.FAIR
        return GapQuality.POOR

    def suggest_activity(self, minutes: int) -> ActivityType:
        candidates = _ACTIVITY_CANDIDATES.get(minutes)
        if not candidates:
            return ActivityType.STRETCHING
        if len(candidates) == 1:
            return candidates[0]
        return self.rng.choice(candidates)

    def apply(self, gap: Gap) -> Gap:
        """Return a classified copy of ``gap``."""
        quality, activity = self.classify(gap)
        return gap.model_copy(
            update={"quality": quality, "suggested_activity": activity}
        )

    def apply_all(self, gaps: Iterable[Gap]) -> list[Gap]:
        classified = [self.apply(gap) for gap in gaps]
        if classified:
            distribution: dict[str, int] = {}
            for gap in classified:
                label = gap.quality.value if gap.quality else "unclassified"
                distribution[label] = distribution.get(label, 0) + 1
            self.logger.debug("Gap quality distribution", **distribution)
        return classified
