"""Calendar gap detection: merging, detection and classification."""

from src.gaps.classifier import GapQualityClassifier
from src.gaps.detector import GapDetector
from src.gaps.merger import EventMerger
from src.gaps.models import (
    ActivityType,
    CalendarEvent,
    Gap,
    GapKind,
    GapQuality,
    InvalidWindowError,
    TimeWindow,
)

__all__ = [
    "ActivityType",
    "CalendarEvent",
    "EventMerger",
    "Gap",
    "GapDetector",
    "GapKind",
    "GapQuality",
    "GapQualityClassifier",
    "InvalidWindowError",
    "TimeWindow",
]
