"""Gap scan orchestration."""

from src.scheduling.activity import ActivityStateProvider, StaticActivityState
from src.scheduling.service import GapSchedulingService, ScanResult, ScanState

__all__ = [
    "ActivityStateProvider",
    "GapSchedulingService",
    "ScanResult",
    "ScanState",
    "StaticActivityState",
]
