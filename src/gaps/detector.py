"""Free interval detection over a merged event timeline."""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta

import structlog

from src.gaps.models import CalendarEvent, Gap, GapKind, InvalidWindowError, TimeWindow

logger = structlog.get_logger(__name__)

DEFAULT_MIN_GAP = timedelta(seconds=60)
DEFAULT_MAX_GAP = timedelta(seconds=300)


@dataclass
class BusyInterval:
    """A stretch of the window occupied by one or more events."""

    start: datetime
    end: datetime
    source_ids: set[str] = field(default_factory=set)


class GapDetector:
    """Find micro-workout sized gaps in a sorted list of events.

    Four cases are considered: before the first busy interval (lead),
    between consecutive busy intervals, after the last one (trail), and the
    whole window when nothing is scheduled. Every reported duration lies in
    ``[min_gap, max_gap]``; lead and empty-window gaps longer than
    ``max_gap`` are reported capped.

    With ``coalesce_overlaps`` enabled, overlapping or nested events are
    folded into a single busy interval first, so reported gaps never overlap
    an event. Disabling it compares each event only with its successor.
    """

    def __init__(
        self,
        min_gap: timedelta = DEFAULT_MIN_GAP,
        max_gap: timedelta = DEFAULT_MAX_GAP,
        coalesce_overlaps: bool = True,
    ) -> None:
        if min_gap <= timedelta(0) or min_gap > max_gap:
            raise ValueError("min_gap must be positive and not exceed max_gap")
        self.min_gap = min_gap
        self.max_gap = max_gap
        self.coalesce_overlaps = coalesce_overlaps

    def find_gaps(
        self,
        events: Sequence[CalendarEvent],
        window: TimeWindow,
        source_ids: Iterable[str] = (),
    ) -> list[Gap]:
        if window.end <= window.start:
            raise InvalidWindowError("Gap detection needs a window with end > start")

        busy = self._busy_intervals(events, window)
        gaps: list[Gap] = []

        if not busy:
            window_length = window.end - window.start
            if window_length >= self.min_gap:
                all_sources = set(source_ids) | {e.source_id for e in events}
                gaps.append(
                    self._make_gap(
                        window.start,
                        window.end,
                        GapKind.EMPTY_WINDOW,
                        all_sources,
                    )
                )
            logger.debug("No busy intervals in window", gaps=len(gaps))
            return gaps

        first = busy[0]
        if first.start - window.start >= self.min_gap:
            gaps.append(
                self._make_gap(window.start, first.start, GapKind.LEAD, first.source_ids)
            )

        for current, following in zip(busy, busy[1:]):
            if self._in_bounds(following.start - current.end):
                gaps.append(
                    self._make_gap(
                        current.end,
                        following.start,
                        GapKind.BETWEEN,
                        current.source_ids | following.source_ids,
                    )
                )

        last = busy[-1]
        if self._in_bounds(window.end - last.end):
            gaps.append(
                self._make_gap(last.end, window.end, GapKind.TRAIL, last.source_ids)
            )

        logger.debug(
            "Gap detection complete",
            events=len(events),
            busy_intervals=len(busy),
            gaps=len(gaps),
        )
        return gaps

    def _busy_intervals(
        self, events: Sequence[CalendarEvent], window: TimeWindow
    ) -> list[BusyInterval]:
        intervals: list[BusyInterval] = []

        for event in sorted(events, key=lambda e: e.start_time):
            if event.end_time is None:
                logger.debug(
                    "Skipping event without end time",
                    event_id=event.id,
                    source_id=event.source_id,
                )
                continue
            if event.end_time < event.start_time:
                logger.debug(
                    "Skipping event that ends before it starts",
                    event_id=event.id,
                    source_id=event.source_id,
                )
                continue
            if event.end_time <= window.start or event.start_time >= window.end:
                continue

            start = max(event.start_time, window.start)
            end = min(event.end_time, window.end)

            if self.coalesce_overlaps and intervals and start <= intervals[-1].end:
                merged = intervals[-1]
                merged.end = max(merged.end, end)
                merged.source_ids.add(event.source_id)
                continue

            intervals.append(BusyInterval(start, end, {event.source_id}))

        return intervals

    def _in_bounds(self, duration: timedelta) -> bool:
        return self.min_gap <= duration <= self.max_gap

    def _make_gap(
        self,
        start: datetime,
        end: datetime,
        kind: GapKind,
        source_ids: Iterable[str],
    ) -> Gap:
        free = end - start
        return Gap(
            start=start,
            end=end,
            duration=min(free, self.max_gap),
            kind=kind,
            capped=free > self.max_gap,
            source_ids=frozenset(source_ids),
        )
