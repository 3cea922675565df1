"""Merge calendar events coming from several sources into one timeline."""

from collections.abc import Sequence

import structlog

from src.gaps.models import CalendarEvent

logger = structlog.get_logger(__name__)


class EventMerger:
    """Deduplicate and order events from multiple calendar sources.

    The same meeting often shows up in two connected calendars. Two events
    are duplicates when their titles match case-insensitively and they start
    in the same minute; the copy from the earlier source list wins.
    """

    def merge(
        self, event_lists: Sequence[Sequence[CalendarEvent]]
    ) -> list[CalendarEvent]:
        accepted: list[CalendarEvent] = []
        seen: set[tuple[str, object]] = set()
        dropped = 0

        for events in event_lists:
            for event in events:
                key = event.duplicate_key()
                if key in seen:
                    dropped += 1
                    continue
                seen.add(key)
                accepted.append(event)

        # sort is stable, so equal start times keep source order
        accepted.sort(key=lambda event: event.start_time)

        if dropped:
            logger.debug(
                "Dropped duplicate calendar events",
                duplicates=dropped,
                merged=len(accepted),
            )
        return accepted
