"""Unit tests for event merging, gap detection and gap classification."""

import random
from datetime import datetime, timedelta

import pytest

from src.gaps import (
    ActivityType,
    EventMerger,
    GapDetector,
    GapKind,
    GapQuality,
    GapQualityClassifier,
    InvalidWindowError,
    TimeWindow,
)
from src.gaps.models import Gap


def _gap(start: datetime, minutes: float) -> Gap:
    duration = timedelta(minutes=minutes)
    return Gap(start=start, end=start + duration, duration=duration)


class TestEventMerger:
    def test_duplicate_standup_from_two_sources_is_kept_once(
        self, make_event, base_time
    ) -> None:
        standup = base_time.replace(hour=9)
        source_a = [make_event(standup, 15, "Standup", "A")]
        source_b = [make_event(standup, 15, "Standup", "B")]

        merged = EventMerger().merge([source_a, source_b])

        assert [event.title for event in merged] == ["Standup"]
        assert merged[0].source_id == "A"

    def test_titles_compare_case_insensitively_within_same_minute(
        self, make_event, base_time
    ) -> None:
        first = make_event(base_time, 30, "Design Review", "A")
        second = make_event(base_time + timedelta(seconds=40), 30, "design review ", "B")

        assert len(EventMerger().merge([[first], [second]])) == 1

    def test_same_title_at_different_minutes_is_not_duplicate(
        self, make_event, base_time
    ) -> None:
        first = make_event(base_time, 30, "Sync", "A")
        second = make_event(base_time + timedelta(minutes=1), 30, "Sync", "B")

        assert len(EventMerger().merge([[first], [second]])) == 2

    def test_result_sorted_with_ties_in_source_order(
        self, make_event, base_time
    ) -> None:
        late = make_event(base_time + timedelta(hours=2), 30, "Late", "A")
        tie_a = make_event(base_time, 30, "Alpha", "A")
        tie_b = make_event(base_time, 30, "Beta", "B")

        merged = EventMerger().merge([[late, tie_a], [tie_b]])

        assert [event.title for event in merged] == ["Alpha", "Beta", "Late"]

    def test_merge_is_idempotent(self, make_event, base_time) -> None:
        merger = EventMerger()
        a = [
            make_event(base_time, 30, "Standup", "A"),
            make_event(base_time + timedelta(hours=1), 60, "Lunch", "A"),
        ]
        b = [
            make_event(base_time, 30, "standup", "B"),
            make_event(base_time + timedelta(minutes=45), 10, "Call", "B"),
        ]

        once = merger.merge([a, b])
        twice = merger.merge([once])

        assert twice == once


class TestGapDetector:
    def test_empty_calendar_yields_one_window_gap(self, base_time) -> None:
        window = TimeWindow(base_time, base_time + timedelta(seconds=300))

        gaps = GapDetector().find_gaps([], window)

        assert len(gaps) == 1
        assert gaps[0].kind == GapKind.EMPTY_WINDOW
        assert gaps[0].duration == timedelta(seconds=300)
        assert not gaps[0].capped

    def test_between_gap_for_two_short_events(self, make_event, base_time) -> None:
        events = [
            make_event(base_time, 2, "First"),
            make_event(base_time + timedelta(minutes=5), 1, "Second"),
        ]
        window = TimeWindow(base_time, base_time + timedelta(minutes=10))

        gaps = GapDetector().find_gaps(events, window)

        assert len(gaps) == 1
        gap = gaps[0]
        assert gap.kind == GapKind.BETWEEN
        assert gap.start == base_time + timedelta(minutes=2)
        assert gap.end == base_time + timedelta(minutes=5)
        assert gap.duration == timedelta(seconds=180)

    def test_long_empty_window_is_capped(self, base_time) -> None:
        window = TimeWindow.from_now(base_time, hours=48)

        gaps = GapDetector().find_gaps([], window)

        assert len(gaps) == 1
        assert gaps[0].duration == timedelta(seconds=300)
        assert gaps[0].capped
        assert gaps[0].end == window.end

    def test_lead_gap_is_capped_and_long_between_gap_dropped(
        self, make_event, base_time
    ) -> None:
        events = [
            make_event(base_time + timedelta(minutes=20), 30),
            make_event(base_time + timedelta(minutes=80), 30),
        ]
        window = TimeWindow(base_time, base_time + timedelta(minutes=113))

        gaps = GapDetector().find_gaps(events, window)

        assert [gap.kind for gap in gaps] == [GapKind.LEAD, GapKind.TRAIL]
        lead, trail = gaps
        assert lead.capped and lead.duration == timedelta(minutes=5)
        assert trail.duration == timedelta(minutes=3)

    def test_gap_durations_stay_within_bounds(self, make_event, base_time) -> None:
        rng = random.Random(7)
        events = []
        cursor = base_time + timedelta(minutes=2)
        for _ in range(40):
            cursor += timedelta(seconds=rng.randint(0, 600))
            events.append(make_event(cursor, rng.randint(1, 20)))
            cursor += timedelta(minutes=1)
        window = TimeWindow(base_time, cursor + timedelta(hours=1))

        gaps = GapDetector().find_gaps(events, window)

        assert gaps[0].kind == GapKind.LEAD
        for gap in gaps:
            assert timedelta(seconds=60) <= gap.duration <= timedelta(seconds=300)

    def test_too_short_gap_is_not_reported(self, make_event, base_time) -> None:
        events = [
            make_event(base_time, 10),
            make_event(base_time + timedelta(minutes=10, seconds=30), 10),
        ]
        window = TimeWindow(base_time, base_time + timedelta(minutes=21))

        assert GapDetector().find_gaps(events, window) == []

    def test_events_without_end_time_are_skipped(self, make_event, base_time) -> None:
        events = [
            make_event(base_time, 2, "Has end"),
            make_event(base_time + timedelta(minutes=3), None, "No end"),
            make_event(base_time + timedelta(minutes=6), 4, "Later"),
        ]
        window = TimeWindow(base_time, base_time + timedelta(minutes=10))

        gaps = GapDetector().find_gaps(events, window)

        assert len(gaps) == 1
        assert gaps[0].start == base_time + timedelta(minutes=2)
        assert gaps[0].end == base_time + timedelta(minutes=6)

    def test_nested_event_does_not_open_a_gap(self, make_event, base_time) -> None:
        events = [
            make_event(base_time, 60, "Workshop"),
            make_event(base_time + timedelta(minutes=10), 5, "Side chat"),
            make_event(base_time + timedelta(minutes=62), 30, "Next"),
        ]
        window = TimeWindow(base_time, base_time + timedelta(minutes=92))

        gaps = GapDetector().find_gaps(events, window)

        assert len(gaps) == 1
        assert gaps[0].start == base_time + timedelta(minutes=60)
        assert gaps[0].end == base_time + timedelta(minutes=62)

    def test_without_coalescing_nested_event_reports_overlapping_gap(
        self, make_event, base_time
    ) -> None:
        events = [
            make_event(base_time, 60, "Workshop"),
            make_event(base_time + timedelta(minutes=10), 5, "Side chat"),
            make_event(base_time + timedelta(minutes=18), 30, "Inside too"),
        ]
        window = TimeWindow(base_time, base_time + timedelta(minutes=60))

        gaps = GapDetector(coalesce_overlaps=False).find_gaps(events, window)

        assert [(gap.start, gap.end) for gap in gaps] == [
            (base_time + timedelta(minutes=15), base_time + timedelta(minutes=18))
        ]

    def test_events_are_clipped_to_window(self, make_event, base_time) -> None:
        events = [
            make_event(base_time - timedelta(minutes=30), 33, "Started earlier"),
            make_event(base_time + timedelta(minutes=7), 60, "Runs past end"),
        ]
        window = TimeWindow(base_time, base_time + timedelta(minutes=20))

        gaps = GapDetector().find_gaps(events, window)

        assert len(gaps) == 1
        assert gaps[0].kind == GapKind.BETWEEN
        assert gaps[0].duration == timedelta(minutes=4)

    def test_gap_records_bounding_sources(self, make_event, base_time) -> None:
        events = [
            make_event(base_time, 2, "A", source_id="work"),
            make_event(base_time + timedelta(minutes=5), 5, "B", source_id="family"),
        ]
        window = TimeWindow(base_time, base_time + timedelta(minutes=10))

        gaps = GapDetector().find_gaps(events, window)

        assert gaps[0].source_ids == frozenset({"work", "family"})

    def test_window_must_end_after_start(self, base_time) -> None:
        with pytest.raises(InvalidWindowError):
            TimeWindow(base_time, base_time)

    def test_detector_rejects_inverted_bounds(self) -> None:
        with pytest.raises(ValueError):
            GapDetector(min_gap=timedelta(minutes=10), max_gap=timedelta(minutes=5))


class TestGapQualityClassifier:
    @pytest.mark.parametrize("hour", range(6, 21))
    def test_three_to_five_minutes_in_active_hours_is_excellent(self, hour) -> None:
        classifier = GapQualityClassifier(random.Random(1))
        for minutes in (3, 4, 5):
            gap = _gap(datetime(2024, 3, 5, hour, 30), minutes)
            quality, _ = classifier.classify(gap)
            assert quality == GapQuality.EXCELLENT

    def test_quality_table(self) -> None:
        classifier = GapQualityClassifier()

        assert classifier.quality_for(4, 22) == GapQuality.GOOD
        assert classifier.quality_for(3, 5) == GapQuality.GOOD
        assert classifier.quality_for(2, 12) == GapQuality.GOOD
        assert classifier.quality_for(1, 12) == GapQuality.FAIR
        assert classifier.quality_for(0, 12) == GapQuality.POOR
        assert classifier.quality_for(6, 12) == GapQuality.POOR

    def test_minutes_are_rounded_down(self) -> None:
        gap = _gap(datetime(2024, 3, 5, 10, 0), 2.9)

        quality, activity = GapQualityClassifier().classify(gap)

        assert quality == GapQuality.GOOD
        assert activity == ActivityType.STRETCHING

    def test_fixed_activity_suggestions(self) -> None:
        classifier = GapQualityClassifier()

        assert classifier.suggest_activity(1) == ActivityType.BREATHING
        assert classifier.suggest_activity(2) == ActivityType.STRETCHING
        assert classifier.suggest_activity(9) == ActivityType.STRETCHING

    def test_random_suggestion_comes_from_candidates(self) -> None:
        classifier = GapQualityClassifier(random.Random(3))

        picks = {classifier.suggest_activity(3) for _ in range(50)}
        assert picks <= {ActivityType.HIIT, ActivityType.CARDIO}

        picks = {classifier.suggest_activity(5) for _ in range(50)}
        assert picks <= {
            ActivityType.STRENGTH,
            ActivityType.FAMILY_FRIENDLY,
            ActivityType.STRETCHING,
        }

    def test_seeded_rng_is_reproducible(self) -> None:
        first = GapQualityClassifier(random.Random(42))
        second = GapQualityClassifier(random.Random(42))

        assert [first.suggest_activity(4) for _ in range(20)] == [
            second.suggest_activity(4) for _ in range(20)
        ]

    def test_apply_all_returns_classified_copies(self) -> None:
        gaps = [_gap(datetime(2024, 3, 5, 9, 0), 4), _gap(datetime(2024, 3, 5, 23, 0), 1)]

        classified = GapQualityClassifier(random.Random(0)).apply_all(gaps)

        assert all(gap.is_classified for gap in classified)
        assert [gap.quality for gap in classified] == [GapQuality.EXCELLENT, GapQuality.FAIR]
        assert gaps[0].quality is None

    def test_quality_ordering(self) -> None:
        assert GapQuality.POOR < GapQuality.FAIR < GapQuality.GOOD < GapQuality.EXCELLENT
        assert max([GapQuality.GOOD, GapQuality.EXCELLENT, GapQuality.FAIR]) == (
            GapQuality.EXCELLENT
        )
