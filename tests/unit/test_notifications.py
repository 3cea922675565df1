"""Unit tests for notification content, context, feedback, insights and sinks."""

import asyncio
from datetime import datetime, timedelta

import pytest

from src.gaps.models import ActivityType, Gap, GapQuality
from src.notifications import (
    CallbackSink,
    DecisionContextBuilder,
    HistoryStoreError,
    InMemoryHistoryStore,
    NotificationAction,
    NotificationFeedbackHandler,
    NotificationKind,
    NotificationRecord,
    PolicyLevel,
    QueueSink,
    build_engagement_decision,
    build_gap_decision,
    compute_insights,
)
from src.scheduling import StaticActivityState

NOW = datetime(2024, 3, 5, 10, 0)


def _gap(starts_in: timedelta, minutes: int = 4) -> Gap:
    start = NOW + starts_in
    return Gap(
        start=start,
        end=start + timedelta(minutes=minutes),
        duration=timedelta(minutes=minutes),
        quality=GapQuality.EXCELLENT,
        suggested_activity=ActivityType.HIIT,
    )


def _record(kind=NotificationKind.GAP_REMINDER, minutes_ago=60, **kw):
    return NotificationRecord(kind=kind, sent_at=NOW - timedelta(minutes=minutes_ago), **kw)


class TestContent:
    def test_gap_decision_text_and_payload(self) -> None:
        gap = _gap(timedelta(minutes=20))

        decision = build_gap_decision(NotificationKind.PERFECT_GAP, gap, NOW)

        assert decision.title == "Perfect timing!"
        assert decision.body == (
            "You've got 4 minutes before your next meeting. "
            "How about a quick HIIT session?"
        )
        assert decision.trigger_at == gap.start - timedelta(minutes=5)
        assert decision.gap == gap
        assert decision.payload == {
            "gap_id": gap.id,
            "workout_type": "hiit",
            "duration_seconds": 240,
            "notification_type": "perfect_gap",
            "category": "WORKOUT_REMINDER",
        }

    def test_trigger_is_never_in_the_past(self) -> None:
        gap = _gap(timedelta(minutes=2))

        decision = build_gap_decision(NotificationKind.GAP_REMINDER, gap, NOW)

        assert decision.trigger_at == NOW

    def test_streak_decision(self) -> None:
        decision = build_engagement_decision(NotificationKind.STREAK_RISK, NOW)

        assert decision.title == "Your streak is counting on you"
        assert decision.payload["category"] == "STREAK_REMINDER"
        assert decision.gap is None


class TestDecisionContextBuilder:
    @pytest.mark.asyncio
    async def test_without_history_uses_neutral_response_rate(self) -> None:
        builder = DecisionContextBuilder(
            InMemoryHistoryStore(), StaticActivityState(streak=4)
        )

        context = await builder.build(NOW)

        assert context.response_rate == 0.5
        assert context.recent_ignored_count == 0
        assert context.last_notification_time is None
        assert context.current_streak == 4

    @pytest.mark.asyncio
    async def test_rates_and_counts_from_history(self) -> None:
        records = [_record(minutes_ago=600 + i, was_ignored=True) for i in range(12)]
        records += [
            _record(minutes_ago=30, was_opened=True),
            _record(minutes_ago=20, was_ignored=True),
        ]
        activity = StaticActivityState(streak=2, last_activity_at=NOW - timedelta(hours=6))
        builder = DecisionContextBuilder(InMemoryHistoryStore(records), activity)
        gap = _gap(timedelta(minutes=10))

        context = await builder.build(NOW, upcoming_gap=gap)

        assert context.response_rate == pytest.approx(1 / 14)
        # the ten most recent records include 9 ignored and 1 opened
        assert context.recent_ignored_count == 9
        assert context.last_notification_time == NOW - timedelta(minutes=20)
        assert context.hours_since_last_activity == pytest.approx(6)
        assert context.upcoming_gap == gap

    @pytest.mark.asyncio
    async def test_unreadable_history_degrades_to_empty(self) -> None:
        class BrokenStore(InMemoryHistoryStore):
            async def _load_records(self):
                raise HistoryStoreError("unreadable")

        builder = DecisionContextBuilder(BrokenStore(), StaticActivityState())

        context = await builder.build(NOW)

        assert context.response_rate == 0.5


class TestFeedbackHandler:
    @pytest.mark.asyncio
    async def test_start_and_default_mark_opened(self) -> None:
        history = InMemoryHistoryStore(
            [_record(minutes_ago=30), _record(minutes_ago=10)]
        )
        handler = NotificationFeedbackHandler(history, clock=lambda: NOW)
        decision = build_gap_decision(
            NotificationKind.GAP_REMINDER, _gap(timedelta(minutes=20)), NOW
        )

        await handler.handle_action("start_workout", decision)
        await handler.handle_action(NotificationAction.DEFAULT, decision)

        records = await history.recent_records(datetime.min)
        assert all(record.was_opened for record in records)

    @pytest.mark.asyncio
    async def test_dismiss_marks_ignored(self) -> None:
        history = InMemoryHistoryStore([_record(NotificationKind.STREAK_RISK)])
        handler = NotificationFeedbackHandler(history)
        decision = build_engagement_decision(NotificationKind.STREAK_RISK, NOW)

        result = await handler.handle_action("dismiss_workout", decision)

        assert result is None
        records = await history.recent_records(datetime.min)
        assert records[0].was_ignored

    @pytest.mark.asyncio
    async def test_snooze_reschedules_without_touching_history(self) -> None:
        history = InMemoryHistoryStore([_record()])
        handler = NotificationFeedbackHandler(history, clock=lambda: NOW)
        decision = build_gap_decision(
            NotificationKind.GAP_REMINDER, _gap(timedelta(minutes=20)), NOW
        )

        snoozed = await handler.handle_action("snooze_workout", decision)

        assert snoozed is not None
        assert snoozed.trigger_at == NOW + timedelta(minutes=30)
        assert snoozed.id != decision.id
        assert snoozed.body == decision.body
        records = await history.recent_records(datetime.min)
        assert not records[0].is_resolved

    @pytest.mark.asyncio
    async def test_unknown_action_is_ignored(self) -> None:
        history = InMemoryHistoryStore([_record()])
        handler = NotificationFeedbackHandler(history)
        decision = build_engagement_decision(NotificationKind.GAP_REMINDER, NOW)

        assert await handler.handle_action("share", decision) is None
        records = await history.recent_records(datetime.min)
        assert not records[0].is_resolved


class TestInsights:
    def test_counts_and_rates(self) -> None:
        records = [
            _record(minutes_ago=60, was_opened=True),
            _record(minutes_ago=120, was_opened=True),
            _record(minutes_ago=180, was_ignored=True),
            _record(minutes_ago=240),
            _record(minutes_ago=60 * 24 * 40, was_opened=True),
        ]

        insights = compute_insights(records, NOW, days=30)

        assert insights.total_sent == 4
        assert insights.total_opened == 2
        assert insights.total_ignored == 1
        assert insights.response_rate == pytest.approx(0.5)
        assert insights.ignore_rate == pytest.approx(0.25)
        assert insights.average_per_day == pytest.approx(4 / 30)
        assert insights.recommended_level == PolicyLevel.BALANCED

    def test_mostly_ignored_history_recommends_minimal(self) -> None:
        records = [_record(minutes_ago=i * 60, was_ignored=True) for i in range(1, 9)]
        records += [_record(minutes_ago=600), _record(minutes_ago=660)]

        insights = compute_insights(records, NOW)

        assert insights.ignore_rate == pytest.approx(0.8)
        assert insights.recommended_level == PolicyLevel.MINIMAL


class TestSinks:
    @pytest.mark.asyncio
    async def test_callback_sink_accepts_sync_and_async_callables(self) -> None:
        received = []

        async def async_callback(decision):
            received.append(("async", decision.kind))

        decision = build_engagement_decision(NotificationKind.DAILY_CHECK, NOW)
        await CallbackSink(lambda d: received.append(("sync", d.kind))).deliver(decision)
        await CallbackSink(async_callback).deliver(decision)

        assert received == [
            ("sync", NotificationKind.DAILY_CHECK),
            ("async", NotificationKind.DAILY_CHECK),
        ]

    @pytest.mark.asyncio
    async def test_queue_sink_publishes_decisions(self) -> None:
        sink = QueueSink()
        decision = build_engagement_decision(NotificationKind.STREAK_RISK, NOW)

        await sink.deliver(decision)

        assert await asyncio.wait_for(sink.queue.get(), timeout=1) == decision
