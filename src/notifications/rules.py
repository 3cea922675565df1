"""Notification rule engine.

Decides whether a notification of a given kind may be sent right now. The
gate runs in a fixed order and stops at the first failing check:

1. notifications are not switched off
2. the daily budget of the kind's category is not used up
3. the current time is outside quiet hours
4. the user is not ignoring notifications (engagement guard)
5. at least 30 minutes passed since any notification
6. a rule of this kind is out of its cooldown and
7. that rule's trigger condition holds
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime, time, timedelta

import structlog

from src.gaps.models import GapQuality
from src.notifications.history import HistoryStoreError, NotificationHistoryStore
from src.notifications.models import (
    DecisionContext,
    NotificationKind,
    NotificationPolicy,
    NotificationRecord,
    PolicyLevel,
)
from src.utils.error_handler import ErrorHandler

GLOBAL_COOLDOWN = timedelta(minutes=30)
ENGAGEMENT_IGNORE_THRESHOLD = 3
ENGAGEMENT_MIN_RESPONSE_RATE = 0.3


@dataclass(frozen=True)
class NotificationRule:
    """Trigger condition for one notification kind."""

    id: str
    kind: NotificationKind
    priority: int
    cooldown: timedelta
    condition: Callable[[DecisionContext], bool]


@dataclass(frozen=True)
class RuleVerdict:
    allowed: bool
    reason: str
    rule_id: str | None = None


def _streak_at_risk(context: DecisionContext) -> bool:
    return context.hours_since_last_activity > 20 and context.current_streak > 3


def _perfect_gap_soon(context: DecisionContext) -> bool:
    return context.has_upcoming_gap(timedelta(minutes=5), within=timedelta(hours=1))


def _needs_daily_check(context: DecisionContext) -> bool:
    return context.hours_since_last_activity > 24 and context.current_streak == 0


def _usable_gap_ahead(context: DecisionContext) -> bool:
    gap = context.upcoming_gap
    if gap is None or gap.quality is None or gap.quality < GapQuality.FAIR:
        return False
    return context.has_upcoming_gap(timedelta(minutes=1))


DEFAULT_RULES: tuple[NotificationRule, ...] = (
    NotificationRule(
        id="streak_risk",
        kind=NotificationKind.STREAK_RISK,
        priority=1,
        cooldown=timedelta(hours=12),
        condition=_streak_at_risk,
    ),
    NotificationRule(
        id="perfect_gap",
        kind=NotificationKind.PERFECT_GAP,
        priority=2,
        cooldown=timedelta(hours=24),
        condition=_perfect_gap_soon,
    ),
    NotificationRule(
        id="daily_check",
        kind=NotificationKind.DAILY_CHECK,
        priority=3,
        cooldown=timedelta(hours=48),
        condition=_needs_daily_check,
    ),
    NotificationRule(
        id="gap_reminder",
        kind=NotificationKind.GAP_REMINDER,
        priority=4,
        cooldown=timedelta(hours=1),
        condition=_usable_gap_ahead,
    ),
)


def is_in_quiet_hours(now: datetime, start: time, end: time) -> bool:
    """Whether ``now`` falls in the quiet window ``[start, end)``.

    A window whose start is later than its end spans midnight. Equal start
    and end mean there is no quiet window.
    """
    current = now.hour * 60 + now.minute
    start_minutes = start.hour * 60 + start.minute
    end_minutes = end.hour * 60 + end.minute

    if start_minutes == end_minutes:
        return False
    if start_minutes < end_minutes:
        return start_minutes <= current < end_minutes
    return current >= start_minutes or current < end_minutes


def recommend_level(response_rate: float, ignore_rate: float) -> PolicyLevel:
    """Suggest a policy level from engagement rates. Advisory only."""
    if ignore_rate > 0.7 or response_rate < 0.1:
        return PolicyLevel.MINIMAL
    if response_rate > 0.6 and ignore_rate < 0.2:
        return PolicyLevel.AGGRESSIVE
    return PolicyLevel.BALANCED


class NotificationRuleEngine:
    def __init__(
        self,
        rules: Sequence[NotificationRule] = DEFAULT_RULES,
        global_cooldown: timedelta = GLOBAL_COOLDOWN,
    ) -> None:
        self.rules = tuple(sorted(rules, key=lambda rule: rule.priority))
        self.global_cooldown = global_cooldown
        self.logger = structlog.get_logger(__name__)

    @property
    def history_horizon(self) -> timedelta:
        """How far back history must reach to judge every cooldown."""
        longest = max((rule.cooldown for rule in self.rules), default=timedelta(0))
        return max(longest, self.global_cooldown)

    def rules_for(self, kind: NotificationKind) -> list[NotificationRule]:
        return [rule for rule in self.rules if rule.kind == kind]

    def evaluate(
        self,
        kind: NotificationKind,
        context: DecisionContext,
        policy: NotificationPolicy,
        records: Sequence[NotificationRecord],
    ) -> RuleVerdict:
        """Decide whether ``kind`` may be sent given the sent ``records``.

        Gates run in order: policy off, daily budget, quiet hours, engagement
        guard, global cooldown, rule cooldown, rule condition. The first gate
        that fails names the verdict's reason.

        The daily budget is counted per ``BudgetCategory`` rather than over
        all kinds together, so a streak reminder never uses up the budget of
        gap suggestions and vice versa.
        """
        now = context.now

        if policy.level == PolicyLevel.OFF:
            return self._deny(kind, "notifications_off")

        today = now.date()
        sent_today = sum(
            1
            for record in records
            if record.sent_at.date() == today and record.kind.category == kind.category
        )
        if sent_today >= policy.max_daily_notifications:
            return self._deny(kind, "daily_limit", sent_today=sent_today)

        if policy.quiet_hours_enabled and is_in_quiet_hours(
            now, policy.quiet_hours_start, policy.quiet_hours_end
        ):
            return self._deny(kind, "quiet_hours")

        if (
            context.recent_ignored_count >= ENGAGEMENT_IGNORE_THRESHOLD
            and context.response_rate < ENGAGEMENT_MIN_RESPONSE_RATE
        ):
            return self._deny(
                kind,
                "low_engagement",
                ignored=context.recent_ignored_count,
                response_rate=context.response_rate,
            )

        last_sent = context.last_notification_time
        if last_sent is not None and now - last_sent < self.global_cooldown:
            return self._deny(kind, "global_cooldown")

        last_of_kind = max(
            (record.sent_at for record in records if record.kind == kind),
            default=None,
        )
        reason = "no_rule"
        for rule in self.rules_for(kind):
            if last_of_kind is not None and now - last_of_kind < rule.cooldown:
                reason = "rule_cooldown"
                continue
            if rule.condition(context):
                self.logger.debug(
                    "Notification authorized", kind=kind.value, rule_id=rule.id
                )
                return RuleVerdict(True, "authorized", rule.id)
            reason = "condition_not_met"

        return self._deny(kind, reason)

    async def should_send(
        self,
        kind: NotificationKind,
        context: DecisionContext,
        policy: NotificationPolicy,
        history: NotificationHistoryStore,
    ) -> bool:
        return (await self.check(kind, context, policy, history)).allowed

    async def check(
        self,
        kind: NotificationKind,
        context: DecisionContext,
        policy: NotificationPolicy,
        history: NotificationHistoryStore,
    ) -> RuleVerdict:
        """Like ``evaluate`` but reads the needed history from the store.

        An unreadable history is treated as empty.
        """
        start_of_day = context.now.replace(hour=0, minute=0, second=0, microsecond=0)
        since = min(start_of_day, context.now - self.history_horizon)
        try:
            records = await history.recent_records(since)
        except HistoryStoreError as e:
            records = ErrorHandler.log_and_return_default(
                "read notification history", e, [], kind=kind.value
            )
        return self.evaluate(kind, context, policy, records)

    def _deny(
        self, kind: NotificationKind, reason: str, **details: object
    ) -> RuleVerdict:
        self.logger.debug(
            "Notification suppressed", kind=kind.value, reason=reason, **details
        )
        return RuleVerdict(False, reason)
