"""Notification policy, history and decision making."""

from src.notifications.content import (
    build_engagement_decision,
    build_gap_decision,
    trigger_time,
)
from src.notifications.context import DecisionContextBuilder
from src.notifications.feedback import NotificationAction, NotificationFeedbackHandler
from src.notifications.history import (
    HistoryStoreError,
    InMemoryHistoryStore,
    JsonFileHistoryStore,
    NotificationHistoryStore,
    mark_ignored,
    mark_opened,
)
from src.notifications.insights import compute_insights
from src.notifications.models import (
    BudgetCategory,
    DecisionContext,
    NotificationDecision,
    NotificationInsights,
    NotificationKind,
    NotificationPolicy,
    NotificationRecord,
    PolicyLevel,
)
from src.notifications.rules import (
    DEFAULT_RULES,
    NotificationRule,
    NotificationRuleEngine,
    RuleVerdict,
    is_in_quiet_hours,
    recommend_level,
)
from src.notifications.sink import CallbackSink, NotificationDeliverySink, QueueSink

__all__ = [
    "DEFAULT_RULES",
    "BudgetCategory",
    "CallbackSink",
    "DecisionContext",
    "DecisionContextBuilder",
    "HistoryStoreError",
    "InMemoryHistoryStore",
    "JsonFileHistoryStore",
    "NotificationAction",
    "NotificationDecision",
    "NotificationDeliverySink",
    "NotificationFeedbackHandler",
    "NotificationHistoryStore",
    "NotificationInsights",
    "NotificationKind",
    "NotificationPolicy",
    "NotificationRecord",
    "NotificationRule",
    "NotificationRuleEngine",
    "PolicyLevel",
    "QueueSink",
    "RuleVerdict",
    "build_engagement_decision",
    "build_gap_decision",
    "compute_insights",
    "is_in_quiet_hours",
    "mark_ignored",
    "mark_opened",
    "recommend_level",
    "trigger_time",
]
