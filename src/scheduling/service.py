"""Gap scanning and notification scheduling.

One scan runs the whole pipeline: fetch events from every calendar source
concurrently, merge them, detect and classify gaps, pick the best upcoming
gap and ask the rule engine whether to suggest it. An authorized decision is
handed to the delivery sink and recorded in the notification history.

At most one scan is in flight per service. A scan requested while another is
running joins the running scan and receives the same ``ScanResult``.
"""

import asyncio
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

from src.calendar_sources.base import CalendarEventSource, SourceFetchError
from src.config.settings import Settings, get_settings
from src.gaps.classifier import GapQualityClassifier
from src.gaps.detector import GapDetector
from src.gaps.merger import EventMerger
from src.gaps.models import CalendarEvent, Gap, TimeWindow
from src.notifications.content import build_engagement_decision, build_gap_decision
from src.notifications.context import DecisionContextBuilder
from src.notifications.history import HistoryStoreError, NotificationHistoryStore
from src.notifications.models import (
    NotificationDecision,
    NotificationKind,
    NotificationPolicy,
    NotificationRecord,
)
from src.notifications.rules import NotificationRuleEngine
from src.notifications.sink import NotificationDeliverySink
from src.scheduling.activity import ActivityStateProvider
from src.utils.error_handler import ErrorHandler
from src.utils.mixins import LoggerMixin

GAP_KINDS = (NotificationKind.PERFECT_GAP, NotificationKind.GAP_REMINDER)
ENGAGEMENT_KINDS = (NotificationKind.STREAK_RISK, NotificationKind.DAILY_CHECK)


class ScanState(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    MERGING = "merging"
    DETECTING = "detecting"
    CLASSIFYING = "classifying"
    DECIDING = "deciding"
    EMITTING = "emitting"


@dataclass(frozen=True)
class ScanResult:
    """Outcome of one scan.

    Source failures do not fail the scan; they are listed in
    ``failed_sources`` and described in ``warnings``.
    """

    window: TimeWindow
    gaps: tuple[Gap, ...] = ()
    best_gap: Gap | None = None
    decision: NotificationDecision | None = None
    warnings: tuple[str, ...] = ()
    failed_sources: tuple[str, ...] = ()
    cancelled: bool = False
    authorization_missing: bool = False


class GapSchedulingService(LoggerMixin):
    def __init__(
        self,
        sources: Iterable[CalendarEventSource],
        history: NotificationHistoryStore,
        sink: NotificationDeliverySink,
        activity: ActivityStateProvider,
        settings: Settings | None = None,
        rule_engine: NotificationRuleEngine | None = None,
        classifier: GapQualityClassifier | None = None,
        merger: EventMerger | None = None,
        detector: GapDetector | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.sources = list(sources)
        self.history = history
        self.sink = sink
        self.rule_engine = rule_engine or NotificationRuleEngine()
        self.classifier = classifier or GapQualityClassifier()
        self.merger = merger or EventMerger()
        self.detector = detector or GapDetector(
            min_gap=timedelta(seconds=self.settings.min_gap_seconds),
            max_gap=timedelta(seconds=self.settings.max_gap_seconds),
        )
        self.clock = clock or datetime.now
        self.context_builder = DecisionContextBuilder(history, activity)

        self.state = ScanState.IDLE
        self._latest_gaps: tuple[Gap, ...] = ()
        self._scan_task: asyncio.Task[ScanResult] | None = None
        self._scan_window: TimeWindow | None = None

    @property
    def latest_gaps(self) -> tuple[Gap, ...]:
        """Gaps of the last completed scan"""
        return self._latest_gaps

    @property
    def is_scanning(self) -> bool:
        return self._scan_task is not None and not self._scan_task.done()

    async def scan(self) -> ScanResult:
        if self._scan_task is not None and not self._scan_task.done():
            self.logger.debug("Scan already in flight, joining it")
        else:
            now = self.clock()
            hours = self.settings.scan_window_hours
            self._scan_window = TimeWindow.from_now(now, hours)
            self._scan_task = asyncio.create_task(
                self._run_scan(self._scan_window, now)
            )

        task = self._scan_task
        window = self._scan_window
        try:
            # cancelling one caller leaves the shared scan running
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            if not task.cancelled():
                raise
            # cancelled before the pipeline started
            self.state = ScanState.IDLE
            return ScanResult(window=window, cancelled=True)

    def cancel(self) -> bool:
        """Cancel the in-flight scan. Returns ``False`` if none is running."""
        task = self._scan_task
        if task is None or task.done():
            return False
        task.cancel()
        self.logger.info("Scan cancellation requested")
        return True

    async def get_policy(self) -> NotificationPolicy:
        """The stored policy, falling back to the configured one"""
        try:
            policy = await self.history.load_policy()
        except HistoryStoreError as e:
            policy = ErrorHandler.log_and_return_default(
                "load notification policy", e, None
            )
        return policy or NotificationPolicy.from_settings(self.settings)

    async def check_engagement(self) -> NotificationDecision | None:
        """Evaluate the streak reminders outside of a gap scan.

        Emits at most one decision, trying ``streak_risk`` first.
        """
        now = self.clock()
        context = await self.context_builder.build(now)
        policy = await self.get_policy()
        for kind in ENGAGEMENT_KINDS:
            verdict = await self.rule_engine.check(kind, context, policy, self.history)
            if verdict.allowed:
                decision = build_engagement_decision(kind, now)
                if await self._emit(decision, now, []):
                    return decision
                return None
        return None

    async def _run_scan(self, window: TimeWindow, now: datetime) -> ScanResult:
        delivered: list[NotificationDecision] = []
        try:
            return await self._scan(window, now, delivered)
        except asyncio.CancelledError:
            self.logger.info(
                "Scan cancelled", state=self.state.value, delivered=bool(delivered)
            )
            return ScanResult(
                window=window,
                decision=delivered[0] if delivered else None,
                cancelled=True,
            )
        finally:
            self.state = ScanState.IDLE

    async def _scan(
        self,
        window: TimeWindow,
        now: datetime,
        delivered: list[NotificationDecision],
    ) -> ScanResult:
        warnings: list[str] = []
        self.state = ScanState.FETCHING

        sources = await self._authorized_sources()
        if not sources:
            message = "No authorized calendar source, scan skipped"
            self.logger.warning(message)
            self._latest_gaps = ()
            return ScanResult(
                window=window, warnings=(message,), authorization_missing=True
            )

        event_lists, failed = await self._fetch_all(sources, window, warnings)

        self.state = ScanState.MERGING
        events = self.merger.merge(event_lists)
        if self.settings.skip_all_day_events:
            events = [event for event in events if not event.is_all_day]

        self.state = ScanState.DETECTING
        contributing = [s.source_id for s in sources if s.source_id not in failed]
        gaps = self.detector.find_gaps(events, window, source_ids=contributing)

        self.state = ScanState.CLASSIFYING
        gaps = self.classifier.apply_all(gaps)

        self.state = ScanState.DECIDING
        best_gap = self.select_best_gap(gaps, now)
        decision = None
        if best_gap is not None:
            decision = await self._decide(best_gap, now, warnings, delivered)

        # a cancelled scan never reaches this point
        self._latest_gaps = tuple(gaps)

        self.logger.info(
            "Scan finished",
            events=len(events),
            gaps=len(gaps),
            failed_sources=len(failed),
            notified=decision is not None,
        )
        return ScanResult(
            window=window,
            gaps=tuple(gaps),
            best_gap=best_gap,
            decision=decision,
            warnings=tuple(warnings),
            failed_sources=tuple(failed),
        )

    async def _authorized_sources(self) -> list[CalendarEventSource]:
        authorized = []
        for source in self.sources:
            try:
                if await source.is_authorized():
                    authorized.append(source)
            except SourceFetchError as e:
                self.logger.warning(
                    "Authorization check failed",
                    source_id=source.source_id,
                    error=str(e),
                )
        return authorized

    async def _fetch_all(
        self,
        sources: list[CalendarEventSource],
        window: TimeWindow,
        warnings: list[str],
    ) -> tuple[list[list[CalendarEvent]], list[str]]:
        timeout = self.settings.source_fetch_timeout_seconds
        tasks = [
            asyncio.wait_for(source.fetch_events(window), timeout=timeout)
            for source in sources
        ]
        results = await asyncio.gather(*tasks, return_exceptions=True)

        event_lists: list[list[CalendarEvent]] = []
        failed: list[str] = []
        for source, result in zip(sources, results, strict=True):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, BaseException):
                if isinstance(result, asyncio.TimeoutError):
                    reason = f"timed out after {timeout:g}s"
                else:
                    reason = str(result) or type(result).__name__
                message = f"Calendar source {source.source_id} failed: {reason}"
                self.logger.warning(
                    "Calendar source failed",
                    source_id=source.source_id,
                    error=reason,
                )
                warnings.append(message)
                failed.append(source.source_id)
            else:
                event_lists.append(result)
        return event_lists, failed

    @staticmethod
    def select_best_gap(gaps: Iterable[Gap], now: datetime) -> Gap | None:
        """Highest quality upcoming gap; the sooner one wins a tie."""
        upcoming = [gap for gap in gaps if gap.start >= now and gap.quality is not None]
        if not upcoming:
            return None
        return min(upcoming, key=lambda gap: (-gap.quality.rank, gap.start))

    async def _decide(
        self,
        gap: Gap,
        now: datetime,
        warnings: list[str],
        delivered: list[NotificationDecision],
    ) -> NotificationDecision | None:
        context = await self.context_builder.build(now, upcoming_gap=gap)
        policy = await self.get_policy()
        for kind in GAP_KINDS:
            verdict = await self.rule_engine.check(kind, context, policy, self.history)
            if verdict.allowed:
                decision = build_gap_decision(kind, gap, now)
                self.state = ScanState.EMITTING
                sent = await self._emit_to_completion(
                    decision, now, warnings, delivered
                )
                return decision if sent else None
        return None

    async def _emit_to_completion(
        self,
        decision: NotificationDecision,
        now: datetime,
        warnings: list[str],
        delivered: list[NotificationDecision],
    ) -> bool:
        """Run ``_emit`` to the end even if the scan is cancelled meanwhile.

        A delivered notification is always recorded, so the daily budget and
        the cooldowns see it, and it is added to ``delivered``. A cancellation
        received while emitting is re-raised afterwards.
        """
        emit = asyncio.create_task(self._emit(decision, now, warnings))
        cancelled = False
        while not emit.done():
            try:
                await asyncio.shield(emit)
            except asyncio.CancelledError:
                cancelled = True
        sent = emit.result()
        if sent:
            delivered.append(decision)
        if cancelled:
            raise asyncio.CancelledError
        return sent

    async def _emit(
        self, decision: NotificationDecision, now: datetime, warnings: list[str]
    ) -> bool:
        """Deliver and record a decision. Returns whether it was delivered."""
        try:
            await self.sink.deliver(decision)
        except Exception as e:
            message = f"Notification delivery failed: {e}"
            self.logger.warning(
                "Notification delivery failed", kind=decision.kind.value, error=str(e)
            )
            warnings.append(message)
            return False

        try:
            record = NotificationRecord(kind=decision.kind, sent_at=now)
            await self.history.append(record)
        except HistoryStoreError as e:
            warnings.append(f"Notification history not updated: {e}")
            ErrorHandler.log_and_return_default(
                "record notification", e, None, kind=decision.kind.value
            )

        self.logger.info(
            "Notification scheduled",
            kind=decision.kind.value,
            trigger_at=decision.trigger_at.isoformat(),
        )
        return True
