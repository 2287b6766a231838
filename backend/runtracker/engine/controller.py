"""Session lifecycle for the tracking engine.

    IDLE --start()--> TRACKING --stop() / terminal source error--> COMPLETED
                         ^                                            |
                         +------------------start()-------------------+

Only the controller mutates the active ``TrackingSession``. Nothing here
raises for bad input or wrong-state calls: rejected fixes, source errors,
storage failures and invalid transitions come back as ``Diagnostic`` values
(also collected in ``diagnostics`` and passed to ``on_diagnostic``), and
leave session state untouched.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import replace
from datetime import datetime
from typing import Callable, Iterable, Optional, Union

from runtracker.core.constants import JITTER_THRESHOLD
from runtracker.core.time_utils import to_utc, utc_now
from runtracker.engine.best_efforts import BestEffortStore
from runtracker.engine.distance import DistanceAccumulator
from runtracker.engine.milestones import MilestoneTracker, default_milestones
from runtracker.engine.pace import PaceCalculator
from runtracker.engine.sources import PositionSource, Subscription
from runtracker.engine.types import (
    Diagnostic,
    DiagnosticKind,
    MilestoneCrossing,
    MilestoneDefinition,
    PositionFix,
    SessionSnapshot,
    SessionState,
    SessionSummary,
    SourceError,
    SourceErrorKind,
    TrackingSession,
)

logger = logging.getLogger(__name__)

_LOG_LEVELS = {
    DiagnosticKind.SOURCE_DENIED: logging.ERROR,
    DiagnosticKind.SOURCE_TRANSIENT: logging.WARNING,
    DiagnosticKind.MALFORMED_FIX: logging.WARNING,
    DiagnosticKind.PERSISTENCE_FAILURE: logging.ERROR,
    DiagnosticKind.INVALID_TRANSITION: logging.WARNING,
}


class SessionController:
    def __init__(
        self,
        source: PositionSource,
        store: BestEffortStore,
        milestones: Optional[Iterable[MilestoneDefinition]] = None,
        *,
        unit: str = "mi",
        jitter_threshold: float = JITTER_THRESHOLD,
        clock: Callable[[], datetime] = utc_now,
        end_on_signal_loss: bool = False,
        on_diagnostic: Optional[Callable[[Diagnostic], None]] = None,
        on_crossing: Optional[Callable[[MilestoneCrossing], None]] = None,
        id_factory: Callable[[], str] = lambda: uuid.uuid4().hex,
    ):
        self.source = source
        self.store = store
        self.milestones = list(milestones) if milestones is not None else default_milestones(unit)
        self.unit = unit
        self.jitter_threshold = jitter_threshold
        self.clock = clock
        self.end_on_signal_loss = end_on_signal_loss
        self.on_diagnostic = on_diagnostic
        self.on_crossing = on_crossing
        self.id_factory = id_factory

        self.state = SessionState.IDLE
        self.session: Optional[TrackingSession] = None
        self.summary: Optional[SessionSummary] = None
        self.diagnostics: list[Diagnostic] = []
        self._subscription: Optional[Subscription] = None
        self._accumulator: Optional[DistanceAccumulator] = None
        self._tracker: Optional[MilestoneTracker] = None

    # --------- transitions --------- #

    def start(self, started_at: Optional[datetime] = None) -> Optional[Diagnostic]:
        """Open a session. ``started_at`` overrides the clock, e.g. with the
        client's own start time so its fix timestamps line up."""
        if self.state is SessionState.TRACKING:
            return self._invalid_transition("start", "a session is already tracking")

        previous_state = self.state
        session = TrackingSession(
            id=self.id_factory(),
            start_time=to_utc(started_at if started_at is not None else self.clock()),
            unit=self.unit,
            source_kind=self.source.kind,
        )
        accumulator = DistanceAccumulator(self.unit, self.jitter_threshold)
        tracker = MilestoneTracker(self.milestones, self.store, report=self._emit)

        self.session, self._accumulator, self._tracker = session, accumulator, tracker
        self.summary = None
        self.state = SessionState.TRACKING
        try:
            subscription = self.source.start(self.handle_fix, self.handle_error)
        except Exception:
            self.state = previous_state
            self.session = self._accumulator = self._tracker = None
            raise
        if self.state is not SessionState.TRACKING:
            # the source failed terminally while subscribing
            self.source.stop(subscription)
            return None
        self._subscription = subscription
        logger.info("Session %s started (%s source)", session.id, self.source.kind)
        return None

    def stop(self) -> Union[SessionSummary, Diagnostic]:
        if self.state is not SessionState.TRACKING:
            return self._invalid_transition("stop", f"no session is tracking (state={self.state.value})")
        return self._complete()

    def _complete(self, ended_by_error: Optional[SourceError] = None) -> SessionSummary:
        session = self.session
        if self._subscription is not None:
            self.source.stop(self._subscription)
            self._subscription = None

        not_improved = self._tracker.flush_pending()
        if not_improved:
            session.crossings = [
                replace(c, improved=False) if c.milestone_name in not_improved else c
                for c in session.crossings
            ]
        session.end_time = to_utc(self.clock())
        self.state = SessionState.COMPLETED

        self.summary = SessionSummary(
            session_id=session.id,
            unit=session.unit,
            source_kind=session.source_kind,
            started_at=session.start_time,
            ended_at=session.end_time,
            distance=session.cumulative_distance,
            duration=session.duration,
            average_pace=session.pace,
            milestones_crossed=tuple(session.crossings),
            improved_bests=tuple(self._tracker.improved),
            fix_count=len(session.fixes),
            jitter_rejections=self._accumulator.jitter_rejections,
            ended_by_error=ended_by_error,
        )
        logger.info(
            "Session %s completed: %.3f %s in %.0fs, %d milestone(s)",
            session.id, session.cumulative_distance, session.unit,
            session.duration, len(session.crossings),
        )
        return self.summary

    # --------- source callbacks --------- #

    def handle_fix(self, fix: PositionFix) -> Optional[Diagnostic]:
        if self.state is not SessionState.TRACKING:
            return self._invalid_transition("accept fix", f"fix received while {self.state.value}")

        session = self.session
        if fix.timestamp.tzinfo is None:
            fix = replace(fix, timestamp=to_utc(fix.timestamp))
        if not fix.is_finite():
            return self._malformed(fix, "non-finite coordinates")
        if not fix.in_range():
            return self._malformed(fix, "coordinates out of range")
        last = session.last_fix
        if fix.timestamp < session.start_time or (last is not None and fix.timestamp < last.timestamp):
            return self._malformed(fix, "out-of-order timestamp")

        session.fixes.append(fix)
        previous_distance = session.cumulative_distance
        self._accumulator.add(fix)
        session.cumulative_distance = self._accumulator.total
        session.duration = (fix.timestamp - session.start_time).total_seconds()
        session.pace = PaceCalculator.pace(session.duration, session.cumulative_distance)

        crossings = self._tracker.observe(
            previous_distance, session.cumulative_distance, session.duration
        )
        for crossing in crossings:
            session.crossings.append(crossing)
            if self.on_crossing is not None:
                self.on_crossing(crossing)
        return None

    def handle_error(self, error: SourceError) -> Diagnostic:
        if self.state is not SessionState.TRACKING:
            return self._invalid_transition("handle source error", f"error received while {self.state.value}")

        terminal = error.kind in (SourceErrorKind.DENIED, SourceErrorKind.TIMEOUT) or (
            error.kind is SourceErrorKind.UNAVAILABLE and self.end_on_signal_loss
        )
        kind = DiagnosticKind.SOURCE_DENIED if error.is_denied else DiagnosticKind.SOURCE_TRANSIENT
        diagnostic = self._emit(
            Diagnostic(
                kind,
                error.message or f"position source reported {error.kind.value}",
                {"error": error.kind.value, "terminal": terminal},
            )
        )
        if terminal:
            self._complete(ended_by_error=error)
        return diagnostic

    # --------- views --------- #

    def snapshot(self) -> SessionSnapshot:
        session = self.session
        if session is None:
            return SessionSnapshot(
                session_id=None,
                state=self.state,
                unit=self.unit,
                cumulative_distance=0.0,
                duration=0.0,
                pace=None,
                crossings=(),
                progress=(),
                fix_count=0,
            )
        return SessionSnapshot(
            session_id=session.id,
            state=self.state,
            unit=session.unit,
            cumulative_distance=session.cumulative_distance,
            duration=session.duration,
            pace=session.pace,
            crossings=tuple(session.crossings),
            progress=self._tracker.progress(session.cumulative_distance, session.pace),
            fix_count=len(session.fixes),
        )

    # --------- diagnostics --------- #

    def _emit(self, diagnostic: Diagnostic) -> Diagnostic:
        self.diagnostics.append(diagnostic)
        logger.log(_LOG_LEVELS[diagnostic.kind], "%s: %s", diagnostic.kind.value, diagnostic.message)
        if self.on_diagnostic is not None:
            self.on_diagnostic(diagnostic)
        return diagnostic

    def _malformed(self, fix: PositionFix, reason: str) -> Diagnostic:
        return self._emit(
            Diagnostic(
                DiagnosticKind.MALFORMED_FIX,
                f"Rejected fix: {reason}",
                {
                    "reason": reason,
                    "latitude": fix.latitude,
                    "longitude": fix.longitude,
                    "timestamp": fix.timestamp.isoformat(),
                },
            )
        )

    def _invalid_transition(self, action: str, reason: str) -> Diagnostic:
        return self._emit(
            Diagnostic(
                DiagnosticKind.INVALID_TRANSITION,
                f"Cannot {action}: {reason}",
                {"action": action, "state": self.state.value},
            )
        )
