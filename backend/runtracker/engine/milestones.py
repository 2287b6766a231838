from __future__ import annotations

import logging
from typing import Callable, Iterable, Optional

from runtracker.core.constants import MILESTONE_10K, MILESTONE_5K
from runtracker.engine.best_efforts import BestEffortStore, PersistenceError
from runtracker.engine.pace import PaceCalculator
from runtracker.engine.types import (
    Diagnostic,
    DiagnosticKind,
    MilestoneCrossing,
    MilestoneDefinition,
    MilestoneProgress,
)

logger = logging.getLogger(__name__)


def default_milestones(unit: str = "mi") -> list[MilestoneDefinition]:
    """5K and 10K expressed in ``unit``."""
    try:
        return [
            MilestoneDefinition("5K", MILESTONE_5K[unit]),
            MilestoneDefinition("10K", MILESTONE_10K[unit]),
        ]
    except KeyError:
        raise ValueError(f"Unknown distance unit {unit!r}") from None


def milestones_from_mapping(mapping: dict[str, float]) -> list[MilestoneDefinition]:
    return [MilestoneDefinition(name, float(threshold)) for name, threshold in mapping.items()]


class MilestoneTracker:
    """Detects milestone crossings for a single session.

    A milestone fires the first time cumulative distance goes from below its
    threshold to at or above it, and never again in the same session. The
    elapsed time at the threshold is approximated from the average pace so
    far: ``duration / distance * threshold``.

    On each crossing the tracker compares the estimate with the stored best
    and writes it back when it is strictly faster. If the store is
    unreachable the session falls back to its own in-memory view of bests;
    writes that failed are kept as pending and retried by ``flush_pending``.
    """

    def __init__(
        self,
        milestones: Iterable[MilestoneDefinition],
        store: BestEffortStore,
        report: Optional[Callable[[Diagnostic], None]] = None,
    ):
        self.milestones = sorted(milestones, key=lambda m: m.threshold_distance)
        names = [m.name for m in self.milestones]
        if len(set(names)) != len(names):
            raise ValueError("milestone names must be unique")
        self.store = store
        self._report = report or (lambda diagnostic: None)
        self.crossed: set[str] = set()
        self.local_bests: dict[str, float] = {}
        self.pending: dict[str, float] = {}
        self.improved: list[str] = []

    def observe(
        self, previous_distance: float, current_distance: float, duration: float
    ) -> list[MilestoneCrossing]:
        crossings = []
        for milestone in self.milestones:
            threshold = milestone.threshold_distance
            if milestone.name in self.crossed:
                continue
            if not (previous_distance < threshold <= current_distance):
                continue
            self.crossed.add(milestone.name)
            per_unit = PaceCalculator.seconds_per_unit(duration, current_distance)
            estimate = per_unit * threshold
            previous_best, improved = self._record_best(milestone.name, estimate)
            crossing = MilestoneCrossing(
                milestone_name=milestone.name,
                estimated_elapsed_time=estimate,
                threshold_distance=threshold,
                previous_best=previous_best,
                improved=improved,
            )
            logger.info(
                "Crossed %s at ~%.1fs (previous best %s)",
                milestone.name, estimate, previous_best,
            )
            crossings.append(crossing)
        return crossings

    def _record_best(self, name: str, estimate: float) -> tuple[Optional[float], bool]:
        try:
            previous = self.store.get(name)
        except PersistenceError as exc:
            self._persistence_failure("read", name, exc)
            previous = self.local_bests.get(name)
        else:
            if previous is not None:
                self.local_bests[name] = previous

        if previous is not None and estimate >= previous:
            return previous, False

        self.local_bests[name] = estimate
        try:
            improved = self.store.set(name, estimate)
        except PersistenceError as exc:
            self._persistence_failure("write", name, exc)
            self.pending[name] = estimate
            improved = True
        if improved:
            self.improved.append(name)
        return previous, improved

    def flush_pending(self) -> list[str]:
        """Retry store writes that failed earlier in the session.

        Returns the names that turned out not to beat the stored record;
        they are taken out of ``improved``.
        """
        not_improved = []
        for name, seconds in list(self.pending.items()):
            try:
                written = self.store.set(name, seconds)
            except PersistenceError as exc:
                self._persistence_failure("write", name, exc)
                continue
            del self.pending[name]
            if not written:
                logger.info("Pending best for %s did not beat the stored record", name)
                self.improved.remove(name)
                not_improved.append(name)
        return not_improved

    def _persistence_failure(self, operation: str, name: str, exc: Exception) -> None:
        logger.error("Best effort %s failed for %s: %s", operation, name, exc)
        self._report(
            Diagnostic(
                DiagnosticKind.PERSISTENCE_FAILURE,
                f"Could not {operation} best effort for {name}",
                {"milestone": name, "operation": operation, "error": str(exc)},
            )
        )

    def progress(self, distance: float, pace: Optional[float]) -> tuple[MilestoneProgress, ...]:
        """Percent toward each milestone, with a projected time where not yet reached."""
        out = []
        for milestone in self.milestones:
            threshold = milestone.threshold_distance
            reached = milestone.name in self.crossed or distance >= threshold
            projected = None
            if not reached and pace is not None:
                projected = pace * 60 * threshold
            out.append(
                MilestoneProgress(
                    name=milestone.name,
                    threshold_distance=threshold,
                    percent=min(100.0, distance / threshold * 100),
                    reached=reached,
                    projected_time=projected,
                )
            )
        return tuple(out)
