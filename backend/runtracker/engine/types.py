"""Value types shared across the tracking engine.

Fixes, milestone definitions and crossings are immutable; the
``TrackingSession`` is mutable but only the ``SessionController`` touches it.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional


class SessionState(str, Enum):
    IDLE = "idle"
    TRACKING = "tracking"
    COMPLETED = "completed"


class DiagnosticKind(str, Enum):
    SOURCE_DENIED = "source_denied"
    SOURCE_TRANSIENT = "source_transient"
    MALFORMED_FIX = "malformed_fix"
    PERSISTENCE_FAILURE = "persistence_failure"
    INVALID_TRANSITION = "invalid_transition"


class SourceErrorKind(str, Enum):
    DENIED = "denied"
    TIMEOUT = "timeout"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class PositionFix:
    latitude: float
    longitude: float
    timestamp: datetime

    def is_finite(self) -> bool:
        return math.isfinite(self.latitude) and math.isfinite(self.longitude)

    def in_range(self) -> bool:
        return -90.0 <= self.latitude <= 90.0 and -180.0 <= self.longitude <= 180.0


@dataclass(frozen=True)
class SourceError:
    """An error reported by a position source."""

    kind: SourceErrorKind
    message: str = ""

    @property
    def is_denied(self) -> bool:
        return self.kind is SourceErrorKind.DENIED


@dataclass(frozen=True)
class Diagnostic:
    kind: DiagnosticKind
    message: str
    detail: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class MilestoneDefinition:
    name: str
    threshold_distance: float

    def __post_init__(self):
        if not self.name:
            raise ValueError("milestone name must not be empty")
        if not math.isfinite(self.threshold_distance) or self.threshold_distance <= 0:
            raise ValueError(f"milestone {self.name!r} needs a positive threshold")


@dataclass(frozen=True)
class MilestoneCrossing:
    milestone_name: str
    estimated_elapsed_time: float  # seconds
    threshold_distance: float
    previous_best: Optional[float] = None
    improved: bool = False


@dataclass
class TrackingSession:
    id: str
    start_time: datetime
    unit: str = "mi"
    source_kind: str = "live"
    end_time: Optional[datetime] = None
    fixes: list[PositionFix] = field(default_factory=list)
    cumulative_distance: float = 0.0
    duration: float = 0.0  # seconds
    pace: Optional[float] = None  # minutes per unit, None until distance > 0
    crossings: list[MilestoneCrossing] = field(default_factory=list)

    @property
    def last_fix(self) -> Optional[PositionFix]:
        return self.fixes[-1] if self.fixes else None

    @property
    def is_frozen(self) -> bool:
        return self.end_time is not None


@dataclass(frozen=True)
class MilestoneProgress:
    name: str
    threshold_distance: float
    percent: float
    reached: bool
    projected_time: Optional[float] = None  # seconds, only when not reached


@dataclass(frozen=True)
class SessionSnapshot:
    """Live view of a session for dashboards."""

    session_id: Optional[str]
    state: SessionState
    unit: str
    cumulative_distance: float
    duration: float
    pace: Optional[float]
    crossings: tuple[MilestoneCrossing, ...]
    progress: tuple[MilestoneProgress, ...]
    fix_count: int


@dataclass(frozen=True)
class SessionSummary:
    session_id: str
    unit: str
    source_kind: str
    started_at: datetime
    ended_at: datetime
    distance: float
    duration: float
    average_pace: Optional[float]
    milestones_crossed: tuple[MilestoneCrossing, ...]
    improved_bests: tuple[str, ...]
    fix_count: int
    jitter_rejections: int
    ended_by_error: Optional[SourceError] = None
