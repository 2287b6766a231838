from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict


class SessionMode(str, Enum):
    live = "live"  # fixes posted by the client's geolocation watch
    demo = "demo"  # synthetic GPS generated on the server


class SessionCreate(BaseModel):
    mode: SessionMode = SessionMode.live
    seed: Optional[int] = None  # demo only; overrides DEMO_SEED
    # Live only: session start in the client's clock (ISO or epoch millis).
    # Fixes stamped before it are rejected.
    started_at: Optional[datetime] = None


class PositionIn(BaseModel):
    """One geolocation update. ``timestamp`` may be ISO or epoch millis."""

    latitude: float
    longitude: float
    timestamp: datetime


class SourceErrorIn(BaseModel):
    code: int  # 1 permission denied, 2 position unavailable, 3 timeout
    message: str = ""


class DiagnosticRead(BaseModel):
    kind: str
    message: str
    detail: dict[str, Any] = {}


class CrossingRead(BaseModel):
    milestone_name: str
    estimated_elapsed_time: float  # seconds
    time_display: str              # e.g. "25:05"
    threshold_distance: float
    previous_best: Optional[float] = None
    improved: bool = False


class ProgressRead(BaseModel):
    name: str
    threshold_distance: float
    percent: float
    reached: bool
    projected_time: Optional[float] = None


class SnapshotRead(BaseModel):
    session_id: Optional[str] = None
    state: str
    unit: str
    cumulative_distance: float
    duration: float
    duration_display: str
    pace: Optional[float] = None  # minutes per unit; null until distance > 0
    pace_display: str             # e.g. "8:30" or "--:--"
    crossings: list[CrossingRead]
    progress: list[ProgressRead]
    fix_count: int


class SessionUpdate(BaseModel):
    """Result of feeding a position or error into a session."""

    snapshot: SnapshotRead
    diagnostics: list[DiagnosticRead] = []  # rejected fix, source error, storage trouble


class MilestoneTimeRead(BaseModel):
    name: str
    time: float
    time_display: str
    improved: bool


class SummaryRead(BaseModel):
    session_id: str
    unit: str
    source: str
    started_at: datetime
    ended_at: datetime
    distance: float
    duration: float
    duration_display: str
    average_pace: Optional[float] = None
    pace_display: str
    milestones_crossed: list[MilestoneTimeRead]
    improved_bests: list[str]
    fix_count: int
    jitter_rejections: int
    ended_by_error: Optional[str] = None


class TrackedRunRead(BaseModel):
    """Stored completed run returned by the history endpoint."""

    id: str
    started_at: datetime
    ended_at: datetime
    unit: str
    distance: float
    duration_seconds: float
    average_pace: Optional[float] = None
    source: str
    fix_count: int
    milestones: Optional[list[dict[str, Any]]] = None
    improved_bests: Optional[list[str]] = None
    bounds: Optional[dict[str, float]] = None

    model_config = ConfigDict(from_attributes=True)
