import asyncio
import logging
import math
import os
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from fitparse.utils import FitParseError
from gpxpy.gpx import GPXException
from sqlalchemy.orm import Session

from runtracker.api.deps import SessionRegistry, TrackedEntry, get_registry
from runtracker.core.config import settings
from runtracker.core.time_utils import format_pace, format_time
from runtracker.db import get_db
from runtracker.engine.geo import route_bounds, route_geojson
from runtracker.engine.replay import SUPPORTED_EXTENSIONS, ReplayPositionSource, load_track
from runtracker.engine.sources import SteppedScheduler
from runtracker.engine.types import Diagnostic, SessionSnapshot, SessionSummary
from runtracker.models.tracked_run import TrackedRun
from runtracker.schemas.session import (
    CrossingRead,
    DiagnosticRead,
    MilestoneTimeRead,
    PositionIn,
    ProgressRead,
    SessionCreate,
    SessionUpdate,
    SnapshotRead,
    SourceErrorIn,
    SummaryRead,
    TrackedRunRead,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sessions", tags=["sessions"])


# --------- Converters --------- #

def _json_safe(value):
    # JSON has no NaN/Infinity; rejected fixes may carry them
    if isinstance(value, float) and not math.isfinite(value):
        return str(value)
    return value


def _diagnostic_read(d: Diagnostic) -> DiagnosticRead:
    detail = {k: _json_safe(v) for k, v in d.detail.items()}
    return DiagnosticRead(kind=d.kind.value, message=d.message, detail=detail)


def _snapshot_read(s: SessionSnapshot) -> SnapshotRead:
    return SnapshotRead(
        session_id=s.session_id,
        state=s.state.value,
        unit=s.unit,
        cumulative_distance=s.cumulative_distance,
        duration=s.duration,
        duration_display=format_time(s.duration),
        pace=s.pace,
        pace_display=format_pace(s.pace),
        crossings=[
            CrossingRead(
                milestone_name=c.milestone_name,
                estimated_elapsed_time=c.estimated_elapsed_time,
                time_display=format_time(c.estimated_elapsed_time),
                threshold_distance=c.threshold_distance,
                previous_best=c.previous_best,
                improved=c.improved,
            )
            for c in s.crossings
        ],
        progress=[
            ProgressRead(
                name=p.name,
                threshold_distance=p.threshold_distance,
                percent=p.percent,
                reached=p.reached,
                projected_time=p.projected_time,
            )
            for p in s.progress
        ],
        fix_count=s.fix_count,
    )


def _milestone_times(summary: SessionSummary) -> list[dict]:
    return [
        {
            "name": c.milestone_name,
            "time": c.estimated_elapsed_time,
            "improved": c.improved,
        }
        for c in summary.milestones_crossed
    ]


def _summary_read(summary: SessionSummary) -> SummaryRead:
    return SummaryRead(
        session_id=summary.session_id,
        unit=summary.unit,
        source=summary.source_kind,
        started_at=summary.started_at,
        ended_at=summary.ended_at,
        distance=summary.distance,
        duration=summary.duration,
        duration_display=format_time(summary.duration),
        average_pace=summary.average_pace,
        pace_display=format_pace(summary.average_pace),
        milestones_crossed=[
            MilestoneTimeRead(time_display=format_time(m["time"]), **m)
            for m in _milestone_times(summary)
        ],
        improved_bests=list(summary.improved_bests),
        fix_count=summary.fix_count,
        jitter_rejections=summary.jitter_rejections,
        ended_by_error=summary.ended_by_error.kind.value if summary.ended_by_error else None,
    )


def _save_run(db: Session, entry: TrackedEntry, registry: Optional[SessionRegistry] = None) -> None:
    """Persist a completed session once, then let the registry forget old ones."""
    summary = entry.controller.summary
    if entry.saved or summary is None:
        return
    fixes = entry.controller.session.fixes
    db.add(
        TrackedRun(
            id=summary.session_id,
            started_at=summary.started_at,
            ended_at=summary.ended_at,
            unit=summary.unit,
            distance=summary.distance,
            duration_seconds=summary.duration,
            average_pace=summary.average_pace,
            source=summary.source_kind,
            fix_count=summary.fix_count,
            jitter_rejections=summary.jitter_rejections,
            ended_by_error=summary.ended_by_error.kind.value if summary.ended_by_error else None,
            milestones=_milestone_times(summary),
            improved_bests=list(summary.improved_bests),
            geojson=route_geojson(fixes),
            bounds=route_bounds(fixes),
        )
    )
    db.commit()
    entry.saved = True
    if registry is not None:
        registry.prune()


def _entry_or_404(registry: SessionRegistry, session_id: str) -> TrackedEntry:
    entry = registry.get(session_id)
    if entry is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return entry


def _update(entry: TrackedEntry, before: int) -> SessionUpdate:
    new = entry.controller.diagnostics[before:]
    return SessionUpdate(
        snapshot=_snapshot_read(entry.controller.snapshot()),
        diagnostics=[_diagnostic_read(d) for d in new],
    )


# --------- Routes --------- #

@router.post("/", response_model=SnapshotRead, status_code=201)
async def start_session(
    payload: SessionCreate,
    registry: SessionRegistry = Depends(get_registry),
):
    # Demo ticks run on the server's event loop, alongside these handlers
    loop = asyncio.get_running_loop()
    entry = registry.open(
        payload.mode.value, scheduler=loop, seed=payload.seed, started_at=payload.started_at
    )
    return _snapshot_read(entry.controller.snapshot())


@router.get("/history", response_model=list[TrackedRunRead])
def list_history(limit: int = 50, db: Session = Depends(get_db)):
    return (
        db.query(TrackedRun)
        .order_by(TrackedRun.started_at.desc())
        .limit(limit)
        .all()
    )


@router.post("/replay", response_model=SummaryRead)
def replay_track(
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    registry: SessionRegistry = Depends(get_registry),
):
    """Run a recorded GPX/FIT track through the engine as a completed session."""
    filename = os.path.basename(file.filename or "upload.gpx")
    ext = os.path.splitext(filename)[1].lower()
    if ext not in SUPPORTED_EXTENSIONS:
        raise HTTPException(status_code=400, detail="Only .gpx and .fit files are supported")

    dir_path = os.path.join(settings.uploads_dir, "replays")
    os.makedirs(dir_path, exist_ok=True)
    save_path = os.path.join(dir_path, f"{uuid.uuid4().hex}_{filename}")
    with open(save_path, "wb") as out:
        out.write(file.file.read())

    try:
        fixes = load_track(save_path)
    except (ValueError, GPXException, FitParseError) as exc:
        raise HTTPException(status_code=400, detail=f"Could not parse track: {exc}") from exc
    if not fixes:
        raise HTTPException(status_code=400, detail="Track has no timestamped points")

    scheduler = SteppedScheduler(epoch=fixes[0].timestamp)
    source = ReplayPositionSource(fixes, scheduler)
    controller = registry.controller_for(source, clock=scheduler.now)
    controller.start()
    # one callback per recorded fix
    scheduler.run_until_idle(max_callbacks=len(fixes))
    if scheduler.pending:
        logger.warning("Replay of %s stopped with %d fixes unplayed", filename, scheduler.pending)
    summary = controller.stop()
    logger.info("Replayed %s: %d fixes", filename, len(fixes))

    # replays finish within the request, so they are saved but never registered
    _save_run(db, TrackedEntry(controller=controller, mode="replay"))
    return _summary_read(summary)


@router.get("/{session_id}", response_model=SnapshotRead)
async def get_session(session_id: str, registry: SessionRegistry = Depends(get_registry)):
    entry = _entry_or_404(registry, session_id)
    return _snapshot_read(entry.controller.snapshot())


@router.post("/{session_id}/positions", response_model=SessionUpdate)
async def post_position(
    session_id: str,
    payload: PositionIn,
    registry: SessionRegistry = Depends(get_registry),
):
    entry = _entry_or_404(registry, session_id)
    if entry.watch is None:
        raise HTTPException(status_code=409, detail=f"{entry.mode} sessions generate their own positions")
    if not entry.tracking:
        raise HTTPException(status_code=409, detail="Session is not tracking")

    before = len(entry.controller.diagnostics)
    entry.watch.deliver_position(payload.latitude, payload.longitude, payload.timestamp)
    return _update(entry, before)


@router.post("/{session_id}/errors", response_model=SessionUpdate)
async def post_source_error(
    session_id: str,
    payload: SourceErrorIn,
    db: Session = Depends(get_db),
    registry: SessionRegistry = Depends(get_registry),
):
    entry = _entry_or_404(registry, session_id)
    if entry.watch is None:
        raise HTTPException(status_code=409, detail=f"{entry.mode} sessions have no client sensor")
    if not entry.tracking:
        raise HTTPException(status_code=409, detail="Session is not tracking")

    before = len(entry.controller.diagnostics)
    entry.watch.deliver_error(payload.code, payload.message)
    if not entry.tracking:
        _save_run(db, entry, registry)
    return _update(entry, before)


@router.post("/{session_id}/stop", response_model=SummaryRead)
async def stop_session(
    session_id: str,
    db: Session = Depends(get_db),
    registry: SessionRegistry = Depends(get_registry),
):
    entry = _entry_or_404(registry, session_id)
    result = entry.controller.stop()
    if isinstance(result, Diagnostic):
        raise HTTPException(status_code=409, detail=result.message)
    _save_run(db, entry, registry)
    return _summary_read(result)


@router.get("/{session_id}/diagnostics", response_model=list[DiagnosticRead])
async def get_diagnostics(session_id: str, registry: SessionRegistry = Depends(get_registry)):
    entry = _entry_or_404(registry, session_id)
    return [_diagnostic_read(d) for d in entry.controller.diagnostics]
