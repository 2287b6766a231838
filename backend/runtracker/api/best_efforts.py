from fastapi import APIRouter, Depends, HTTPException

from runtracker.api.deps import get_store
from runtracker.core.time_utils import format_time
from runtracker.engine.best_efforts import BestEffortStore, PersistenceError
from runtracker.schemas.best_effort import BestEffortRead


router = APIRouter(prefix="/best-efforts", tags=["best-efforts"])


def _read(name: str, seconds: float) -> BestEffortRead:
    return BestEffortRead(milestone_name=name, best_seconds=seconds, best_display=format_time(seconds))


@router.get("/", response_model=list[BestEffortRead])
def list_best_efforts(store: BestEffortStore = Depends(get_store)):
    try:
        bests = store.all()
    except PersistenceError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return [_read(name, seconds) for name, seconds in sorted(bests.items(), key=lambda kv: kv[1])]


@router.get("/{milestone_name}", response_model=BestEffortRead)
def get_best_effort(milestone_name: str, store: BestEffortStore = Depends(get_store)):
    try:
        seconds = store.get(milestone_name)
    except PersistenceError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    if seconds is None:
        raise HTTPException(status_code=404, detail="No best effort recorded")
    return _read(milestone_name, seconds)
