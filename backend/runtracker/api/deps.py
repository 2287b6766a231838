"""Wiring between settings, the engine and the HTTP layer."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Request

from runtracker.core.config import Settings
from runtracker.core.time_utils import utc_now
from runtracker.engine.best_efforts import (
    BestEffortStore,
    InMemoryBestEffortStore,
    JsonFileBestEffortStore,
)
from runtracker.engine.controller import SessionController
from runtracker.engine.milestones import default_milestones, milestones_from_mapping
from runtracker.engine.sources import PositionSource, PushWatch, select_position_source
from runtracker.engine.types import SessionState

logger = logging.getLogger(__name__)


def build_store(cfg: Settings) -> BestEffortStore:
    if cfg.best_efforts_backend == "memory":
        return InMemoryBestEffortStore()
    if cfg.best_efforts_backend == "json":
        return JsonFileBestEffortStore(cfg.best_efforts_path)
    if cfg.best_efforts_backend == "sql":
        from runtracker.models.best_effort import SqlBestEffortStore  # noqa: WPS433
        return SqlBestEffortStore()
    raise ValueError(f"Unknown best_efforts_backend {cfg.best_efforts_backend!r}")


def configured_milestones(cfg: Settings):
    if cfg.milestones:
        return milestones_from_mapping(cfg.milestones)
    return default_milestones(cfg.distance_unit)


@dataclass
class TrackedEntry:
    controller: SessionController
    mode: str
    watch: Optional[PushWatch] = None
    saved: bool = False

    @property
    def tracking(self) -> bool:
        return self.controller.state is SessionState.TRACKING


class SessionRegistry:
    """In-process map of session id -> controller for the API."""

    def __init__(self, store: BestEffortStore, cfg: Settings):
        self.store = store
        self.cfg = cfg
        self._entries: dict[str, TrackedEntry] = {}

    def controller_for(self, source: PositionSource, clock=utc_now) -> SessionController:
        return SessionController(
            source,
            self.store,
            configured_milestones(self.cfg),
            unit=self.cfg.distance_unit,
            jitter_threshold=self.cfg.jitter_threshold,
            clock=clock,
            end_on_signal_loss=self.cfg.end_session_on_signal_loss,
        )

    def open(self, mode: str, scheduler=None, seed: Optional[int] = None, started_at=None) -> TrackedEntry:
        """Create and start a session. Live sessions get a PushWatch to feed."""
        watch = PushWatch() if mode == "live" else None
        source = select_position_source(
            watch,
            scheduler,
            demo=mode == "demo",
            interval=self.cfg.demo_interval_seconds,
            start_latitude=self.cfg.demo_start_latitude,
            start_longitude=self.cfg.demo_start_longitude,
            seed=seed if seed is not None else self.cfg.demo_seed,
        )
        controller = self.controller_for(source)
        controller.start(started_at if mode == "live" else None)
        entry = TrackedEntry(controller=controller, mode=mode, watch=watch)
        self._entries[controller.session.id] = entry
        return entry

    def get(self, session_id: str) -> Optional[TrackedEntry]:
        return self._entries.get(session_id)

    def prune(self) -> int:
        """Drop the oldest saved, finished sessions beyond ``completed_sessions_kept``."""
        finished = [sid for sid, e in self._entries.items() if e.saved and not e.tracking]
        excess = finished[: max(0, len(finished) - self.cfg.completed_sessions_kept)]
        for sid in excess:
            del self._entries[sid]
        if excess:
            logger.debug("Dropped %d finished session(s) from the registry", len(excess))
        return len(excess)

    def __len__(self) -> int:
        return len(self._entries)

    def stop_all(self) -> int:
        stopped = 0
        for entry in self._entries.values():
            if entry.tracking:
                entry.controller.stop()
                stopped += 1
        if stopped:
            logger.info("Stopped %d tracking session(s) on shutdown", stopped)
        return stopped


def get_registry(request: Request) -> SessionRegistry:
    return request.app.state.registry


def get_store(request: Request) -> BestEffortStore:
    return request.app.state.registry.store
