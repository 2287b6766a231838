"""Replay recorded GPX/FIT tracks through the tracking pipeline."""

from __future__ import annotations

import logging
import os
from typing import Iterable

import gpxpy
from fitparse import FitFile

from runtracker.core.constants import SEMICIRCLES_PER_DEGREE
from runtracker.core.time_utils import to_utc
from runtracker.engine.sources import PositionSource, Subscription
from runtracker.engine.types import PositionFix

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = (".gpx", ".fit")


def _semicircles_to_degrees(val):
    return val / SEMICIRCLES_PER_DEGREE if val is not None else None


def parse_gpx(text: str) -> list[PositionFix]:
    """Timestamped track points from GPX text. Points without a time are skipped."""
    gpx = gpxpy.parse(text)
    fixes = []
    skipped = 0
    for track in gpx.tracks:
        for segment in track.segments:
            for p in segment.points:
                if p.time is None:
                    skipped += 1
                    continue
                fixes.append(PositionFix(p.latitude, p.longitude, to_utc(p.time)))
    if skipped:
        logger.warning("Skipped %d GPX points without timestamps", skipped)
    return fixes


def parse_fit(path: str) -> list[PositionFix]:
    """Timestamped positions from the ``record`` messages of a FIT file."""
    ff = FitFile(path)
    fixes = []
    for record in ff.get_messages("record"):
        fields = {f.name: f.value for f in record}
        ts = fields.get("timestamp")
        lat = _semicircles_to_degrees(fields.get("position_lat"))
        lon = _semicircles_to_degrees(fields.get("position_long"))
        if ts is None or lat is None or lon is None:
            continue
        fixes.append(PositionFix(lat, lon, to_utc(ts)))
    return fixes


def load_track(path: str) -> list[PositionFix]:
    ext = os.path.splitext(path)[1].lower()
    if ext == ".gpx":
        with open(path, "r", encoding="utf-8") as f:
            return parse_gpx(f.read())
    if ext == ".fit":
        return parse_fit(path)
    raise ValueError(f"Unsupported track file type {ext!r}")


class ReplayPositionSource(PositionSource):
    """Plays back recorded fixes on a scheduler.

    Gaps between fixes are kept, divided by ``speed``. Fixes are delivered
    as recorded, so anything malformed in the file reaches the controller's
    validation like a live fix would.
    """

    kind = "replay"

    def __init__(self, fixes: Iterable[PositionFix], scheduler, speed: float = 1.0):
        if speed <= 0:
            raise ValueError("speed must be > 0")
        self.fixes = list(fixes)
        self.scheduler = scheduler
        self.speed = speed

    def start(self, on_fix, on_error):
        sub = Subscription(self.kind)
        timers = []

        def play(index):
            fix = self.fixes[index]
            on_fix(fix)
            if index + 1 < len(self.fixes) and sub.active:
                gap = (self.fixes[index + 1].timestamp - fix.timestamp).total_seconds()
                timers.append(
                    self.scheduler.call_later(max(0.0, gap) / self.speed, sub.guard(play), index + 1)
                )

        def cancel():
            for timer in timers:
                timer.cancel()

        sub.on_close(cancel)
        if self.fixes:
            timers.append(self.scheduler.call_later(0, sub.guard(play), 0))
        return sub
