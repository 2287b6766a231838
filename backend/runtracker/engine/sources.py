"""Position sources.

Every source exposes the same two calls: ``start(on_fix, on_error)``
returns a ``Subscription`` and ``stop(subscription)`` releases it. The
controller never knows which kind it is talking to.

- ``LivePositionSource`` wraps a platform location watch (anything with
  ``watch_position(success, error) -> watch_id`` and ``clear_watch(id)``).
  ``PushWatch`` is such a watch for positions pushed in from outside, e.g.
  a browser posting its geolocation updates to the API.
- ``SyntheticPositionSource`` is demo mode: a seeded random walk drifting
  south-east from a start coordinate, one fix per interval.

Timer-driven sources run on a scheduler with asyncio's
``call_later(delay, callback, *args)`` shape; ``SteppedScheduler`` provides
virtual time for accelerated runs and tests.
"""

from __future__ import annotations

import heapq
import itertools
import logging
import random
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from runtracker.core import constants as C
from runtracker.core.time_utils import to_utc, utc_now
from runtracker.engine.types import PositionFix, SourceError, SourceErrorKind

logger = logging.getLogger(__name__)

FixCallback = Callable[[PositionFix], None]
ErrorCallback = Callable[[SourceError], None]


class Subscription:
    """A live sensor watch or timer. Callbacks go quiet once it is closed."""

    def __init__(self, source_kind: str):
        self.source_kind = source_kind
        self.active = True
        self._cleanup: Optional[Callable[[], None]] = None

    def guard(self, callback):
        def guarded(*args):
            if not self.active:
                logger.debug("Dropped %s callback after unsubscribe", self.source_kind)
                return None
            return callback(*args)

        return guarded

    def on_close(self, cleanup: Callable[[], None]) -> None:
        self._cleanup = cleanup

    def close(self) -> None:
        if not self.active:
            return
        self.active = False
        if self._cleanup is not None:
            self._cleanup()
            self._cleanup = None


class PositionSource(ABC):
    kind = "source"

    @abstractmethod
    def start(self, on_fix: FixCallback, on_error: ErrorCallback) -> Subscription:
        ...

    def stop(self, subscription: Subscription) -> None:
        subscription.close()


# --------- Live (platform watch) --------- #

def error_kind_for_code(code: int) -> SourceErrorKind:
    if code == C.GEO_PERMISSION_DENIED:
        return SourceErrorKind.DENIED
    if code == C.GEO_TIMEOUT:
        return SourceErrorKind.TIMEOUT
    if code != C.GEO_POSITION_UNAVAILABLE:
        logger.warning("Unknown geolocation error code %r, treating as unavailable", code)
    return SourceErrorKind.UNAVAILABLE


class PushWatch:
    """Location watch fed by explicit ``deliver_*`` calls."""

    def __init__(self):
        self._ids = itertools.count(1)
        self._watchers: dict[int, tuple[Callable, Callable]] = {}

    def watch_position(self, success, error) -> int:
        watch_id = next(self._ids)
        self._watchers[watch_id] = (success, error)
        return watch_id

    def clear_watch(self, watch_id: int) -> None:
        self._watchers.pop(watch_id, None)

    @property
    def watching(self) -> bool:
        return bool(self._watchers)

    def deliver_position(self, latitude, longitude, timestamp) -> int:
        """Hand a position to every watcher. Returns how many received it."""
        watchers = list(self._watchers.values())
        for success, _ in watchers:
            success(latitude, longitude, timestamp)
        return len(watchers)

    def deliver_error(self, code: int, message: str = "") -> int:
        watchers = list(self._watchers.values())
        for _, error in watchers:
            error(code, message)
        return len(watchers)


class LivePositionSource(PositionSource):
    kind = "live"

    def __init__(self, watch):
        self.watch = watch

    def start(self, on_fix, on_error):
        sub = Subscription(self.kind)

        def success(latitude, longitude, timestamp):
            try:
                ts = to_utc(timestamp)
            except (TypeError, ValueError, OverflowError) as exc:
                logger.warning("Dropped position with unusable timestamp %r: %s", timestamp, exc)
                return
            on_fix(PositionFix(float(latitude), float(longitude), ts))

        def error(code, message=""):
            on_error(SourceError(error_kind_for_code(code), message or ""))

        watch_id = self.watch.watch_position(sub.guard(success), sub.guard(error))
        sub.on_close(lambda: self.watch.clear_watch(watch_id))
        return sub


# --------- Schedulers --------- #

class _Timer:
    def __init__(self, when, seq, callback, args):
        self.when = when
        self.seq = seq
        self.callback = callback
        self.args = args
        self.cancelled = False

    def cancel(self):
        self.cancelled = True

    def __lt__(self, other):
        return (self.when, self.seq) < (other.when, other.seq)


class SteppedScheduler:
    """Virtual-time scheduler.

    Time only moves when ``advance`` is called, which runs every callback
    that falls due, in order. ``now`` is the matching clock.
    """

    def __init__(self, epoch: Optional[datetime] = None):
        self.epoch = epoch or datetime(2025, 1, 1, 7, 0, tzinfo=timezone.utc)
        self.elapsed = 0.0
        self._queue: list[_Timer] = []
        self._seq = itertools.count()

    def now(self) -> datetime:
        return self.epoch + timedelta(seconds=self.elapsed)

    def call_later(self, delay, callback, *args) -> _Timer:
        timer = _Timer(self.elapsed + max(0.0, delay), next(self._seq), callback, args)
        heapq.heappush(self._queue, timer)
        return timer

    @property
    def pending(self) -> int:
        return sum(1 for t in self._queue if not t.cancelled)

    def advance(self, seconds: float) -> int:
        """Move the clock forward, running due callbacks. Returns how many ran."""
        target = self.elapsed + seconds
        ran = 0
        while self._queue and self._queue[0].when <= target:
            timer = heapq.heappop(self._queue)
            if timer.cancelled:
                continue
            self.elapsed = timer.when
            timer.callback(*timer.args)
            ran += 1
        self.elapsed = target
        return ran

    def run_until_idle(self, max_callbacks: int = 100_000) -> int:
        """Run queued callbacks until none remain. Bounded for self-rescheduling timers."""
        ran = 0
        while self._queue and ran < max_callbacks:
            timer = heapq.heappop(self._queue)
            if timer.cancelled:
                continue
            self.elapsed = max(self.elapsed, timer.when)
            timer.callback(*timer.args)
            ran += 1
        return ran


# --------- Synthetic (demo mode) --------- #

class SyntheticPositionSource(PositionSource):
    kind = "demo"

    def __init__(
        self,
        scheduler,
        clock: Callable[[], datetime] = utc_now,
        interval: float = C.DEMO_INTERVAL_SECONDS,
        start_latitude: float = C.DEMO_START_LATITUDE,
        start_longitude: float = C.DEMO_START_LONGITUDE,
        seed: Optional[int] = None,
    ):
        if interval <= 0:
            raise ValueError("interval must be > 0")
        self.scheduler = scheduler
        self.clock = clock
        self.interval = interval
        self.start_latitude = start_latitude
        self.start_longitude = start_longitude
        self.seed = seed

    def start(self, on_fix, on_error):
        sub = Subscription(self.kind)
        rng = random.Random(self.seed)
        state = {
            "lat": self.start_latitude,
            "lon": self.start_longitude,
            "last": None,
            "timer": None,
        }

        def emit():
            now = to_utc(self.clock())
            if state["last"] is not None and now <= state["last"]:
                now = state["last"] + timedelta(seconds=self.interval)
            state["last"] = now
            on_fix(PositionFix(state["lat"], state["lon"], now))

        def tick():
            # gradual movement south-east
            state["lat"] -= C.DEMO_LAT_STEP * (rng.random() * C.DEMO_STEP_SPREAD + C.DEMO_STEP_MIN_FACTOR)
            state["lon"] += C.DEMO_LON_STEP * (rng.random() * C.DEMO_STEP_SPREAD + C.DEMO_STEP_MIN_FACTOR)
            emit()
            schedule(self.interval, tick)

        def first():
            emit()
            schedule(self.interval, tick)

        def schedule(delay, callback):
            if sub.active:
                state["timer"] = self.scheduler.call_later(delay, sub.guard(callback))

        def cancel():
            if state["timer"] is not None:
                state["timer"].cancel()

        sub.on_close(cancel)
        schedule(0, first)
        return sub


def select_position_source(
    watch=None,
    scheduler=None,
    *,
    demo: bool = False,
    **synthetic_options,
) -> PositionSource:
    """Live source when a watch is available and demo mode was not asked for."""
    if watch is not None and not demo:
        return LivePositionSource(watch)
    if scheduler is None:
        raise ValueError("demo mode needs a scheduler")
    logger.info("Using synthetic GPS (demo mode)")
    return SyntheticPositionSource(scheduler, **synthetic_options)
