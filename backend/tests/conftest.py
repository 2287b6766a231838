import math
import os
import tempfile
from datetime import datetime, timedelta, timezone

# Point the app at a throwaway SQLite DB before anything imports settings
_tmp = tempfile.mkdtemp(prefix="runtracker-tests-")
os.environ.setdefault("DATABASE_URL", f"sqlite+pysqlite:///{_tmp}/test.db")
os.environ.setdefault("UPLOADS_DIR", os.path.join(_tmp, "uploads"))
os.environ.setdefault("BEST_EFFORTS_BACKEND", "sql")

import pytest  # noqa: E402

from runtracker.engine.best_efforts import InMemoryBestEffortStore  # noqa: E402
from runtracker.engine.controller import SessionController  # noqa: E402
from runtracker.engine.sources import LivePositionSource, PushWatch  # noqa: E402
from runtracker.engine.types import MilestoneDefinition, PositionFix  # noqa: E402

T0 = datetime(2025, 1, 1, 7, 0, tzinfo=timezone.utc)
MILES_PER_DEG = 3958.8 * math.pi / 180


def fix_at(lat, lon, seconds):
    """Fix ``seconds`` after T0."""
    return PositionFix(lat, lon, T0 + timedelta(seconds=seconds))


@pytest.fixture
def store():
    return InMemoryBestEffortStore()


@pytest.fixture
def watch():
    return PushWatch()


@pytest.fixture
def make_controller(store, watch):
    """Controller on a live PushWatch source with its clock pinned to T0."""

    def _make(milestones=None, **kwargs):
        kwargs.setdefault("clock", lambda: T0)
        return SessionController(
            LivePositionSource(watch),
            kwargs.pop("store", store),
            milestones,
            **kwargs,
        )

    return _make


@pytest.fixture
def one_mile():
    return [MilestoneDefinition("1mi", 1.0)]
