import pytest

from runtracker.engine.best_efforts import InMemoryBestEffortStore
from runtracker.engine.controller import SessionController
from runtracker.engine.replay import ReplayPositionSource, load_track, parse_gpx
from runtracker.engine.sources import SteppedScheduler
from runtracker.engine.types import DiagnosticKind

from conftest import T0, fix_at

GPX = """<?xml version="1.0" encoding="UTF-8"?>
<gpx version="1.1" creator="tests" xmlns="http://www.topografix.com/GPX/1/1">
  <trk><trkseg>
    <trkpt lat="40.00" lon="-74.00"><time>2025-01-01T07:00:00Z</time></trkpt>
    <trkpt lat="40.01" lon="-74.00"><time>2025-01-01T07:05:00Z</time></trkpt>
    <trkpt lat="40.02" lon="-74.00"></trkpt>
    <trkpt lat="40.03" lon="-74.00"><time>2025-01-01T07:15:00Z</time></trkpt>
  </trkseg></trk>
</gpx>
"""


def test_parse_gpx_skips_untimed_points():
    fixes = parse_gpx(GPX)
    assert [f.latitude for f in fixes] == [40.00, 40.01, 40.03]
    assert fixes[0].timestamp == T0
    assert fixes[0].timestamp.tzinfo is not None


def test_load_track_by_extension(tmp_path):
    path = tmp_path / "run.gpx"
    path.write_text(GPX, encoding="utf-8")
    assert len(load_track(str(path))) == 3
    with pytest.raises(ValueError):
        load_track(str(tmp_path / "run.tcx"))


def test_replay_keeps_recorded_gaps():
    scheduler = SteppedScheduler(epoch=T0)
    source = ReplayPositionSource(parse_gpx(GPX), scheduler, speed=2.0)
    fixes = []
    source.start(fixes.append, lambda error: None)

    scheduler.advance(0)
    assert len(fixes) == 1
    scheduler.advance(150)  # 5 min gap at double speed
    assert len(fixes) == 2
    scheduler.advance(299)
    assert len(fixes) == 2
    scheduler.advance(1)
    assert len(fixes) == 3


def test_replay_rejects_bad_speed():
    with pytest.raises(ValueError):
        ReplayPositionSource([], SteppedScheduler(), speed=0)


def test_replay_through_controller():
    fixes = parse_gpx(GPX)
    scheduler = SteppedScheduler(epoch=fixes[0].timestamp)
    controller = SessionController(
        ReplayPositionSource(fixes, scheduler),
        InMemoryBestEffortStore(),
        clock=scheduler.now,
    )
    controller.start()
    scheduler.run_until_idle()
    summary = controller.stop()

    assert summary.source_kind == "replay"
    assert summary.fix_count == 3
    assert summary.duration == 900
    assert summary.distance == pytest.approx(0.03 * 69.0941, rel=1e-3)


def test_replayed_disorder_is_diagnosed():
    scheduler = SteppedScheduler(epoch=T0)
    recorded = [fix_at(40.0, -74.0, 0), fix_at(40.01, -74.0, 60), fix_at(40.02, -74.0, 30)]
    controller = SessionController(
        ReplayPositionSource(recorded, scheduler), InMemoryBestEffortStore(), clock=scheduler.now
    )
    controller.start()
    scheduler.run_until_idle()
    assert [d.kind for d in controller.diagnostics] == [DiagnosticKind.MALFORMED_FIX]
    assert len(controller.session.fixes) == 2


def test_replay_plays_one_callback_per_fix():
    fixes = [fix_at(40.0 + i * 0.001, -74.0, i * 3) for i in range(50)]
    scheduler = SteppedScheduler(epoch=T0)
    played = []
    ReplayPositionSource(fixes, scheduler).start(played.append, lambda error: None)

    assert scheduler.run_until_idle(max_callbacks=len(fixes)) == len(fixes)
    assert scheduler.pending == 0
    assert played == fixes


def test_run_until_idle_bound_leaves_rest_queued():
    fixes = [fix_at(40.0, -74.0, i) for i in range(10)]
    scheduler = SteppedScheduler(epoch=T0)
    ReplayPositionSource(fixes, scheduler).start(lambda fix: None, lambda error: None)
    assert scheduler.run_until_idle(max_callbacks=4) == 4
    assert scheduler.pending == 1
