import pytest

from runtracker.engine.distance import DistanceAccumulator
from runtracker.engine.geo import earth_radius, haversine, route_bounds, route_geojson
from runtracker.engine.pace import PaceCalculator

from conftest import MILES_PER_DEG, fix_at


def test_haversine_same_point_is_zero():
    assert haversine(40.7812, -73.9665, 40.7812, -73.9665) == 0.0


def test_haversine_one_degree_of_latitude():
    # one degree along a meridian is R * pi / 180
    assert haversine(0.0, 0.0, 1.0, 0.0) == pytest.approx(69.0941, abs=1e-3)
    assert haversine(0.0, 0.0, 1.0, 0.0, earth_radius("km")) == pytest.approx(111.1949, abs=1e-3)


def test_haversine_is_symmetric():
    a = haversine(40.7812, -73.9665, 40.7580, -73.9855)
    b = haversine(40.7580, -73.9855, 40.7812, -73.9665)
    assert a == pytest.approx(b)
    assert 1.0 < a < 2.5  # Central Park to Times Square, a bit under 2 miles


def test_unknown_unit_rejected():
    with pytest.raises(ValueError):
        earth_radius("furlong")


def test_first_fix_contributes_nothing():
    acc = DistanceAccumulator()
    assert acc.add(fix_at(40.0, -73.0, 0)) == 0.0
    assert acc.total == 0.0


def test_jitter_increment_is_discarded():
    acc = DistanceAccumulator()
    acc.add(fix_at(40.0, -73.0, 0))
    # ~0.0005 mi, under the 0.001 mi threshold
    assert acc.add(fix_at(40.000007, -73.0, 3)) == 0.0
    assert acc.total == 0.0
    assert acc.jitter_rejections == 1


def test_real_movement_accumulates():
    acc = DistanceAccumulator()
    acc.add(fix_at(0.0, 0.0, 0))
    acc.add(fix_at(0.01, 0.0, 60))
    acc.add(fix_at(0.02, 0.0, 120))
    assert acc.total == pytest.approx(0.02 * MILES_PER_DEG)
    assert acc.jitter_rejections == 0


def test_negative_jitter_threshold_rejected():
    with pytest.raises(ValueError):
        DistanceAccumulator(jitter_threshold=-1)


def test_pace_undefined_without_distance():
    assert PaceCalculator.pace(600, 0.0) is None
    assert PaceCalculator.seconds_per_unit(600, 0.0) is None


def test_pace_minutes_per_unit():
    # 30 minutes for 3 miles -> 10 min/mi
    assert PaceCalculator.pace(1800, 3.0) == pytest.approx(10.0)
    assert PaceCalculator.seconds_per_unit(1800, 3.0) == pytest.approx(600.0)


def test_route_shapes():
    fixes = [fix_at(40.0, -73.0, 0), fix_at(40.1, -73.2, 10)]
    assert route_bounds(fixes) == {"minLat": 40.0, "minLon": -73.2, "maxLat": 40.1, "maxLon": -73.0}
    assert route_geojson(fixes)["coordinates"] == [[-73.0, 40.0], [-73.2, 40.1]]
    assert route_bounds([]) is None
    assert route_geojson([]) is None
