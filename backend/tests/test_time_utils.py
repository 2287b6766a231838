from datetime import datetime, timedelta, timezone

import pytest

from runtracker.core.time_utils import format_pace, format_time, to_utc


@pytest.mark.parametrize(
    "seconds, expected",
    [(0, "00:00"), (1505, "25:05"), (3599, "59:59"), (3600, "1:00:00"), (3725, "1:02:05"), (None, "--:--")],
)
def test_format_time(seconds, expected):
    assert format_time(seconds) == expected


def test_format_pace():
    assert format_pace(8.5) == "8:30"
    assert format_pace(10.0) == "10:00"
    assert format_pace(None) == "--:--"
    assert format_pace(0) == "--:--"


def test_to_utc():
    t0 = datetime(2025, 1, 1, 7, 0, tzinfo=timezone.utc)
    assert to_utc(1735714800000) == t0
    assert to_utc(datetime(2025, 1, 1, 7, 0)) == t0
    eastern = timezone(timedelta(hours=-5))
    assert to_utc(datetime(2025, 1, 1, 2, 0, tzinfo=eastern)) == t0
    with pytest.raises(TypeError):
        to_utc("2025-01-01")
