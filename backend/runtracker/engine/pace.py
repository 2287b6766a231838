from typing import Optional


class PaceCalculator:
    """Pace in minutes per distance unit.

    ``None`` stands for "no pace yet": with zero distance there is nothing
    meaningful to show or compare.
    """

    @staticmethod
    def pace(duration_seconds: float, distance: float) -> Optional[float]:
        if distance <= 0:
            return None
        return duration_seconds / 60 / distance

    @staticmethod
    def seconds_per_unit(duration_seconds: float, distance: float) -> Optional[float]:
        if distance <= 0:
            return None
        return duration_seconds / distance
