from __future__ import annotations

import logging
from typing import Optional

from runtracker.core.constants import JITTER_THRESHOLD
from runtracker.engine.geo import earth_radius, haversine
from runtracker.engine.types import PositionFix

logger = logging.getLogger(__name__)


class DistanceAccumulator:
    """Running total of distance over an ordered stream of fixes.

    Each accepted fix is measured against the one before it. Increments
    below ``jitter_threshold`` are treated as GPS noise and not counted,
    though the caller still keeps the fix in the session history. Fixes
    must already be validated (finite, in order) before ``add`` is called.
    """

    def __init__(self, unit: str = "mi", jitter_threshold: float = JITTER_THRESHOLD):
        if jitter_threshold < 0:
            raise ValueError("jitter_threshold must be >= 0")
        self.unit = unit
        self.radius = earth_radius(unit)
        self.jitter_threshold = jitter_threshold
        self.total = 0.0
        self.previous: Optional[PositionFix] = None
        self.jitter_rejections = 0

    def add(self, fix: PositionFix) -> float:
        """Fold in a fix and return the distance it contributed."""
        prev, self.previous = self.previous, fix
        if prev is None:
            return 0.0

        increment = haversine(
            prev.latitude, prev.longitude, fix.latitude, fix.longitude, self.radius
        )
        if increment < self.jitter_threshold:
            self.jitter_rejections += 1
            logger.debug("Discarded %.5f %s increment as jitter", increment, self.unit)
            return 0.0

        self.total += increment
        return increment
