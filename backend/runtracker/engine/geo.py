import math

from runtracker.core.constants import EARTH_RADIUS


def earth_radius(unit: str) -> float:
    try:
        return EARTH_RADIUS[unit]
    except KeyError:
        raise ValueError(f"Unknown distance unit {unit!r}") from None


def haversine(lat1, lon1, lat2, lon2, radius: float = EARTH_RADIUS["mi"]) -> float:
    """Return great‑circle distance between two WGS84 points.

    The result is in whatever unit ``radius`` is given in (miles by default).
    Uses the standard haversine formula; sufficient for per‑fix distances
    over a typical GPS activity track.
    """
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lon2 - lon1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return radius * c


def route_bounds(fixes):
    """Bounding box {minLat, minLon, maxLat, maxLon} of a fix sequence, or None."""
    if not fixes:
        return None
    lats = [f.latitude for f in fixes]
    lons = [f.longitude for f in fixes]
    return {
        "minLat": min(lats),
        "minLon": min(lons),
        "maxLat": max(lats),
        "maxLon": max(lons),
    }


def route_geojson(fixes):
    """GeoJSON LineString of a fix sequence, or None when empty."""
    if not fixes:
        return None
    return {
        "type": "LineString",
        "coordinates": [[f.longitude, f.latitude] for f in fixes],
    }
