"""Shared tracking constants.

Centralizes the numbers the tracking engine depends on so we can document
and adjust them in one place.
"""

# Mean Earth radius per supported distance unit
EARTH_RADIUS = {
    "mi": 3958.8,
    "km": 6371.0,
}

# Race distances expressed in each unit
MILESTONE_5K = {"mi": 3.10686, "km": 5.0}
MILESTONE_10K = {"mi": 6.21371, "km": 10.0}

# Increments below this (in the session unit) are GPS noise. ~5 ft in miles.
JITTER_THRESHOLD = 0.001

# Synthetic route: Central Park, NYC, drifting roughly south-east
DEMO_START_LATITUDE = 40.7812
DEMO_START_LONGITUDE = -73.9665
DEMO_INTERVAL_SECONDS = 3.0
DEMO_LAT_STEP = 0.0001
DEMO_LON_STEP = 0.0002
# Each step is scaled by uniform(0.7, 1.2)
DEMO_STEP_MIN_FACTOR = 0.7
DEMO_STEP_SPREAD = 0.5

# W3C Geolocation error codes reported by browser clients
GEO_PERMISSION_DENIED = 1
GEO_POSITION_UNAVAILABLE = 2
GEO_TIMEOUT = 3

# FIT files store coordinates as semicircles
SEMICIRCLES_PER_DEGREE = 2**31 / 180
