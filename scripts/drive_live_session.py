#!/usr/bin/env python3
"""
Drive a live tracking session over HTTP, acting as the browser.

Starts a live session, posts a straight-line route of geolocation updates
(epoch-millisecond timestamps, like navigator.geolocation), optionally
injects a GPS glitch, then stops the session and prints the summary.

Usage examples:
  - Against a local backend:
      python scripts/drive_live_session.py --base-url http://localhost:8000
  - A 5K at 8:00/mi with a NaN fix in the middle:
      python scripts/drive_live_session.py --base-url http://localhost:8000 --miles 3.2 --pace 8 --glitch
"""

from __future__ import annotations

import argparse
import math
import sys
import time

try:
    import requests  # type: ignore
except Exception as exc:  # pragma: no cover
    print("This script requires the 'requests' package.\nInstall with: pip install requests", file=sys.stderr)
    raise


START = (40.7812, -73.9665)
MILES_PER_DEG_LAT = 69.0941  # 3958.8 mi * pi / 180


def route(start_ms: int, miles: float, pace_min_per_mile: float, step_mi: float = 0.01):
    """Yield (lat, lon, epoch_ms) heading due south from START."""
    steps = int(math.ceil(miles / step_mi))
    step_ms = int(step_mi * pace_min_per_mile * 60 * 1000)
    for i in range(steps + 1):
        yield START[0] - (i * step_mi) / MILES_PER_DEG_LAT, START[1], start_ms + i * step_ms


def call(method: str, base_url: str, path: str, payload: dict | None = None) -> dict:
    url = f"{base_url.rstrip('/')}/{path.lstrip('/')}"
    r = requests.request(method, url, json=payload, timeout=15)
    if r.status_code >= 300:
        raise RuntimeError(f"{path} -> HTTP {r.status_code}: {r.text}")
    return r.json()


def main() -> None:
    ap = argparse.ArgumentParser(description="Post a simulated live run to the tracker API")
    ap.add_argument("--base-url", required=True, help="API base URL (e.g., http://localhost:8000)")
    ap.add_argument("--miles", type=float, default=3.2)
    ap.add_argument("--pace", type=float, default=9.0, help="Minutes per mile")
    ap.add_argument("--glitch", action="store_true", help="Send one NaN fix halfway through")
    args = ap.parse_args()

    start_ms = int(time.time() * 1000)
    session = call("POST", args.base_url, "sessions/", {"mode": "live", "started_at": start_ms})
    sid = session["session_id"]
    print(f"Started session {sid}")

    points = list(route(start_ms, args.miles, args.pace))
    for i, (lat, lon, ts) in enumerate(points):
        if args.glitch and i == len(points) // 2:
            # requests serializes NaN as a bare NaN literal, which the API accepts
            resp = call("POST", args.base_url, f"sessions/{sid}/positions",
                        {"latitude": float("nan"), "longitude": lon, "timestamp": ts})
            for d in resp["diagnostics"]:
                print(f"  diagnostic: {d['kind']} - {d['message']}")
        call("POST", args.base_url, f"sessions/{sid}/positions",
             {"latitude": lat, "longitude": lon, "timestamp": ts})

    summary = call("POST", args.base_url, f"sessions/{sid}/stop")
    for m in summary["milestones_crossed"]:
        print(f"  {m['name']}: {m['time_display']}")
    print(
        f"{summary['distance']:.2f} {summary['unit']} in {summary['duration_display']} "
        f"({summary['pace_display']}/{summary['unit']}), new bests: {summary['improved_bests'] or 'none'}"
    )


if __name__ == "__main__":
    main()
