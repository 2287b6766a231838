"""Run an accelerated demo-mode session in-process and print the summary.

Uses the configured best-efforts backend, so repeated runs build up
personal bests the same way the API does.

    python scripts/simulate_demo_run.py --minutes 40 --seed 7
"""

import argparse

from runtracker.api.deps import build_store, configured_milestones
from runtracker.core.config import settings
from runtracker.core.time_utils import format_pace, format_time
from runtracker.engine.controller import SessionController
from runtracker.engine.sources import SteppedScheduler, SyntheticPositionSource


def simulate(minutes: float, seed, store):
    scheduler = SteppedScheduler()
    source = SyntheticPositionSource(
        scheduler,
        clock=scheduler.now,
        interval=settings.demo_interval_seconds,
        start_latitude=settings.demo_start_latitude,
        start_longitude=settings.demo_start_longitude,
        seed=seed,
    )
    controller = SessionController(
        source,
        store,
        configured_milestones(settings),
        unit=settings.distance_unit,
        jitter_threshold=settings.jitter_threshold,
        clock=scheduler.now,
        on_crossing=lambda c: print(f"  {c.milestone_name} at {format_time(c.estimated_elapsed_time)}"),
    )
    controller.start()
    scheduler.advance(minutes * 60)
    return controller.stop()


def main():
    ap = argparse.ArgumentParser(description="Simulate a demo-mode run")
    ap.add_argument("--minutes", type=float, default=30.0, help="Simulated run length")
    ap.add_argument("--seed", type=int, default=settings.demo_seed, help="Route seed")
    args = ap.parse_args()

    store = build_store(settings)
    if settings.best_efforts_backend == "sql":
        from runtracker.db import init_db

        init_db()

    summary = simulate(args.minutes, args.seed, store)
    print(
        f"Distance {summary.distance:.2f} {summary.unit} in {format_time(summary.duration)} "
        f"({format_pace(summary.average_pace)}/{summary.unit})"
    )
    if summary.improved_bests:
        print("New bests: " + ", ".join(summary.improved_bests))
    for name, seconds in store.all().items():
        print(f"Best {name}: {format_time(seconds)}")


if __name__ == "__main__":
    main()
