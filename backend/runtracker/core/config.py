from pydantic_settings import BaseSettings
from pydantic import field_validator

from runtracker.core.constants import (
    DEMO_INTERVAL_SECONDS,
    DEMO_START_LATITUDE,
    DEMO_START_LONGITUDE,
    EARTH_RADIUS,
    JITTER_THRESHOLD,
)


class Settings(BaseSettings):
    database_url: str = "sqlite+pysqlite:///./runtracker.db"
    uploads_dir: str = "uploads"  # relative to backend working dir
    log_level: str = "INFO"

    # Distance unit for every engine value: "mi" or "km"
    distance_unit: str = "mi"
    jitter_threshold: float = JITTER_THRESHOLD
    # JSON object of {name: threshold}, e.g. '{"5K": 3.10686}'.
    # None uses the 5K/10K defaults for the unit.
    milestones: dict[str, float] | None = None

    # Demo mode (synthetic GPS)
    demo_interval_seconds: float = DEMO_INTERVAL_SECONDS
    demo_start_latitude: float = DEMO_START_LATITUDE
    demo_start_longitude: float = DEMO_START_LONGITUDE
    demo_seed: int | None = None

    # Personal bests: "sql", "json" or "memory"
    best_efforts_backend: str = "sql"
    best_efforts_path: str = "uploads/best_run_times.json"

    # Treat POSITION_UNAVAILABLE as session-ending
    end_session_on_signal_loss: bool = False

    # Finished live/demo sessions kept in memory after they are saved
    completed_sessions_kept: int = 100

    # Allow empty env strings for optional fields
    @field_validator("milestones", "demo_seed", mode="before")
    @classmethod
    def _empty_to_none(cls, v):
        if v in ("", None, "null", "None"):
            return None
        return v

    @field_validator("distance_unit")
    @classmethod
    def _known_unit(cls, v):
        if v not in EARTH_RADIUS:
            raise ValueError(f"distance_unit must be one of {sorted(EARTH_RADIUS)}")
        return v

    class Config:
        env_file = ".env"


settings = Settings()
