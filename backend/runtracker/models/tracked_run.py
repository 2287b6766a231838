from sqlalchemy import Column, DateTime, Float, Integer, JSON, String
from sqlalchemy.sql import func
from runtracker.db import Base


class TrackedRun(Base):
    """A completed tracking session."""

    __tablename__ = "tracked_runs"

    id = Column(String(32), primary_key=True)  # session id

    started_at = Column(DateTime(timezone=True), nullable=False, index=True)
    ended_at = Column(DateTime(timezone=True), nullable=False)

    unit = Column(String(2), nullable=False, server_default="mi")
    distance = Column(Float, nullable=False)
    duration_seconds = Column(Float, nullable=False)
    average_pace = Column(Float, nullable=True)  # minutes per unit; null if no distance

    # live, demo or replay
    source = Column(String(20), nullable=False, server_default="live")

    fix_count = Column(Integer, nullable=False, server_default="0")
    jitter_rejections = Column(Integer, nullable=False, server_default="0")
    ended_by_error = Column(String(20), nullable=True)

    milestones = Column(JSON, nullable=True)      # [{name, time, improved}]
    improved_bests = Column(JSON, nullable=True)  # [name]

    geojson = Column(JSON, nullable=True)  # LineString
    bounds = Column(JSON, nullable=True)   # {minLat, minLon, maxLat, maxLon}

    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
