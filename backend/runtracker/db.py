from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from runtracker.core.config import settings

Base = declarative_base()

# SQLite connections are shared between the event loop and worker threads
connect_args = {"check_same_thread": False} if settings.database_url.startswith("sqlite") else {}

engine = create_engine(settings.database_url, pool_pre_ping=True, connect_args=connect_args)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(bind=None) -> None:
    """Create the best_efforts and tracked_runs tables if missing."""
    # Models register their tables on Base when imported
    from runtracker.models import best_effort, tracked_run  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
