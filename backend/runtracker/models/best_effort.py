from sqlalchemy import Column, DateTime, Float, String, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.sql import func

from runtracker.db import Base, SessionLocal
from runtracker.engine.best_efforts import BestEffortStore, PersistenceError


class BestEffort(Base):
    __tablename__ = "best_efforts"

    milestone_name = Column(String(40), primary_key=True)

    # Best (lowest) estimated elapsed time at the milestone, seconds
    best_seconds = Column(Float, nullable=False)

    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )


class SqlBestEffortStore(BestEffortStore):
    """Bests in the ``best_efforts`` table.

    The write is a conditional UPDATE (``best_seconds > :new``), so a slower
    time never replaces a faster one even with several writers.
    """

    def __init__(self, session_factory=SessionLocal):
        self.session_factory = session_factory

    def _read(self, milestone_name):
        db = self.session_factory()
        try:
            row = db.get(BestEffort, milestone_name)
            return row.best_seconds if row else None
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Could not read best effort {milestone_name}: {exc}") from exc
        finally:
            db.close()

    def _compare_and_set(self, milestone_name, seconds):
        db = self.session_factory()
        try:
            if db.get(BestEffort, milestone_name) is None:
                db.add(BestEffort(milestone_name=milestone_name, best_seconds=seconds))
                try:
                    db.commit()
                    return True
                except IntegrityError:
                    # someone inserted first; fall through to the conditional update
                    db.rollback()
            result = db.execute(
                update(BestEffort)
                .where(BestEffort.milestone_name == milestone_name)
                .where(BestEffort.best_seconds > seconds)
                .values(best_seconds=seconds)
            )
            db.commit()
            return result.rowcount > 0
        except SQLAlchemyError as exc:
            db.rollback()
            raise PersistenceError(f"Could not write best effort {milestone_name}: {exc}") from exc
        finally:
            db.close()

    def _items(self):
        db = self.session_factory()
        try:
            rows = db.query(BestEffort).order_by(BestEffort.best_seconds).all()
            return {r.milestone_name: r.best_seconds for r in rows}
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Could not list best efforts: {exc}") from exc
        finally:
            db.close()
