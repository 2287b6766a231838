"""Personal-best storage.

A best-effort store maps a milestone name to the lowest elapsed time (in
seconds) ever recorded for it. Writes only ever improve a record: ``set``
is a compare-and-set against the stored value, so an equal or slower time
leaves the record untouched.

Backends signal storage trouble by raising ``PersistenceError``; the engine
turns that into a diagnostic and keeps going.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from typing import Optional

logger = logging.getLogger(__name__)


class PersistenceError(Exception):
    """The backing store could not be read or written."""


class BestEffortStore(ABC):
    def get(self, milestone_name: str) -> Optional[float]:
        return self._read(milestone_name)

    def set(self, milestone_name: str, seconds: float) -> bool:
        """Record ``seconds`` if it beats the stored best. Returns True on write."""
        if seconds is None or seconds < 0:
            raise ValueError("best effort time must be a non-negative number")
        written = self._compare_and_set(milestone_name, float(seconds))
        if written:
            logger.info("New best for %s: %.1fs", milestone_name, seconds)
        return written

    def all(self) -> dict[str, float]:
        return self._items()

    @abstractmethod
    def _read(self, milestone_name: str) -> Optional[float]:
        ...

    @abstractmethod
    def _compare_and_set(self, milestone_name: str, seconds: float) -> bool:
        ...

    @abstractmethod
    def _items(self) -> dict[str, float]:
        ...


class InMemoryBestEffortStore(BestEffortStore):
    def __init__(self, initial: Optional[dict[str, float]] = None):
        self._bests: dict[str, float] = dict(initial or {})
        self._lock = threading.Lock()

    def _read(self, milestone_name):
        return self._bests.get(milestone_name)

    def _compare_and_set(self, milestone_name, seconds):
        with self._lock:
            current = self._bests.get(milestone_name)
            if current is not None and seconds >= current:
                return False
            self._bests[milestone_name] = seconds
            return True

    def _items(self):
        return dict(self._bests)


class JsonFileBestEffortStore(BestEffortStore):
    """Bests kept as one JSON object ``{"5K": 1520.4, ...}`` in a file."""

    def __init__(self, path: str):
        self.path = path
        # shared by the event loop and API worker threads
        self._lock = threading.Lock()

    def _load(self) -> dict[str, float]:
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as exc:
            raise PersistenceError(f"Could not read {self.path}: {exc}") from exc
        if not isinstance(data, dict):
            raise PersistenceError(f"{self.path} does not hold a JSON object")
        return {str(k): float(v) for k, v in data.items() if v is not None}

    def _save(self, data: dict[str, float]) -> None:
        directory = os.path.dirname(self.path) or "."
        try:
            os.makedirs(directory, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w", encoding="utf-8", dir=directory, suffix=".tmp", delete=False
            ) as f:
                json.dump(data, f)
            os.replace(f.name, self.path)
        except OSError as exc:
            raise PersistenceError(f"Could not write {self.path}: {exc}") from exc

    def _read(self, milestone_name):
        return self._load().get(milestone_name)

    def _compare_and_set(self, milestone_name, seconds):
        with self._lock:
            data = self._load()
            current = data.get(milestone_name)
            if current is not None and seconds >= current:
                return False
            data[milestone_name] = seconds
            self._save(data)
            return True

    def _items(self):
        return self._load()
