import os
import threading

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from runtracker.db import init_db
from runtracker.engine.best_efforts import (
    InMemoryBestEffortStore,
    JsonFileBestEffortStore,
    PersistenceError,
)
from runtracker.models.best_effort import SqlBestEffortStore


@pytest.fixture(params=["memory", "json", "sql"])
def any_store(request, tmp_path):
    if request.param == "memory":
        return InMemoryBestEffortStore()
    if request.param == "json":
        return JsonFileBestEffortStore(str(tmp_path / "bests" / "best_run_times.json"))
    engine = create_engine(f"sqlite+pysqlite:///{tmp_path}/bests.db")
    init_db(bind=engine)
    return SqlBestEffortStore(sessionmaker(bind=engine))


def test_empty_store_has_no_record(any_store):
    assert any_store.get("5K") is None
    assert any_store.all() == {}


def test_first_time_is_recorded(any_store):
    assert any_store.set("5K", 1500.0) is True
    assert any_store.get("5K") == 1500.0


def test_only_strictly_lower_times_replace(any_store):
    any_store.set("5K", 1400.0)
    assert any_store.set("5K", 1500.0) is False
    assert any_store.set("5K", 1400.0) is False
    assert any_store.get("5K") == 1400.0
    assert any_store.set("5K", 1300.0) is True
    assert any_store.get("5K") == 1300.0


def test_records_are_per_milestone(any_store):
    any_store.set("5K", 1400.0)
    any_store.set("10K", 3100.0)
    assert any_store.all() == {"5K": 1400.0, "10K": 3100.0}


def test_negative_time_rejected(any_store):
    with pytest.raises(ValueError):
        any_store.set("5K", -1)


def test_json_store_survives_reopen(tmp_path):
    path = str(tmp_path / "best_run_times.json")
    JsonFileBestEffortStore(path).set("5K", 1450.5)
    assert JsonFileBestEffortStore(path).get("5K") == 1450.5


def test_json_store_corrupt_file_raises_persistence_error(tmp_path):
    path = tmp_path / "best_run_times.json"
    path.write_text("{not json")
    store = JsonFileBestEffortStore(str(path))
    with pytest.raises(PersistenceError):
        store.get("5K")
    with pytest.raises(PersistenceError):
        store.set("5K", 1000)


def test_sql_store_wraps_database_errors(tmp_path):
    engine = create_engine(f"sqlite+pysqlite:///{tmp_path}/empty.db")  # no tables created
    store = SqlBestEffortStore(sessionmaker(bind=engine))
    with pytest.raises(PersistenceError):
        store.get("5K")
    with pytest.raises(PersistenceError):
        store.set("5K", 1000)


@pytest.mark.parametrize("backend", ["memory", "json"])
def test_concurrent_writers_keep_every_record(tmp_path, backend):
    if backend == "memory":
        store = InMemoryBestEffortStore()
    else:
        store = JsonFileBestEffortStore(str(tmp_path / "best_run_times.json"))
    names = [f"m{i}" for i in range(6)]
    barrier = threading.Barrier(len(names))
    errors = []

    def writer(name):
        barrier.wait()
        try:
            for seconds in range(1200, 1000, -10):
                store.set(name, float(seconds))
        except Exception as exc:  # surfaced by the assertion below
            errors.append(exc)

    threads = [threading.Thread(target=writer, args=(name,)) for name in names]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert store.all() == {name: 1010.0 for name in names}
    if backend == "json":
        assert [p for p in os.listdir(tmp_path) if p.endswith(".tmp")] == []
