import pytest
from pydantic import ValidationError

from runtracker.api.deps import build_store, configured_milestones
from runtracker.core.config import Settings
from runtracker.engine.best_efforts import InMemoryBestEffortStore, JsonFileBestEffortStore


def test_empty_env_values_become_none(monkeypatch):
    monkeypatch.setenv("DEMO_SEED", "")
    cfg = Settings()
    assert cfg.demo_seed is None
    assert [m.name for m in configured_milestones(cfg)] == ["5K", "10K"]


def test_milestones_from_env(monkeypatch):
    monkeypatch.setenv("MILESTONES", '{"mile": 1.0, "half": 13.1094}')
    cfg = Settings()
    assert [(m.name, m.threshold_distance) for m in configured_milestones(cfg)] == [
        ("mile", 1.0),
        ("half", 13.1094),
    ]


def test_kilometre_defaults(monkeypatch):
    monkeypatch.setenv("DISTANCE_UNIT", "km")
    cfg = Settings()
    assert [m.threshold_distance for m in configured_milestones(cfg)] == [5.0, 10.0]


def test_unknown_unit_rejected(monkeypatch):
    monkeypatch.setenv("DISTANCE_UNIT", "furlong")
    with pytest.raises(ValidationError):
        Settings()


def test_build_store_backends(tmp_path):
    assert isinstance(build_store(Settings(best_efforts_backend="memory")), InMemoryBestEffortStore)
    json_cfg = Settings(best_efforts_backend="json", best_efforts_path=str(tmp_path / "b.json"))
    assert isinstance(build_store(json_cfg), JsonFileBestEffortStore)
    with pytest.raises(ValueError):
        build_store(Settings(best_efforts_backend="redis"))
