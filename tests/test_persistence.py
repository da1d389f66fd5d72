"""Tests for terrarium.persistence — JSON state store, offline decay and autosave."""

from __future__ import annotations

import asyncio
import json

import pytest

from terrarium.persistence import AutoSaver, CreatureRecord, JsonStateStore, format_age


class WallClock:
    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture()
def wall():
    return WallClock()


@pytest.fixture()
def store(tmp_path, wall):
    return JsonStateStore(tmp_path / "creature.json", offline_decay_per_second=0.01, clock=wall)


def _record(**overrides) -> CreatureRecord:
    data = {"traits": {"curiosity": 0.7}, "energy": 60.0, "level": 2, "xp": 50.0}
    data.update(overrides)
    return CreatureRecord(**data)


# ---------------------------------------------------------------------------
# Round trip
# ---------------------------------------------------------------------------

class TestJsonStateStore:
    def test_missing_file_loads_none(self, store):
        assert store.load() is None

    def test_save_then_load(self, store):
        record = _record(conversation=[{"user_message": "hi", "creature_action": "glow"}])
        store.save(record)
        loaded = store.load()
        assert loaded is not None
        assert loaded.creature_id == record.creature_id
        assert loaded.level == 2
        assert loaded.energy == pytest.approx(60.0)
        assert loaded.conversation == [{"user_message": "hi", "creature_action": "glow"}]

    def test_offline_time_ages_and_drains(self, store, wall):
        store.save(_record(total_age=100.0))
        wall.now += 1000
        loaded = store.load()
        assert loaded.total_age == pytest.approx(1100.0)
        assert loaded.energy == pytest.approx(50.0)

    def test_offline_drain_floors_at_zero(self, store, wall):
        store.save(_record(energy=5.0))
        wall.now += 86_400
        assert store.load().energy == 0.0

    def test_clock_moving_backwards_does_not_add_energy(self, store, wall):
        store.save(_record())
        wall.now -= 500
        loaded = store.load()
        assert loaded.energy == pytest.approx(60.0)

    def test_incomplete_exchanges_dropped_on_load(self, store):
        store.save(_record(conversation=[
            {"user_message": "hi", "creature_action": "glow"},
            {"user_message": "", "creature_action": "glow"},
            {"creature_action": "spin"},
        ]))
        assert len(store.load().conversation) == 1

    def test_corrupt_json_returns_none(self, store):
        store.path.write_text("{not json", encoding="utf-8")
        assert store.load() is None

    def test_invalid_record_returns_none(self, store):
        store.path.write_text(json.dumps({"traits": {}, "energy": 500}), encoding="utf-8")
        assert store.load() is None

    def test_save_is_atomic_and_leaves_no_temp_files(self, store, tmp_path):
        store.save(_record())
        store.save(_record(level=3))
        assert [p.name for p in tmp_path.iterdir()] == ["creature.json"]

    def test_save_creates_parent_directories(self, tmp_path, wall):
        nested = JsonStateStore(tmp_path / "a" / "b" / "creature.json", clock=wall)
        nested.save(_record())
        assert nested.path.exists()

    def test_clear(self, store):
        store.save(_record())
        store.clear()
        assert store.load() is None
        store.clear()


def test_record_defaults():
    record = CreatureRecord(traits={})
    assert record.generation == 1
    assert record.strategy == "legacy"
    assert record.parent_traits is None


# ---------------------------------------------------------------------------
# AutoSaver
# ---------------------------------------------------------------------------

class TestAutoSaver:
    @pytest.mark.asyncio
    async def test_periodic_and_final_save(self, store):
        snapshots = []

        def snapshot():
            record = _record(xp=float(len(snapshots)))
            snapshots.append(record)
            return record

        saver = AutoSaver(store, snapshot, interval=0.01)
        saver.start()
        await asyncio.sleep(0.05)
        await saver.stop()

        assert len(snapshots) >= 2
        assert store.load().xp == snapshots[-1].xp

    def test_save_now_without_record(self, store):
        saver = AutoSaver(store, lambda: None)
        assert saver.save_now() is False

    def test_save_failure_is_logged_not_raised(self, store, monkeypatch):
        def _fail(record):
            raise OSError("disk full")

        monkeypatch.setattr(store, "save", _fail)
        saver = AutoSaver(store, _record)
        assert saver.save_now() is False


@pytest.mark.parametrize(
    ("seconds", "expected"),
    [(42, "42s"), (17 * 60, "17m"), (3.5 * 3600, "3.5h"), (2.1 * 86400, "2.1d")],
)
def test_format_age(seconds, expected):
    assert format_age(seconds) == expected
