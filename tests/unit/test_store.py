"""
tests/unit/test_store.py — TaskStore and AutoSaver

Covers:
  - File naming: URL-quoted task name + .json
  - save() writes {"type", "state"} per task and deletes files of removed tasks
  - load() restores tasks without constructors, bad files are reported and
    skipped, duplicates rejected
  - Time-dependent tasks catch up on ticks missed while the process was down
  - AutoSaver: disabled at interval <= 0, saves periodically otherwise
"""

from __future__ import annotations

import json
import sys
import time
from pathlib import Path
from unittest.mock import MagicMock

import pytest

# ── path setup (so `balance` is importable without installing the package) ───
_SRC = Path(__file__).parent.parent.parent / "src"
if str(_SRC) not in sys.path:
    sys.path.insert(0, str(_SRC))

from balance.exceptions import StorageError
from balance.storage.store import AutoSaver, TaskStore, file_name_for
from balance.tasks.base import TimeDependentTask, current_time_ms
from balance.tasks.collection import TaskCollection
from balance.tasks.fields import FieldAccessor
from balance.tasks.loader import BUILTIN_TYPES_DIR, TaskTypeLoader
from balance.tasks.registry import TypeRegistry


class _ExplodingTask(TimeDependentTask):
    """Fails whenever a tick is applied."""

    def update(self) -> None:
        raise RuntimeError("tick failed")

    def progress(self) -> None:
        pass


# ─────────────────────────────────────────────────────────────────────────────
# Fixtures
# ─────────────────────────────────────────────────────────────────────────────

@pytest.fixture(scope="module")
def registry():
    loader = TaskTypeLoader()
    loader.load_all([BUILTIN_TYPES_DIR], strict=True)
    return loader.registry


@pytest.fixture
def collection():
    return TaskCollection(scheduler=MagicMock())


@pytest.fixture
def store(tmp_path):
    return TaskStore(tmp_path / "save.d")


def _add(registry, collection, type_name, *args):
    task = FieldAccessor().construct(registry.get(type_name), list(args))
    assert collection.add(task)
    return task


def _write(store, file_name, payload):
    store.save_dir.mkdir(parents=True, exist_ok=True)
    path = store.save_dir / file_name
    if isinstance(payload, str):
        path.write_text(payload, "utf-8")
    else:
        path.write_text(json.dumps(payload), "utf-8")
    return path


# ─────────────────────────────────────────────────────────────────────────────
# File naming
# ─────────────────────────────────────────────────────────────────────────────

class TestFileNames:
    @pytest.mark.parametrize("name,expected", [
        ("read", "read.json"),
        ("morning run", "morning%20run.json"),
        ("a/b", "a%2Fb.json"),
        ("..", "...json"),
    ])
    def test_quoting(self, name, expected):
        assert file_name_for(name) == expected

    def test_path_for_stays_in_save_dir(self, store):
        assert store.path_for("../escape").parent == store.save_dir


# ─────────────────────────────────────────────────────────────────────────────
# save()
# ─────────────────────────────────────────────────────────────────────────────

class TestSave:
    def test_writes_one_file_per_task(self, registry, collection, store):
        _add(registry, collection, "CounterTask", "read", "10")
        _add(registry, collection, "CompletionTask", "morning run")

        report = store.save(collection)

        assert sorted(report.saved) == ["morning run", "read"]
        assert report.ok
        data = json.loads((store.save_dir / "read.json").read_text("utf-8"))
        assert data == {
            "type": "CounterTask",
            "state": {"name": "read", "counter": 0, "goal": 10},
        }
        assert (store.save_dir / "morning%20run.json").exists()

    def test_no_temp_files_left(self, registry, collection, store):
        _add(registry, collection, "CounterTask", "read", "10")
        store.save(collection)
        assert [p.name for p in store.save_dir.iterdir()] == ["read.json"]

    def test_removed_task_file_deleted(self, registry, collection, store):
        _add(registry, collection, "CounterTask", "read", "10")
        store.save(collection)
        collection.remove("read")

        report = store.save(collection)

        assert report.deleted == ["read"]
        assert not (store.save_dir / "read.json").exists()
        assert collection.pending_delete() == frozenset()

    def test_delete_of_never_saved_name(self, collection, store):
        collection.remove("ghost")
        report = store.save(collection)
        assert report.deleted == ["ghost"]
        assert report.ok

    def test_save_dir_is_a_file(self, tmp_path, collection):
        blocker = tmp_path / "blocker"
        blocker.write_text("x")
        with pytest.raises(StorageError):
            TaskStore(blocker).save(collection)

    def test_empty_collection(self, collection, store):
        report = store.save(collection)
        assert report.saved == []
        assert store.save_dir.is_dir()


# ─────────────────────────────────────────────────────────────────────────────
# load()
# ─────────────────────────────────────────────────────────────────────────────

class TestLoad:
    def test_round_trip(self, registry, collection, store):
        counter = _add(registry, collection, "CounterTask", "read", "10")
        counter.progress()
        done = _add(registry, collection, "CompletionTask", "laundry")
        done.progress()
        store.save(collection)

        fresh = TaskCollection(scheduler=MagicMock())
        report = store.load(fresh, registry)

        assert sorted(report.restored) == ["laundry", "read"]
        assert report.ok
        assert fresh.get("read").status() == "1/10"
        assert fresh.get("laundry").status() == "completed"
        assert fresh.get("read").activated

    def test_missing_dir(self, registry, collection, tmp_path):
        report = TaskStore(tmp_path / "nope").load(collection, registry)
        assert report.restored == []
        assert report.ok

    def test_bad_files_skipped(self, registry, collection, store):
        _write(store, "good.json", {"type": "CounterTask", "state": {"name": "good", "goal": 3}})
        _write(store, "unknown.json", {"type": "Nope", "state": {"name": "u"}})
        _write(store, "garbage.json", "{not json")
        _write(store, "list.json", "[1, 2]")
        _write(store, "notype.json", {"state": {"name": "n"}})
        _write(store, "ignored.txt", "whatever")

        report = store.load(collection, registry)

        assert report.restored == ["good"]
        assert set(report.failures) == {"unknown.json", "garbage.json", "list.json", "notype.json"}
        assert "UnknownTaskTypeError" in report.failures["unknown.json"]
        assert collection.names() == ["good"]

    @pytest.mark.parametrize("clock", [
        {"interval_ms": 0, "last_update_ms": 0},
        {"interval_ms": -1000, "last_update_ms": 0},
        {"interval_ms": 1000, "last_update_ms": None},
        {"interval_ms": 1000.5, "last_update_ms": 0},
    ])
    def test_unusable_clock_skipped(self, registry, collection, store, clock):
        _write(store, "bad.json", {
            "type": "FrequencyTask",
            "state": {"name": "bad", "counter": 0.0, "rate": 1.0, **clock},
        })
        _write(store, "good.json", {"type": "CounterTask", "state": {"name": "good", "goal": 3}})

        report = store.load(collection, registry)

        assert report.restored == ["good"]
        assert list(report.failures) == ["bad.json"]
        assert "ValueError" in report.failures["bad.json"]
        assert collection.names() == ["good"]
        collection._scheduler.schedule.assert_not_called()

    def test_fractional_int_field_skipped(self, registry, collection, store):
        _write(store, "read.json", {"type": "CounterTask", "state": {"name": "read", "goal": 3.7}})

        report = store.load(collection, registry)

        assert report.restored == []
        assert "read.json" in report.failures
        assert len(collection) == 0

    def test_failing_catch_up_skipped(self, collection, store):
        types = TypeRegistry()
        types.register_class(_ExplodingTask)
        _write(store, "boom.json", {
            "type": "_ExplodingTask",
            "state": {"name": "boom", "interval_ms": 1000, "last_update_ms": 0},
        })
        _write(store, "fine.json", {
            "type": "_ExplodingTask",
            "state": {"name": "fine", "interval_ms": 1000, "last_update_ms": current_time_ms()},
        })

        report = store.load(collection, types)

        assert report.restored == ["fine"]
        assert "RuntimeError" in report.failures["boom.json"]
        assert collection.names() == ["fine"]

    def test_duplicate_name_rejected(self, registry, collection, store):
        _write(store, "a.json", {"type": "CounterTask", "state": {"name": "x", "goal": 1}})
        _write(store, "b.json", {"type": "CounterTask", "state": {"name": "x", "goal": 2}})

        report = store.load(collection, registry)

        assert report.restored == ["x"]
        assert list(report.failures) == ["b.json"]
        assert collection.get("x").goal == 1

    def test_catch_up_after_downtime(self, registry, collection, store):
        now = current_time_ms()
        _write(store, "run.json", {
            "type": "FrequencyTask",
            "state": {
                "name": "run",
                "interval_ms": 60_000,
                "last_update_ms": now - 5 * 60_000 - 30_000,
                "counter": 0.0,
                "rate": 1.0,
            },
        })

        store.load(collection, registry)

        task = collection.get("run")
        assert task.counter == -5.0
        assert task.last_update_ms == now - 30_000
        collection._scheduler.schedule.assert_called_once()


# ─────────────────────────────────────────────────────────────────────────────
# AutoSaver
# ─────────────────────────────────────────────────────────────────────────────

class TestAutoSaver:
    @pytest.mark.parametrize("interval", [0, -1])
    def test_disabled(self, collection, store, interval):
        saver = AutoSaver(store, collection, interval)
        assert not saver.enabled
        saver.start()
        assert not saver.running
        saver.stop()

    def test_saves_periodically(self, registry, collection, store):
        _add(registry, collection, "CounterTask", "read", "10")
        saver = AutoSaver(store, collection, 0.05)
        saver.start()
        try:
            assert saver.running
            deadline = time.monotonic() + 2.0
            while not store.path_for("read").exists() and time.monotonic() < deadline:
                time.sleep(0.01)
            assert store.path_for("read").exists()
        finally:
            saver.stop()
        assert not saver.running

    def test_start_twice_keeps_one_thread(self, collection, store):
        saver = AutoSaver(store, collection, 60)
        saver.start()
        thread = saver._thread
        saver.start()
        try:
            assert saver._thread is thread
        finally:
            saver.stop()
