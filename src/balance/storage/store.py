"""
storage/store.py — Task Persistence

One JSON file per task in a save directory:

    save.d/
      morning%20run.json     {"type": "FrequencyTask", "state": {...}}
      read.json              {"type": "CounterTask",   "state": {...}}

File names are the URL-quoted task name plus ".json", so any name maps to a
single flat file. Writes go to a temp file first and are moved into place,
so a crash mid-save never leaves a half-written task behind.

Loading restores each task without calling its constructors and adds it to
the collection, which activates it (time-dependent tasks catch up on the
ticks missed while the process was down).

AutoSaver runs save() on a daemon thread every N seconds.
"""

from __future__ import annotations

import json
import os
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional
from urllib.parse import quote

from balance.exceptions import StorageError
from balance.observability.logger import get_logger
from balance.tasks.collection import TaskCollection
from balance.tasks.registry import TypeRegistry

log = get_logger(__name__)

SAVE_SUFFIX = ".json"


@dataclass
class SaveReport:
    saved: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)
    failures: dict[str, str] = field(default_factory=dict)  # task name -> reason

    @property
    def ok(self) -> bool:
        return not self.failures


@dataclass
class RestoreReport:
    restored: list[str] = field(default_factory=list)
    failures: dict[str, str] = field(default_factory=dict)  # file name -> reason

    @property
    def ok(self) -> bool:
        return not self.failures


def file_name_for(task_name: str) -> str:
    """Save file name for a task name: every reserved character is quoted."""
    return quote(task_name, safe="") + SAVE_SUFFIX


def _atomic_write_json(path: Path, data: dict[str, Any]) -> None:
    tmp = path.with_suffix(".tmp")
    tmp.write_text(json.dumps(data, ensure_ascii=False, indent=2), "utf-8")
    os.replace(tmp, path)


def _load_json(path: Path) -> dict[str, Any]:
    val = json.loads(path.read_text("utf-8"))
    if isinstance(val, dict):
        return val
    raise ValueError("Expected JSON object")


# ─────────────────────────────────────────────────────────────────────────────
# TaskStore
# ─────────────────────────────────────────────────────────────────────────────

class TaskStore:
    """Reads and writes a TaskCollection to a save directory."""

    def __init__(self, save_dir: Path | str) -> None:
        self.save_dir = Path(save_dir)
        # save() may be called from the REPL and the AutoSaver at once.
        self._save_lock = threading.Lock()

    def path_for(self, task_name: str) -> Path:
        return self.save_dir / file_name_for(task_name)

    # ── Save ──────────────────────────────────────────────────────────────────

    def save(self, collection: TaskCollection) -> SaveReport:
        """
        Delete files of removed tasks, then write every live task.

        A file that cannot be written or deleted is logged and reported;
        the rest of the save continues. Raises StorageError only if the save
        directory itself cannot be created.
        """
        report = SaveReport()
        with self._save_lock:
            try:
                self.save_dir.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise StorageError(f"cannot create save directory {self.save_dir}: {e}") from e

            handled: list[str] = []
            for name in sorted(collection.pending_delete()):
                try:
                    self.path_for(name).unlink(missing_ok=True)
                except OSError as e:
                    report.failures[name] = f"delete failed: {e}"
                    log.warning("store.delete_failed", task=name, error=str(e))
                    continue
                handled.append(name)
                report.deleted.append(name)
            collection.clear_pending_delete(handled)

            for task in collection:
                with task.lock:
                    payload = {"type": type(task).__name__, "state": task.to_state()}
                try:
                    _atomic_write_json(self.path_for(task.name), payload)
                except (OSError, TypeError, ValueError) as e:
                    report.failures[task.name] = f"write failed: {e}"
                    log.warning(
                        "store.write_failed",
                        task=task.name,
                        error=str(e),
                        error_type=type(e).__name__,
                    )
                    continue
                report.saved.append(task.name)

        log.info(
            "store.saved",
            saved=len(report.saved),
            deleted=len(report.deleted),
            failed=len(report.failures),
            save_dir=str(self.save_dir),
        )
        return report

    # ── Load ──────────────────────────────────────────────────────────────────

    def load(self, collection: TaskCollection, registry: TypeRegistry) -> RestoreReport:
        """
        Restore every saved task into collection.

        Bad files (unreadable, unknown type, invalid state, failing catch-up,
        duplicate name) are logged and skipped. A missing save directory means
        there is nothing to load.
        """
        report = RestoreReport()
        if not self.save_dir.is_dir():
            log.debug("store.dir_not_found", save_dir=str(self.save_dir))
            return report

        for path in sorted(self.save_dir.glob(f"*{SAVE_SUFFIX}")):
            try:
                data = _load_json(path)
                type_name = data["type"]
                state = data.get("state") or {}
                descriptor = registry.get(type_name)
                task = descriptor.task_class.restore(state)
                # Activation replays missed ticks through plugin code.
                added = collection.add(task)
            except Exception as e:
                report.failures[path.name] = f"{type(e).__name__}: {e}"
                log.warning(
                    "store.restore_failed",
                    file=path.name,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                continue

            if not added:
                report.failures[path.name] = f"duplicate task name '{task.name}'"
                log.warning("store.restore_duplicate", file=path.name, task=task.name)
                continue
            report.restored.append(task.name)

        log.info(
            "store.loaded",
            restored=len(report.restored),
            failed=len(report.failures),
            save_dir=str(self.save_dir),
        )
        return report


# ─────────────────────────────────────────────────────────────────────────────
# AutoSaver
# ─────────────────────────────────────────────────────────────────────────────

class AutoSaver:
    """
    Saves the collection every interval_s seconds on a daemon thread.

    interval_s <= 0 disables it: start() then does nothing.
    """

    def __init__(self, store: TaskStore, collection: TaskCollection, interval_s: float) -> None:
        self.store = store
        self.collection = collection
        self.interval_s = interval_s
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def enabled(self) -> bool:
        return self.interval_s > 0

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if not self.enabled:
            log.info("autosave.disabled")
            return
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="balance-autosave", daemon=True)
        self._thread.start()
        log.info("autosave.started", interval_s=self.interval_s)

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
            log.info("autosave.stopped")

    def _run(self) -> None:
        while not self._stop.wait(self.interval_s):
            try:
                self.store.save(self.collection)
            except StorageError as e:
                log.error("autosave.failed", error=str(e))
