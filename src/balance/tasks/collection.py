"""
tasks/collection.py — TaskCollection

The in-memory set of live tasks, keyed by unique name, plus the names of
removed tasks whose save files the persistence layer still has to delete.

Locking: one membership lock guards the name → task map and the
pending-delete set. It is never held while calling into a task
(activate / deactivate take the task's own lock), so a long tick on one task
cannot stall an unrelated add or remove.
"""

from __future__ import annotations

import threading
from typing import Any, Iterable, Iterator, Optional

from balance.observability.logger import get_logger
from balance.tasks.base import Task

log = get_logger(__name__)


class TaskCollection:
    """
    Live tasks keyed by name.

    add() activates a task (catch-up + scheduler registration for
    time-dependent tasks) before inserting it. get() returns the live
    instance, not a copy.
    """

    def __init__(self, scheduler: Any = None) -> None:
        self._scheduler = scheduler
        self._lock = threading.Lock()
        self._tasks: dict[str, Task] = {}
        self._pending_delete: set[str] = set()

    # ── Membership ────────────────────────────────────────────────────────────

    def add(self, task: Task) -> bool:
        """
        Activate and insert task. Returns False, without touching the
        collection, if a task with the same name already exists.
        """
        name = task.name
        with self._lock:
            if name in self._tasks:
                return False

        task.activate(self._scheduler)

        with self._lock:
            raced = name in self._tasks
            if not raced:
                self._tasks[name] = task
                self._pending_delete.discard(name)

        if raced:
            # Another add() of the same name won between the two lock sections.
            task.deactivate()
            return False

        log.info("collection.added", task=name, task_type=type(task).__name__)
        return True

    def remove(self, name: str) -> bool:
        """
        Remove the task with this name. The name is recorded for save-file
        cleanup even if no such task exists. Returns whether it existed.
        """
        with self._lock:
            task = self._tasks.pop(name, None)
            self._pending_delete.add(name)

        if task is None:
            log.debug("collection.remove_missing", task=name)
            return False

        task.deactivate()
        log.info("collection.removed", task=name)
        return True

    def get(self, name: str) -> Optional[Task]:
        with self._lock:
            return self._tasks.get(name)

    def names(self) -> list[str]:
        with self._lock:
            return list(self._tasks)

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._tasks

    def __len__(self) -> int:
        with self._lock:
            return len(self._tasks)

    def __iter__(self) -> Iterator[Task]:
        """Iterate a snapshot of the current tasks (unordered)."""
        with self._lock:
            snapshot = list(self._tasks.values())
        return iter(snapshot)

    # ── Pending delete ────────────────────────────────────────────────────────

    def pending_delete(self) -> frozenset[str]:
        with self._lock:
            return frozenset(self._pending_delete)

    def clear_pending_delete(self, names: Optional[Iterable[str]] = None) -> None:
        """Forget the given names (all of them if names is None)."""
        with self._lock:
            if names is None:
                self._pending_delete.clear()
            else:
                self._pending_delete.difference_update(names)

    def __repr__(self) -> str:
        return f"<TaskCollection tasks={len(self)} pending_delete={len(self.pending_delete())}>"
