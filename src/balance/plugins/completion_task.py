"""
plugins/completion_task.py — CompletionTask

A one-time task whose only states are incomplete and completed.
"""

from __future__ import annotations

from balance.tasks import FieldKind, Task, TaskField, constructor


class CompletionTask(Task):
    """A one-time task: incomplete until the first progress, completed forever after."""

    # bool is outside the editable kinds: persisted, never edited from text.
    is_completed = TaskField(bool, default=False)

    @constructor(name=FieldKind.STRING)
    def create(cls, name: str) -> "CompletionTask":
        return cls(name)

    def progress(self) -> None:
        with self.lock:
            self.is_completed = True

    def status(self) -> str:
        return "completed" if self.is_completed else "incomplete"
