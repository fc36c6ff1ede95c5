"""
plugins/counter_task.py — CounterTask

A task with a counter that counts up towards a fixed goal.
"""

from __future__ import annotations

from balance.tasks import FieldKind, Task, TaskField, constructor


class CounterTask(Task):
    """A task with a counter that counts up to a goal and then stays there."""

    counter = TaskField(FieldKind.INT32, default=0)
    goal = TaskField(FieldKind.INT32, default=0)

    def __init__(self, name: str, goal: int) -> None:
        super().__init__(name)
        self.counter = 0
        self.goal = goal

    @constructor(name=FieldKind.STRING, goal=FieldKind.INT32)
    def create(cls, name: str, goal: int) -> "CounterTask":
        return cls(name, goal)

    def progress(self) -> None:
        with self.lock:
            if self.counter < self.goal:
                self.counter += 1

    @property
    def is_completed(self) -> bool:
        return self.counter >= self.goal

    def status(self) -> str:
        with self.lock:
            return "completed" if self.is_completed else f"{self.counter}/{self.goal}"
