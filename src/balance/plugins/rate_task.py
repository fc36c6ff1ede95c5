"""
plugins/rate_task.py — RateTask

A state-based task: once started by progress(), its counter grows by rate
every tick; until then it shrinks by 1 every tick.
"""

from __future__ import annotations

from balance.tasks import FieldKind, TaskField, TimeDependentTask, constructor


class RateTask(TimeDependentTask):
    """Counter changes every tick: +rate while active, -1 while inactive."""

    counter = TaskField(FieldKind.DOUBLE, editable=False, default=0.0)
    rate = TaskField(FieldKind.DOUBLE, default=0.0)
    # One-way switch set by progress().
    active = TaskField(bool, default=False)

    def __init__(self, name: str, rate: float, interval_ms: int = 1000) -> None:
        super().__init__(name, interval_ms)
        self.counter = 0.0
        self.rate = rate
        self.active = False

    @constructor(name=FieldKind.STRING, rate=FieldKind.DOUBLE)
    def create(cls, name: str, rate: float) -> "RateTask":
        return cls(name, rate)

    @constructor(name=FieldKind.STRING, rate=FieldKind.DOUBLE, interval_ms=FieldKind.INT32)
    def create_with_interval(cls, name: str, rate: float, interval_ms: int) -> "RateTask":
        return cls(name, rate, interval_ms)

    def update(self) -> None:
        with self.lock:
            self.counter += self.rate if self.active else -1

    def update_many(self, count: int) -> None:
        with self.lock:
            self.counter += count * (self.rate if self.active else -1)

    def progress(self) -> None:
        with self.lock:
            self.active = True

    def status(self) -> str:
        with self.lock:
            state = "active" if self.active else "inactive"
            return f"{self.counter}Δ{self.rate} ({state})"
