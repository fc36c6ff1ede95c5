"""
plugins/frequency_task.py — FrequencyTask

A task whose counter decays at a fixed rate per tick. Each progress() adds 1,
so only progress at a high enough frequency keeps the counter from falling.
"""

from __future__ import annotations

from balance.tasks import FieldKind, TaskField, TimeDependentTask, constructor


class FrequencyTask(TimeDependentTask):
    """Counter drops by rate every tick and rises by 1 on every progress."""

    # Rate-driven, so not necessarily an integer.
    counter = TaskField(FieldKind.DOUBLE, editable=False, default=0.0)
    rate = TaskField(FieldKind.DOUBLE, default=0.0)

    def __init__(self, name: str, rate: float, interval_ms: int = 1000) -> None:
        super().__init__(name, interval_ms)
        self.counter = 0.0
        self.rate = rate

    @constructor(name=FieldKind.STRING, rate=FieldKind.DOUBLE)
    def create(cls, name: str, rate: float) -> "FrequencyTask":
        return cls(name, rate)

    @constructor(name=FieldKind.STRING, rate=FieldKind.DOUBLE, interval_ms=FieldKind.INT32)
    def create_with_interval(cls, name: str, rate: float, interval_ms: int) -> "FrequencyTask":
        return cls(name, rate, interval_ms)

    def update(self) -> None:
        with self.lock:
            self.counter -= self.rate

    def update_many(self, count: int) -> None:
        with self.lock:
            self.counter -= count * self.rate

    def progress(self) -> None:
        with self.lock:
            self.counter += 1

    def status(self) -> str:
        with self.lock:
            return f"{self.counter}Δ{self.rate}"
