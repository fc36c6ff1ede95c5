"""
tasks/base.py — Task and TimeDependentTask Abstract Base Classes

Every Balance task type must subclass Task (or TimeDependentTask) and
implement progress(). Task types are normally shipped as plugin files and
loaded at runtime by TaskTypeLoader; the core never imports them.

Rules for task-type authors:
  1. Declare state that the generic layer may see as TaskField class
     attributes. Only int32 / int64 / double / string fields are visible to
     create / edit; fields of any other kind are persisted but never edited.
  2. Declare constructors with @constructor(param=FieldKind, ...) on
     classmethods. They are tried in declaration order by the create command.
  3. Take self.lock around every state change in progress() / update().
  4. Time-dependent types implement update() and, where a closed form exists,
     override update_many() so catch-up after a long gap stays O(1).
  5. Drop the file into a task-types directory.

Example:
    class CompletionTask(Task):
        is_completed = TaskField(bool, default=False)

        @constructor(name=FieldKind.STRING)
        def create(cls, name):
            return cls(name)

        def progress(self) -> None:
            with self.lock:
                self.is_completed = True
"""

from __future__ import annotations

import inspect
import threading
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional

from balance.exceptions import TypeKindError
from balance.observability.logger import get_logger
from balance.scheduler.scheduler import get_scheduler
from balance.tasks.types import (
    ConstructorSpec,
    FieldKind,
    FieldSpec,
    TaskDescriptor,
    coerce_value,
)

log = get_logger(__name__)

DEFAULT_INTERVAL_MS = 1000

_CONSTRUCTOR_MARK = "__task_constructor__"


def current_time_ms() -> int:
    """Wall-clock milliseconds since the epoch."""
    return int(time.time() * 1000)


# ─────────────────────────────────────────────────────────────────────────────
# Declarations
# ─────────────────────────────────────────────────────────────────────────────

class TaskField:
    """
    A declared, persisted field of a task type.

    Values live in the instance __dict__; the class-level default is returned
    until the field is first assigned.
    """

    def __init__(self, kind: Any, *, editable: bool = True, default: Any = None) -> None:
        self.kind = kind
        self.editable = editable
        self.default = default
        self.name = ""

    def __set_name__(self, owner: type, name: str) -> None:
        self.name = name

    def __get__(self, obj: Any, objtype: Optional[type] = None) -> Any:
        if obj is None:
            return self
        return obj.__dict__.get(self.name, self.default)

    def __set__(self, obj: Any, value: Any) -> None:
        obj.__dict__[self.name] = value

    @property
    def visible(self) -> bool:
        """True if the generic create/edit layer can see this field."""
        return isinstance(self.kind, FieldKind)

    def read(self, task: Any) -> Any:
        return self.__get__(task)

    def write(self, task: Any, value: Any) -> None:
        self.__set__(task, value)

    def __repr__(self) -> str:
        kind = getattr(self.kind, "value", getattr(self.kind, "__name__", self.kind))
        return f"<TaskField {self.name}: {kind}{'' if self.editable else ' (read-only)'}>"


def constructor(**params: FieldKind) -> Callable[[Callable[..., Any]], classmethod]:
    """
    Mark a classmethod as a constructor usable from textual arguments.

    Keyword order is parameter order:

        @constructor(name=FieldKind.STRING, goal=FieldKind.INT32)
        def create(cls, name, goal):
            return cls(name, goal)
    """
    def decorate(func: Callable[..., Any]) -> classmethod:
        setattr(func, _CONSTRUCTOR_MARK, tuple(params.items()))
        return classmethod(func)
    return decorate


# ─────────────────────────────────────────────────────────────────────────────
# Task
# ─────────────────────────────────────────────────────────────────────────────

class Task(ABC):
    """
    Root class of all task types.

    A task is a named entity with a progress() mutation. Instances become live
    when added to a TaskCollection, which calls activate() exactly once.
    """

    # Identity key of the owning collection; never edited generically.
    name = TaskField(FieldKind.STRING, editable=False, default="")

    def __init__(self, name: str) -> None:
        self._init_runtime()
        self.name = name

    def _init_runtime(self) -> None:
        """Set up non-persisted state. Also run for restored instances."""
        self.lock = threading.RLock()
        self._activated = False

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    @abstractmethod
    def progress(self) -> None:
        """Make progress on this task. Semantics belong to the task type."""
        ...

    def activate(self, scheduler: Any = None, now_ms: Optional[int] = None) -> "Task":
        """
        One-time setup when the task enters a collection. Repeated calls are
        no-ops. The default only records activation.
        """
        with self.lock:
            self._activated = True
        return self

    def deactivate(self) -> None:
        """Undo activate() side effects when the task leaves its collection."""

    @property
    def activated(self) -> bool:
        return self._activated

    # ── Presentation ──────────────────────────────────────────────────────────

    def status(self) -> str:
        """Short state summary for listings. Empty by default."""
        return ""

    def __str__(self) -> str:
        text = f"{type(self).__name__} '{self.name}'"
        status = self.status()
        return f"{text}\t{status}" if status else text

    def __repr__(self) -> str:
        return f"<{type(self).__name__} name={self.name!r}>"

    # ── Declarations / persistence ────────────────────────────────────────────

    @classmethod
    def declared_fields(cls) -> dict[str, TaskField]:
        """All TaskFields of this type, base classes first."""
        found: dict[str, TaskField] = {}
        for klass in reversed(cls.__mro__):
            for attr, value in vars(klass).items():
                if isinstance(value, TaskField):
                    found[attr] = value
        return found

    def to_state(self) -> dict[str, Any]:
        """Every declared field, editable or not, as JSON-native values."""
        with self.lock:
            return {name: f.read(self) for name, f in self.declared_fields().items()}

    @classmethod
    def restore(cls, state: dict[str, Any]) -> "Task":
        """
        Rebuild an instance from to_state() output without calling any
        constructor. Unknown keys are ignored; missing keys keep defaults.
        """
        task = cls.__new__(cls)
        task._init_runtime()
        for name, f in cls.declared_fields().items():
            if name in state:
                f.write(task, coerce_value(state[name], f.kind))
        return task


# ─────────────────────────────────────────────────────────────────────────────
# TimeDependentTask
# ─────────────────────────────────────────────────────────────────────────────

class TimeDependentTask(Task):
    """
    Task that updates itself every interval_ms milliseconds.

    Ticks are driven by the shared TickScheduler. On activation, ticks missed
    since last_update_ms (e.g. while the process was not running) are replayed
    through update_many() before regular ticking starts.
    """

    interval_ms = TaskField(FieldKind.INT32, editable=False, default=DEFAULT_INTERVAL_MS)
    # Epoch milliseconds up to which ticks have been applied.
    last_update_ms = TaskField(FieldKind.INT64, editable=False, default=0)

    def __init__(self, name: str, interval_ms: int = DEFAULT_INTERVAL_MS) -> None:
        if interval_ms <= 0:
            raise ValueError(f"interval_ms must be positive, got {interval_ms}")
        super().__init__(name)
        self.interval_ms = interval_ms
        self.last_update_ms = current_time_ms()

    def _init_runtime(self) -> None:
        super()._init_runtime()
        self._scheduler: Any = None

    @abstractmethod
    def update(self) -> None:
        """Apply one tick."""
        ...

    def update_many(self, count: int) -> None:
        """
        Apply count ticks through a simple loop. Types with a closed form
        should override this.
        """
        for _ in range(count):
            self.update()

    @classmethod
    def restore(cls, state: dict[str, Any]) -> "Task":
        """
        Like Task.restore(), and also rejects a saved clock that cannot be
        ticked: interval_ms must be a positive integer and last_update_ms an
        integer. Raises ValueError otherwise.
        """
        task = super().restore(state)
        if not isinstance(task.interval_ms, int) or task.interval_ms <= 0:
            raise ValueError(f"interval_ms must be a positive integer, got {task.interval_ms!r}")
        if not isinstance(task.last_update_ms, int):
            raise ValueError(f"last_update_ms must be an integer, got {task.last_update_ms!r}")
        return task

    def missed_ticks(self, now_ms: int) -> int:
        return max(0, (now_ms - self.last_update_ms) // self.interval_ms)

    def tick(self) -> None:
        """Scheduler entry point: one update() and advance the clock mark."""
        with self.lock:
            self.update()
            self.last_update_ms += self.interval_ms

    def activate(self, scheduler: Any = None, now_ms: Optional[int] = None) -> "Task":
        """Catch up missed ticks, then register for fixed-rate ticking."""
        with self.lock:
            if self._activated:
                return self

            now = current_time_ms() if now_ms is None else now_ms
            missed = self.missed_ticks(now)
            if missed > 0:
                self.update_many(missed)
                self.last_update_ms += missed * self.interval_ms
            first_due_ms = self.last_update_ms + self.interval_ms
            self._activated = True

        self._scheduler = scheduler if scheduler is not None else get_scheduler()
        self._scheduler.schedule(self, self.interval_ms, first_due_ms=first_due_ms)
        log.debug(
            "task.activated",
            task=self.name,
            task_type=type(self).__name__,
            caught_up=missed,
            interval_ms=self.interval_ms,
        )
        return self

    def deactivate(self) -> None:
        if self._scheduler is not None:
            self._scheduler.cancel(self)
            self._scheduler = None


# ─────────────────────────────────────────────────────────────────────────────
# Descriptor building
# ─────────────────────────────────────────────────────────────────────────────

def describe(task_class: Any) -> TaskDescriptor:
    """
    Build the TaskDescriptor for a task class from its declarations.

    Raises TypeKindError if task_class is not a concrete Task subclass.
    """
    if not (isinstance(task_class, type) and issubclass(task_class, Task)):
        raise TypeKindError(f"{task_class!r} is not a subtype of Task")
    if inspect.isabstract(task_class):
        missing = sorted(getattr(task_class, "__abstractmethods__", ()))
        raise TypeKindError(
            f"{task_class.__name__} does not implement required methods: {missing}"
        )

    fields = tuple(
        FieldSpec(
            name=name,
            kind=f.kind,
            editable=f.editable,
            getter=f.read,
            setter=f.write,
        )
        for name, f in task_class.declared_fields().items()
        if f.visible
    )

    # Constructors are not inherited; only this class's own, in order.
    constructors = []
    for attr, value in vars(task_class).items():
        if not isinstance(value, classmethod):
            continue
        params = getattr(value.__func__, _CONSTRUCTOR_MARK, None)
        if params is None:
            continue
        if not all(isinstance(kind, FieldKind) for _, kind in params):
            # Constructors taking other kinds are invisible to the generic layer.
            continue
        constructors.append(
            ConstructorSpec(name=attr, params=params, factory=getattr(task_class, attr))
        )

    doc = inspect.getdoc(task_class) or ""
    return TaskDescriptor(
        name=task_class.__name__,
        task_class=task_class,
        constructors=tuple(constructors),
        fields=fields,
        time_dependent=issubclass(task_class, TimeDependentTask),
        doc=doc.splitlines()[0] if doc else "",
    )
