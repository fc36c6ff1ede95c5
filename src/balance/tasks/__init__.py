"""
tasks/__init__.py — Balance Task Engine

Public interface for task type authors and for the engine's callers.

Task type authors:
    from balance.tasks import Task, TimeDependentTask, TaskField, FieldKind, constructor

Engine callers:
    from balance.tasks import TypeRegistry, TaskTypeLoader, FieldAccessor, TaskCollection

    registry = TypeRegistry()
    TaskTypeLoader(registry).load_all([BUILTIN_TYPES_DIR])

    task = FieldAccessor().construct(registry.get("CounterTask"), ["read", "10"])
    TaskCollection().add(task)
"""

from balance.tasks.types import (
    ConstructorSpec,
    FieldKind,
    FieldSpec,
    TaskDescriptor,
    parse_value,
)
from balance.tasks.base import (
    DEFAULT_INTERVAL_MS,
    Task,
    TaskField,
    TimeDependentTask,
    constructor,
    current_time_ms,
    describe,
)
from balance.tasks.registry import TypeRegistry
from balance.tasks.loader import BUILTIN_TYPES_DIR, LoadReport, TaskTypeLoader
from balance.tasks.fields import FieldAccessor
from balance.tasks.collection import TaskCollection

__all__ = [
    # Types
    "ConstructorSpec",
    "FieldKind",
    "FieldSpec",
    "TaskDescriptor",
    "parse_value",
    # Task authoring
    "DEFAULT_INTERVAL_MS",
    "Task",
    "TaskField",
    "TimeDependentTask",
    "constructor",
    "current_time_ms",
    "describe",
    # Engine
    "TypeRegistry",
    "BUILTIN_TYPES_DIR",
    "LoadReport",
    "TaskTypeLoader",
    "FieldAccessor",
    "TaskCollection",
]
