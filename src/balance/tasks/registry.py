"""
tasks/registry.py — Task Type Registry

Maps task type names to their TaskDescriptors. Populated by TaskTypeLoader at
startup (and by tests through register_class). Descriptors are never removed
during normal operation.

Usage:
    registry = TypeRegistry()
    registry.register_class(CounterTask)

    descriptor = registry.get("CounterTask")
    maybe      = registry.lookup("NoSuchTask")     # None
    everything = registry.list_all()
"""

from __future__ import annotations

import threading
from typing import Optional

from balance.exceptions import UnknownTaskTypeError
from balance.tasks.base import describe
from balance.tasks.types import TaskDescriptor


class TypeRegistry:
    """
    Central store of known task types.

    Registration is idempotent: a second descriptor with a known name is
    ignored and register() returns False. Thread-safe.
    """

    def __init__(self) -> None:
        self._types: dict[str, TaskDescriptor] = {}
        self._lock = threading.Lock()

    # ── Write ─────────────────────────────────────────────────────────────────

    def register(self, descriptor: TaskDescriptor) -> bool:
        """Add descriptor if its name is new. Never raises on duplicates."""
        if descriptor is None:
            return False
        with self._lock:
            if descriptor.name in self._types:
                return False
            self._types[descriptor.name] = descriptor
            return True

    def register_class(self, task_class: type) -> bool:
        """Describe task_class (raises TypeKindError if it is not a task) and register it."""
        return self.register(describe(task_class))

    # ── Read ──────────────────────────────────────────────────────────────────

    def get(self, name: str) -> TaskDescriptor:
        """Return the descriptor. Raises UnknownTaskTypeError if not found."""
        with self._lock:
            descriptor = self._types.get(name)
        if descriptor is None:
            raise UnknownTaskTypeError(name, self.list_names())
        return descriptor

    def lookup(self, name: str) -> Optional[TaskDescriptor]:
        """Return the descriptor or None if not found."""
        with self._lock:
            return self._types.get(name)

    def list_all(self) -> frozenset[TaskDescriptor]:
        """Read-only snapshot of every registered descriptor."""
        with self._lock:
            return frozenset(self._types.values())

    def list_names(self) -> list[str]:
        with self._lock:
            return sorted(self._types)

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._types

    def __len__(self) -> int:
        with self._lock:
            return len(self._types)

    def __repr__(self) -> str:
        return f"<TypeRegistry types={self.list_names()}>"
