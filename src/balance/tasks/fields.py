"""
tasks/fields.py — FieldAccessor

Generic construction and mutation of task instances from plain strings, driven
entirely by TaskDescriptors. Task types never write parsing code of their own.

Construction:
    Constructors are tried in declaration order. The first whose arity matches
    and whose every argument parses (and whose factory does not raise) wins.

Mutation is all-or-nothing:
    Every field=value entry is validated first. If any entry fails, nothing is
    assigned and every failure is reported together in one MutationError.
"""

from __future__ import annotations

import threading
from typing import Any, Iterable, Mapping, Optional, Sequence, Union

from balance.exceptions import (
    FieldError,
    MalformedAssignmentError,
    MutationError,
    NoMatchingConstructorError,
    NotEditableError,
    ParseError,
    UnknownFieldError,
)
from balance.observability.logger import get_logger
from balance.tasks.base import Task, describe
from balance.tasks.registry import TypeRegistry
from balance.tasks.types import FieldSpec, TaskDescriptor, parse_value

log = get_logger(__name__)

Assignments = Union[Mapping[str, str], Iterable[tuple[str, str]]]


class FieldAccessor:
    """
    Construct / mutate helpers; safe to share between threads.

    Descriptors come from registry when the task's class is the one
    registered under its name. Other classes are described once and cached.
    """

    def __init__(self, registry: Optional[TypeRegistry] = None) -> None:
        self.registry = registry
        self._described: dict[type, TaskDescriptor] = {}
        self._lock = threading.Lock()

    def descriptor_for(self, task: Task) -> TaskDescriptor:
        task_class = type(task)
        if self.registry is not None:
            registered = self.registry.lookup(task_class.__name__)
            if registered is not None and registered.task_class is task_class:
                return registered
        with self._lock:
            descriptor = self._described.get(task_class)
            if descriptor is None:
                descriptor = self._described[task_class] = describe(task_class)
        return descriptor

    # ── Construction ──────────────────────────────────────────────────────────

    def construct(self, descriptor: TaskDescriptor, args: Sequence[str]) -> Task:
        """
        Build a task of the given type from positional literal arguments.

        Raises NoMatchingConstructorError if no declared constructor accepts
        the arguments; no instance is produced in that case.
        """
        args = list(args)
        for ctor in descriptor.constructors:
            if ctor.arity != len(args):
                continue

            try:
                values = [parse_value(arg, kind) for arg, kind in zip(args, ctor.kinds)]
            except ParseError:
                continue

            try:
                task = ctor.factory(*values)
            except Exception as e:
                log.debug(
                    "fields.constructor_failed",
                    task_type=descriptor.name,
                    constructor=ctor.name,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                continue

            log.debug("fields.constructed", task_type=descriptor.name, constructor=ctor.name)
            return task

        raise NoMatchingConstructorError(descriptor.name, args)

    # ── Mutation ──────────────────────────────────────────────────────────────

    def mutate(self, task: Task, assignments: Assignments) -> dict[str, Any]:
        """
        Assign literal values to declared editable fields of task.

        Later duplicates of a field name win. Returns the applied
        {field: value} mapping. Raises MutationError (nothing assigned) if any
        entry is invalid.
        """
        pairs = assignments.items() if isinstance(assignments, Mapping) else assignments
        return self._apply(task, list(pairs), [])

    def mutate_args(self, task: Task, entries: Sequence[str]) -> dict[str, Any]:
        """Like mutate(), from raw ``KEY=VALUE`` strings split at the first '='."""
        pairs: list[tuple[str, str]] = []
        errors: list[FieldError] = []
        for entry in entries:
            if "=" not in entry:
                errors.append(MalformedAssignmentError(entry))
                continue
            key, value = entry.split("=", 1)
            pairs.append((key, value))
        return self._apply(task, pairs, errors)

    def _apply(
        self,
        task: Task,
        pairs: list[tuple[str, str]],
        errors: list[FieldError],
    ) -> dict[str, Any]:
        descriptor = self.descriptor_for(task)

        merged: dict[str, str] = {}
        for key, value in pairs:
            merged[key] = value

        staged: dict[FieldSpec, Any] = {}
        for key, text in merged.items():
            spec = descriptor.get_field(key)
            if spec is None:
                errors.append(UnknownFieldError(key, descriptor.name))
                continue
            if not spec.editable:
                reason = "the task's identity" if key == "name" else "not editable"
                errors.append(NotEditableError(key, reason))
                continue
            try:
                staged[spec] = parse_value(text, spec.kind)
            except ParseError:
                errors.append(ParseError(text, spec.kind, field_name=key))

        if errors:
            raise MutationError(errors)

        with task.lock:
            for spec, value in staged.items():
                spec.setter(task, value)

        applied = {spec.name: value for spec, value in staged.items()}
        log.info("fields.mutated", task=task.name, fields=sorted(applied))
        return applied

    # ── Read ──────────────────────────────────────────────────────────────────

    def read_fields(self, task: Task, editable_only: bool = True) -> list[tuple[FieldSpec, Any]]:
        """Current (spec, value) pairs of the task's declared fields."""
        descriptor = self.descriptor_for(task)
        specs = descriptor.editable_fields() if editable_only else list(descriptor.fields)
        with task.lock:
            return [(spec, spec.getter(task)) for spec in specs]
