"""
exceptions.py — Balance Unified Error Hierarchy

All Balance-specific exceptions live here. Every layer of the engine raises
typed subclasses of BalanceError — never bare Exception. None of them is
fatal: the command loop reports the error and keeps accepting input.

Import from here, not from individual modules:
    from balance.exceptions import NoMatchingConstructorError, MutationError

Hierarchy:
    BalanceError
    ├── TaskTypeError
    │   ├── ArtifactFormatError
    │   ├── TypeKindError
    │   └── UnknownTaskTypeError
    ├── ConstructionError
    │   └── NoMatchingConstructorError
    ├── FieldError
    │   ├── UnknownFieldError
    │   ├── NotEditableError
    │   ├── ParseError
    │   ├── UnsupportedKindError
    │   └── MalformedAssignmentError
    ├── MutationError
    ├── CollectionError
    │   ├── DuplicateNameError
    │   └── TaskNotFoundError
    └── StorageError
"""

from __future__ import annotations

from typing import Sequence


# ─────────────────────────────────────────────────────────────────────────────
# Root
# ─────────────────────────────────────────────────────────────────────────────

class BalanceError(Exception):
    """Base class for all Balance exceptions."""


# ─────────────────────────────────────────────────────────────────────────────
# Task types (plugin artifacts + registry)
# ─────────────────────────────────────────────────────────────────────────────

class TaskTypeError(BalanceError):
    """Base for task type loading and lookup errors."""


class ArtifactFormatError(TaskTypeError):
    """The artifact bytes are not a well-formed task type definition."""


class TypeKindError(TaskTypeError):
    """The artifact defines a type that does not have the required task shape."""


class UnknownTaskTypeError(TaskTypeError):
    """Requested task type is not registered in the TypeRegistry."""

    def __init__(self, type_name: str, available: Sequence[str] = ()) -> None:
        self.type_name = type_name
        self.available = list(available)
        super().__init__(
            f"Unknown task type: '{type_name}'. "
            f"Available types: {self.available}"
        )


# ─────────────────────────────────────────────────────────────────────────────
# Construction
# ─────────────────────────────────────────────────────────────────────────────

class ConstructionError(BalanceError):
    """Base for task construction errors."""


class NoMatchingConstructorError(ConstructionError):
    """No declared constructor accepted the supplied arguments."""

    def __init__(self, type_name: str, args: Sequence[str]) -> None:
        self.type_name = type_name
        self.args_given = list(args)
        super().__init__(
            f"No constructor of '{type_name}' matches "
            f"{len(self.args_given)} argument(s): {self.args_given}"
        )


# ─────────────────────────────────────────────────────────────────────────────
# Fields
# ─────────────────────────────────────────────────────────────────────────────

class FieldError(BalanceError):
    """Base for per-field conversion and assignment errors."""

    field_name: str = ""


class UnknownFieldError(FieldError):
    """The task type declares no field with this name."""

    def __init__(self, field_name: str, type_name: str = "") -> None:
        self.field_name = field_name
        where = f" on '{type_name}'" if type_name else ""
        super().__init__(f"Unknown field{where}: {field_name}")


class NotEditableError(FieldError):
    """The field exists but may not be assigned from text."""

    def __init__(self, field_name: str, reason: str = "not editable") -> None:
        self.field_name = field_name
        super().__init__(f"Field '{field_name}' is {reason}")


class ParseError(FieldError):
    """A literal could not be converted to the requested kind."""

    def __init__(self, text: str, kind: object, field_name: str = "") -> None:
        self.text = text
        self.kind = kind
        self.field_name = field_name
        kind_name = getattr(kind, "value", kind)
        prefix = f"{field_name}: " if field_name else ""
        super().__init__(f"{prefix}illegal {kind_name} value: {text!r}")


class UnsupportedKindError(FieldError):
    """The requested kind is outside the closed {int32, int64, double, string} set."""

    def __init__(self, kind: object) -> None:
        self.kind = kind
        super().__init__(f"Cannot parse to unsupported kind: {kind!r}")


class MalformedAssignmentError(FieldError):
    """An edit argument is not a KEY=VALUE pair."""

    def __init__(self, entry: str) -> None:
        self.entry = entry
        super().__init__(f"Argument is not a KEY=VALUE pair: {entry}")


class MutationError(BalanceError):
    """
    One or more entries of an edit request failed validation.

    Carries every per-entry failure; no field was changed.
    """

    def __init__(self, errors: Sequence[FieldError]) -> None:
        self.errors = list(errors)
        details = "; ".join(str(e) for e in self.errors)
        super().__init__(f"{len(self.errors)} invalid field assignment(s): {details}")


# ─────────────────────────────────────────────────────────────────────────────
# Collection
# ─────────────────────────────────────────────────────────────────────────────

class CollectionError(BalanceError):
    """Base for task collection errors."""


class DuplicateNameError(CollectionError):
    """A task with this name already exists in the collection."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Task already exists: {name}")


class TaskNotFoundError(CollectionError):
    """No live task has this name."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Task '{name}' does not exist")


# ─────────────────────────────────────────────────────────────────────────────
# Storage
# ─────────────────────────────────────────────────────────────────────────────

class StorageError(BalanceError):
    """A save file could not be read, decoded, or written."""


__all__ = [
    "BalanceError",
    # Task types
    "TaskTypeError",
    "ArtifactFormatError",
    "TypeKindError",
    "UnknownTaskTypeError",
    # Construction
    "ConstructionError",
    "NoMatchingConstructorError",
    # Fields
    "FieldError",
    "UnknownFieldError",
    "NotEditableError",
    "ParseError",
    "UnsupportedKindError",
    "MalformedAssignmentError",
    "MutationError",
    # Collection
    "CollectionError",
    "DuplicateNameError",
    "TaskNotFoundError",
    # Storage
    "StorageError",
]
