"""
tasks/types.py — Task Engine Data Contracts

Field kinds, literal parsing, and the static per-type metadata shared by the
registry, the loader and the FieldAccessor. Nothing here touches a live task
instance except through the getter/setter closures carried by FieldSpec.

  - FieldKind:        the closed set of kinds visible to the generic layer
  - parse_value():    literal string → value of a FieldKind (pure)
  - FieldSpec:        one declared field, editable or not, with get/set closures
  - ConstructorSpec:  one declared constructor, parameter kinds in order
  - TaskDescriptor:   everything the generic layer knows about a task type
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional

from balance.exceptions import ParseError, UnsupportedKindError


# ─────────────────────────────────────────────────────────────────────────────
# FieldKind
# ─────────────────────────────────────────────────────────────────────────────

class FieldKind(str, Enum):
    INT32  = "int32"
    INT64  = "int64"
    DOUBLE = "double"
    STRING = "string"

    @property
    def python_type(self) -> type:
        return _PYTHON_TYPES[self]


_PYTHON_TYPES: dict[FieldKind, type] = {
    FieldKind.INT32:  int,
    FieldKind.INT64:  int,
    FieldKind.DOUBLE: float,
    FieldKind.STRING: str,
}

_INT_RANGES: dict[FieldKind, tuple[int, int]] = {
    FieldKind.INT32: (-(2 ** 31), 2 ** 31 - 1),
    FieldKind.INT64: (-(2 ** 63), 2 ** 63 - 1),
}

# ASCII digits only; int() would also take whitespace, underscores and
# non-ASCII digits.
_INT_LITERAL = re.compile(r"[+-]?[0-9]+")


def as_kind(kind: Any) -> FieldKind:
    """Coerce a FieldKind or its string value; anything else is unsupported."""
    if isinstance(kind, FieldKind):
        return kind
    try:
        return FieldKind(kind)
    except (ValueError, TypeError):
        raise UnsupportedKindError(kind) from None


def parse_value(text: str, kind: Any) -> Any:
    """
    Convert a literal string to a value of the given kind.

    Raises:
        UnsupportedKindError: kind is outside the closed set.
        ParseError:           the literal is not a valid numeral for the kind,
                              or is out of range for a fixed-width integer.
    """
    kind = as_kind(kind)

    if kind is FieldKind.STRING:
        return text
    if not isinstance(text, str):
        raise ParseError(repr(text), kind)

    if kind in _INT_RANGES:
        if not _INT_LITERAL.fullmatch(text):
            raise ParseError(text, kind)
        value = int(text)
        low, high = _INT_RANGES[kind]
        if not low <= value <= high:
            raise ParseError(text, kind)
        return value

    # DOUBLE
    if "_" in text:
        raise ParseError(text, kind)
    try:
        return float(text)
    except ValueError:
        raise ParseError(text, kind) from None


def coerce_value(value: Any, kind: Any) -> Any:
    """
    Normalise a decoded (e.g. JSON) value to the Python type of its kind.

    Raises ValueError for a value the kind cannot hold exactly: a non-number
    in a numeric field, a fractional or out-of-range number in an integer
    field, or a non-string in a string field.
    """
    if not isinstance(kind, FieldKind) or value is None:
        return value

    if kind is FieldKind.STRING:
        if not isinstance(value, str):
            raise ValueError(f"expected a string, got {value!r}")
        return value

    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"expected a {kind.value} number, got {value!r}")

    if kind is FieldKind.DOUBLE:
        return float(value)

    if isinstance(value, float) and not value.is_integer():
        raise ValueError(f"expected an integral {kind.value}, got {value!r}")
    number = int(value)
    low, high = _INT_RANGES[kind]
    if not low <= number <= high:
        raise ValueError(f"{number} is out of range for {kind.value}")
    return number


# ─────────────────────────────────────────────────────────────────────────────
# FieldSpec / ConstructorSpec
# ─────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class FieldSpec:
    """
    One declared field of a task type.

    getter(task) -> value and setter(task, value) are the only way the generic
    layer reads or writes instance state; callers hold task.lock around them.
    """
    name: str
    kind: FieldKind
    editable: bool
    getter: Callable[[Any], Any] = field(compare=False, repr=False)
    setter: Callable[[Any, Any], None] = field(compare=False, repr=False)


@dataclass(frozen=True)
class ConstructorSpec:
    """A declared constructor: ordered (parameter name, kind) pairs + factory."""
    name: str
    params: tuple[tuple[str, FieldKind], ...]
    factory: Callable[..., Any] = field(compare=False, repr=False)

    @property
    def arity(self) -> int:
        return len(self.params)

    @property
    def kinds(self) -> tuple[FieldKind, ...]:
        return tuple(kind for _, kind in self.params)

    def signature(self) -> str:
        """Help-text form, e.g. ``create( string name, int32 goal )``."""
        params = ", ".join(f"{kind.value} {pname}" for pname, kind in self.params)
        return f"{self.name}( {params} )"


# ─────────────────────────────────────────────────────────────────────────────
# TaskDescriptor
# ─────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class TaskDescriptor:
    """
    Static metadata for one task type. Built once when the type is loaded.

    Rules:
      - name is the task class name and is unique within a TypeRegistry.
      - constructors are in declaration order; the first match wins.
      - fields only include the closed kind set; base-class fields come first.
    """
    name: str
    task_class: type = field(compare=False)
    constructors: tuple[ConstructorSpec, ...] = ()
    fields: tuple[FieldSpec, ...] = ()
    time_dependent: bool = False
    doc: str = ""

    def get_field(self, name: str) -> Optional[FieldSpec]:
        for spec in self.fields:
            if spec.name == name:
                return spec
        return None

    def editable_fields(self) -> list[FieldSpec]:
        return [spec for spec in self.fields if spec.editable]

    def __hash__(self) -> int:
        return hash(self.name)
