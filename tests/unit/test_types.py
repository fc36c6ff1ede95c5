"""
tests/unit/test_types.py — Field Kinds and Literal Parsing

Covers:
  - parse_value for every kind: valid literals, sign handling, range limits
  - Rejection of whitespace, underscores and non-ASCII digits in integers
  - DOUBLE accepts Python float syntax but rejects underscores
  - Unsupported kinds raise UnsupportedKindError
  - ConstructorSpec arity / kinds / signature text
  - TaskDescriptor field lookup
"""

from __future__ import annotations

import math
import sys
from pathlib import Path

import pytest

# ── path setup (so `balance` is importable without installing the package) ───
_SRC = Path(__file__).parent.parent.parent / "src"
if str(_SRC) not in sys.path:
    sys.path.insert(0, str(_SRC))

from balance.exceptions import FieldError, ParseError, UnsupportedKindError
from balance.tasks.types import (
    ConstructorSpec,
    FieldKind,
    FieldSpec,
    TaskDescriptor,
    as_kind,
    coerce_value,
    parse_value,
)


# ─────────────────────────────────────────────────────────────────────────────
# parse_value — integers
# ─────────────────────────────────────────────────────────────────────────────

class TestParseInt:
    @pytest.mark.parametrize("text,expected", [
        ("0", 0),
        ("42", 42),
        ("+7", 7),
        ("-13", -13),
        ("007", 7),
        ("2147483647", 2 ** 31 - 1),
        ("-2147483648", -(2 ** 31)),
    ])
    def test_valid_int32(self, text, expected):
        assert parse_value(text, FieldKind.INT32) == expected

    @pytest.mark.parametrize("text", [
        "2147483648",
        "-2147483649",
        "1.5",
        "1e3",
        "",
        "abc",
        " 1",
        "1 ",
        "1_000",
        "١٢",  # Arabic-Indic digits
        "0x10",
    ])
    def test_invalid_int32(self, text):
        with pytest.raises(ParseError):
            parse_value(text, FieldKind.INT32)

    def test_int64_range(self):
        assert parse_value("9223372036854775807", FieldKind.INT64) == 2 ** 63 - 1
        assert parse_value("-9223372036854775808", FieldKind.INT64) == -(2 ** 63)
        with pytest.raises(ParseError):
            parse_value("9223372036854775808", FieldKind.INT64)

    def test_int64_accepts_beyond_int32(self):
        assert parse_value("4000000000", FieldKind.INT64) == 4_000_000_000

    def test_parse_error_is_field_error(self):
        with pytest.raises(FieldError) as exc_info:
            parse_value("ten", FieldKind.INT32)
        assert exc_info.value.text == "ten"
        assert exc_info.value.kind is FieldKind.INT32


# ─────────────────────────────────────────────────────────────────────────────
# parse_value — double / string
# ─────────────────────────────────────────────────────────────────────────────

class TestParseDouble:
    @pytest.mark.parametrize("text,expected", [
        ("2.5", 2.5),
        ("-0.25", -0.25),
        ("3", 3.0),
        ("1e3", 1000.0),
        (".5", 0.5),
        ("inf", math.inf),
    ])
    def test_valid(self, text, expected):
        value = parse_value(text, FieldKind.DOUBLE)
        assert isinstance(value, float)
        assert value == expected

    def test_nan(self):
        assert math.isnan(parse_value("nan", FieldKind.DOUBLE))

    @pytest.mark.parametrize("text", ["", "abc", "1_0", "1.2.3", "--1"])
    def test_invalid(self, text):
        with pytest.raises(ParseError):
            parse_value(text, FieldKind.DOUBLE)


class TestParseString:
    @pytest.mark.parametrize("text", ["", "hello", "with space", "a=b", "42"])
    def test_identity(self, text):
        assert parse_value(text, FieldKind.STRING) == text


class TestKinds:
    def test_string_value_accepted_as_kind(self):
        assert parse_value("5", "int32") == 5
        assert as_kind("double") is FieldKind.DOUBLE

    @pytest.mark.parametrize("kind", [bool, "boolean", None, float])
    def test_unsupported_kind(self, kind):
        with pytest.raises(UnsupportedKindError):
            parse_value("1", kind)

    def test_python_types(self):
        assert FieldKind.INT32.python_type is int
        assert FieldKind.INT64.python_type is int
        assert FieldKind.DOUBLE.python_type is float
        assert FieldKind.STRING.python_type is str

    def test_coerce_value(self):
        assert coerce_value(3, FieldKind.DOUBLE) == 3.0
        assert isinstance(coerce_value(3, FieldKind.DOUBLE), float)
        # Kinds outside the closed set pass through untouched.
        assert coerce_value(True, bool) is True
        assert coerce_value(None, FieldKind.INT32) is None

    def test_coerce_integral_float_to_int(self):
        value = coerce_value(4.0, FieldKind.INT32)
        assert value == 4 and isinstance(value, int)

    @pytest.mark.parametrize("value,kind", [
        (3.7, FieldKind.INT32),
        (0.5, FieldKind.INT64),
        (2 ** 31, FieldKind.INT32),
        ("3", FieldKind.INT32),
        (True, FieldKind.INT64),
        ("x", FieldKind.DOUBLE),
        (7, FieldKind.STRING),
    ])
    def test_coerce_rejects_inexact_values(self, value, kind):
        with pytest.raises(ValueError):
            coerce_value(value, kind)


# ─────────────────────────────────────────────────────────────────────────────
# ConstructorSpec / TaskDescriptor
# ─────────────────────────────────────────────────────────────────────────────

class TestConstructorSpec:
    def _spec(self) -> ConstructorSpec:
        return ConstructorSpec(
            name="create",
            params=(("name", FieldKind.STRING), ("goal", FieldKind.INT32)),
            factory=lambda name, goal: (name, goal),
        )

    def test_arity_and_kinds(self):
        spec = self._spec()
        assert spec.arity == 2
        assert spec.kinds == (FieldKind.STRING, FieldKind.INT32)

    def test_signature(self):
        assert self._spec().signature() == "create( string name, int32 goal )"

    def test_frozen(self):
        spec = self._spec()
        with pytest.raises(Exception):
            spec.name = "other"  # type: ignore[misc]


class TestTaskDescriptor:
    def test_get_field(self):
        counter = FieldSpec("counter", FieldKind.INT32, True, getter=lambda t: 0, setter=lambda t, v: None)
        name = FieldSpec("name", FieldKind.STRING, False, getter=lambda t: "", setter=lambda t, v: None)
        d = TaskDescriptor(name="X", task_class=object, fields=(name, counter))
        assert d.get_field("counter") is counter
        assert d.get_field("missing") is None
        assert d.editable_fields() == [counter]

    def test_hash_by_name(self):
        a = TaskDescriptor(name="X", task_class=object)
        b = TaskDescriptor(name="X", task_class=int)
        assert hash(a) == hash(b)
        assert len({a, b}) == 1
