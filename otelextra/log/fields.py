"""Typed log fields and their conversion into span attributes."""

from __future__ import annotations

import math
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from enum import Enum, auto
from typing import Any, Union

from ..attribute import KeyValue, attribute

EXCEPTION_TYPE = "exception.type"
EXCEPTION_MESSAGE = "exception.message"

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class FieldType(Enum):
    """What kind of value a field carries."""

    BOOL = auto()
    INT = auto()
    FLOAT = auto()
    COMPLEX = auto()
    STRING = auto()
    BINARY = auto()
    STRINGER = auto()
    DURATION = auto()
    TIME = auto()
    ERROR = auto()
    REFLECT = auto()
    NAMESPACE = auto()
    SKIP = auto()
    ARRAY = auto()
    OBJECT = auto()


@dataclass(frozen=True)
class Field:
    """A key, the kind of its value, and the value."""

    key: str
    type: FieldType
    value: Any = None


# Number formatting -------------------------------------------------------------


def _decompose(x: float) -> tuple[str, str, int]:
    """Sign, shortest round-trip digits of |x|, and its decimal exponent."""
    sign = "-" if math.copysign(1.0, x) < 0 else ""
    tup = Decimal(repr(abs(x))).normalize().as_tuple()
    digits = "".join(map(str, tup.digits))
    return sign, digits, tup.exponent + len(digits) - 1


def _special(x: float) -> Union[str, None]:
    if math.isnan(x):
        return "NaN"
    if math.isinf(x):
        return "+Inf" if x > 0 else "-Inf"
    return None


def _go_float(x: float) -> str:
    special = _special(x)
    if special is not None:
        return special
    sign, digits, exp = _decompose(x)
    if -4 <= exp < 21:
        if exp >= len(digits) - 1:
            body = digits + "0" * (exp - len(digits) + 1)
        elif exp >= 0:
            body = f"{digits[:exp + 1]}.{digits[exp + 1:]}"
        else:
            body = "0." + "0" * (-exp - 1) + digits
    else:
        mantissa = digits[0] + (f".{digits[1:]}" if len(digits) > 1 else "")
        body = f"{mantissa}e{exp:+03d}"
    return sign + body


def _format_e(x: float) -> str:
    special = _special(x)
    if special is not None:
        return special
    sign, digits, exp = _decompose(x)
    mantissa = digits[0] + (f".{digits[1:]}" if len(digits) > 1 else "")
    return f"{sign}{mantissa}E{exp:+03d}"


def _format_complex_e(value: complex) -> str:
    imag = _format_e(value.imag)
    if not imag.startswith(("+", "-")):
        imag = "+" + imag
    return f"({_format_e(value.real)}{imag}i)"


def _format_complex(value: complex) -> str:
    imag = _go_float(value.imag)
    if not imag.startswith(("+", "-")):
        imag = "+" + imag
    return f"({_go_float(value.real)}{imag}i)"


def _nanoseconds(value: Union[timedelta, int]) -> int:
    if isinstance(value, timedelta):
        return (value.days * 86400 + value.seconds) * 10**9 + value.microseconds * 1000
    return int(value)


def _fraction(value: int, precision: int) -> str:
    scale = 10**precision
    whole, frac = divmod(value, scale)
    if not frac:
        return str(whole)
    return f"{whole}.{str(frac).rjust(precision, '0').rstrip('0')}"


def format_duration(value: Union[timedelta, int]) -> str:
    """Format a duration (a timedelta or nanoseconds) as e.g. "1.5s" or "1h0m0s"."""
    ns = _nanoseconds(value)
    if ns == 0:
        return "0s"
    sign = "-" if ns < 0 else ""
    u = abs(ns)
    if u < 1000:
        text = f"{u}ns"
    elif u < 10**6:
        text = _fraction(u, 3) + "µs"
    elif u < 10**9:
        text = _fraction(u, 6) + "ms"
    else:
        hours, rest = divmod(u, 3600 * 10**9)
        minutes, rest = divmod(rest, 60 * 10**9)
        seconds = _fraction(rest, 9) + "s"
        if hours:
            text = f"{hours}h{minutes}m{seconds}"
        elif minutes:
            text = f"{minutes}m{seconds}"
        else:
            text = seconds
    return sign + text


def _format_value(value: Any) -> str:
    if value is None:
        return "<nil>"
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, timedelta):
        return format_duration(value)
    if isinstance(value, (bytes, bytearray)):
        return "[" + " ".join(str(b) for b in value) + "]"
    if isinstance(value, float):
        return _go_float(value)
    if isinstance(value, complex):
        return _format_complex(value)
    if isinstance(value, (list, tuple)):
        return "[" + " ".join(_format_value(item) for item in value) + "]"
    if isinstance(value, dict):
        return _format_map(value)
    return str(value)


def _format_map(values: dict) -> str:
    items = sorted(values.items(), key=lambda kv: str(kv[0]))
    return "map[" + " ".join(f"{k}:{_format_value(v)}" for k, v in items) + "]"


# Array encoding ----------------------------------------------------------------


class ArrayEncoder:
    """Collects the string form of every value appended to it."""

    def __init__(self) -> None:
        self.strings: list[str] = []

    def append(self, value: Any) -> None:
        self.strings.append(_format_value(value))

    def append_array(self, marshaler: Callable[["ArrayEncoder"], None]) -> None:
        """Append a nested array; it is added even when the marshaler raises."""
        nested = ArrayEncoder()
        try:
            marshaler(nested)
        finally:
            self.strings.append("[" + " ".join(nested.strings) + "]")

    def append_object(self, marshaler: Callable[[dict], None]) -> None:
        """Append an object built by filling a dict; it is added even on error."""
        fields: dict = {}
        try:
            marshaler(fields)
        finally:
            self.strings.append(_format_map(fields))


ArrayMarshaler = Callable[[ArrayEncoder], None]
ObjectMarshaler = Callable[[dict], None]


# Field constructors ------------------------------------------------------------


def string(key: str, value: str) -> Field:
    return Field(key, FieldType.STRING, value)


def strings(key: str, values: Iterable[str]) -> Field:
    items = list(values)

    def marshal(enc: ArrayEncoder) -> None:
        for item in items:
            enc.append(item)

    return Field(key, FieldType.ARRAY, marshal)


def boolean(key: str, value: bool) -> Field:
    return Field(key, FieldType.BOOL, bool(value))


def integer(key: str, value: int) -> Field:
    return Field(key, FieldType.INT, int(value))


def floating(key: str, value: float) -> Field:
    return Field(key, FieldType.FLOAT, float(value))


def complex_(key: str, value: complex) -> Field:
    return Field(key, FieldType.COMPLEX, complex(value))


def duration(key: str, value: timedelta) -> Field:
    return Field(key, FieldType.DURATION, value)


def durations(key: str, values: Iterable[timedelta]) -> Field:
    items = list(values)

    def marshal(enc: ArrayEncoder) -> None:
        for item in items:
            enc.append(item)

    return Field(key, FieldType.ARRAY, marshal)


def timestamp(key: str, value: datetime) -> Field:
    return Field(key, FieldType.TIME, value)


def error(err: BaseException) -> Field:
    return Field("error", FieldType.ERROR, err)


def binary(key: str, value: bytes) -> Field:
    return Field(key, FieldType.BINARY, bytes(value))


def stringer(key: str, value: Any) -> Field:
    return Field(key, FieldType.STRINGER, value)


def reflect(key: str, value: Any) -> Field:
    return Field(key, FieldType.REFLECT, value)


def namespace(key: str) -> Field:
    return Field(key, FieldType.NAMESPACE)


def skip() -> Field:
    return Field("", FieldType.SKIP)


def array(key: str, marshaler: ArrayMarshaler) -> Field:
    return Field(key, FieldType.ARRAY, marshaler)


def object(key: str, marshaler: ObjectMarshaler) -> Field:
    return Field(key, FieldType.OBJECT, marshaler)


# Conversion to attributes ------------------------------------------------------


def _type_name(err: BaseException) -> str:
    cls = type(err)
    if cls.__module__ == "builtins":
        return cls.__qualname__
    return f"{cls.__module__}.{cls.__qualname__}"


def _unix_nanos(value: datetime) -> int:
    if value.tzinfo is None:
        value = value.astimezone()
    return _nanoseconds(value - _EPOCH)


def field_attributes(field: Field) -> list[KeyValue]:
    """Return the span attributes that describe a field."""
    key, kind, value = field.key, field.type, field.value
    if kind is FieldType.BOOL:
        return [KeyValue(key, bool(value))]
    if kind is FieldType.INT:
        return [KeyValue(key, int(value))]
    if kind is FieldType.FLOAT:
        return [KeyValue(key, float(value))]
    if kind is FieldType.COMPLEX:
        return [KeyValue(key, _format_complex_e(complex(value)))]
    if kind is FieldType.STRING:
        return [KeyValue(key, value)]
    if kind is FieldType.BINARY:
        return [KeyValue(key, bytes(value).decode("utf-8", errors="replace"))]
    if kind is FieldType.STRINGER:
        return [KeyValue(key, str(value))]
    if kind is FieldType.DURATION:
        return [KeyValue(key, _nanoseconds(value))]
    if kind is FieldType.TIME:
        return [KeyValue(key, _unix_nanos(value))]
    if kind is FieldType.ERROR:
        return [
            KeyValue(EXCEPTION_TYPE, _type_name(value)),
            KeyValue(EXCEPTION_MESSAGE, str(value)),
        ]
    if kind is FieldType.REFLECT:
        return [attribute(key, value)]
    if kind in (FieldType.SKIP, FieldType.NAMESPACE):
        return []
    if kind is FieldType.ARRAY:
        enc = ArrayEncoder()
        try:
            value(enc)
        except Exception as exc:
            return [KeyValue(f"{key}_error", f"otelextra: unable to marshal array: {exc}")]
        return [KeyValue(key, list(enc.strings))]
    if kind is FieldType.OBJECT:
        return [KeyValue(f"{key}_error", "otelextra: object fields are not supported")]
    return [KeyValue(f"{key}_error", f"otelextra: unknown field type: {field}")]