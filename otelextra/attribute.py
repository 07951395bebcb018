"""Turn arbitrary values into span attributes."""

from __future__ import annotations

import dataclasses
import json
from typing import Any, NamedTuple

_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1
_UINT64_MAX = 2**64 - 1


class KeyValue(NamedTuple):
    """An attribute; a value of None marks an attribute that could not be built."""

    key: str
    value: Any

    @property
    def valid(self) -> bool:
        return self.value is not None


def _wrap_int64(value: int) -> int:
    return value - 2**64 if value > _INT64_MAX else value


def _is_stringer(value: Any) -> bool:
    return type(value).__str__ is not object.__str__


def _slice(values: Any) -> Any:
    items = list(values)
    if all(type(item) is bool for item in items):
        return items
    if all(isinstance(item, int) and not isinstance(item, bool) for item in items):
        if all(_INT64_MIN <= item <= _INT64_MAX for item in items):
            return [int(item) for item in items]
        return None
    if all(type(item) is float for item in items):
        return items
    if all(isinstance(item, str) for item in items):
        return [str(item) for item in items]
    return None


def _json_default(obj: Any) -> Any:
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return dataclasses.asdict(obj)
    raise TypeError(f"cannot encode {type(obj).__name__}")


def _marshal(value: Any) -> str:
    try:
        return json.dumps(
            value,
            default=_json_default,
            sort_keys=True,
            separators=(",", ":"),
            ensure_ascii=False,
            allow_nan=False,
        )
    except (TypeError, ValueError):
        return str(value)


def attribute(key: str, value: Any) -> KeyValue:
    """Build an attribute from any value, falling back to JSON and then to str()."""
    if value is None:
        return KeyValue(key, "<nil>")
    kind = type(value)
    if kind in (str, float, bool):
        return KeyValue(key, value)
    if kind is int and _INT64_MIN <= value <= _UINT64_MAX:
        return KeyValue(key, _wrap_int64(value))
    if _is_stringer(value):
        return KeyValue(key, str(value))
    if isinstance(value, (list, tuple)):
        return KeyValue(key, _slice(value))
    if isinstance(value, int) and kind is not int and _INT64_MIN <= value <= _INT64_MAX:
        return KeyValue(key, int(value))
    if isinstance(value, float):
        return KeyValue(key, float(value))
    return KeyValue(key, _marshal(value))