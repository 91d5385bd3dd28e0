"""Normalization helpers.

Centralizes defensive value parsing shared by the mapping loader and the
transform engine.
"""

from __future__ import annotations

import math
from typing import Any

from can2vss.models._base import ValueType

_INT_RANGES: dict[ValueType, tuple[int, int]] = {
    ValueType.INT8: (-(2**7), 2**7 - 1),
    ValueType.INT16: (-(2**15), 2**15 - 1),
    ValueType.INT32: (-(2**31), 2**31 - 1),
    ValueType.INT64: (-(2**63), 2**63 - 1),
    ValueType.UINT8: (0, 2**8 - 1),
    ValueType.UINT16: (0, 2**16 - 1),
    ValueType.UINT32: (0, 2**32 - 1),
    ValueType.UINT64: (0, 2**64 - 1),
}

_TRUE_TEXT = frozenset({"1", "true", "yes", "on"})
_FALSE_TEXT = frozenset({"0", "false", "no", "off"})


def safe_float(value: Any) -> float | None:
    if value is None or value == "":
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(result):
        return None
    return result


def safe_int(value: Any) -> int | None:
    parsed = safe_float(value)
    if parsed is None or math.isinf(parsed):
        return None
    return int(parsed)


def scalar_text(value: Any) -> str:
    """Return the canonical text form used for value-map lookups.

    Booleans become ``"true"``/``"false"`` and integral floats lose their
    fractional part, so a decoded ``1.0`` matches a configured ``1``.
    """
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    text = str(value).strip().lower()
    if text in _TRUE_TEXT:
        return True
    if text in _FALSE_TEXT:
        return False
    raise ValueError(f"cannot interpret {value!r} as bool")


def _to_int(value: Any, datatype: ValueType) -> int:
    if isinstance(value, bool):
        result = int(value)
    elif isinstance(value, int):
        result = value
    else:
        parsed = safe_float(value)
        if parsed is None or math.isinf(parsed):
            raise ValueError(f"cannot interpret {value!r} as {datatype.value}")
        result = int(round(parsed))
    low, high = _INT_RANGES[datatype]
    if not low <= result <= high:
        raise ValueError(f"{result} out of range for {datatype.value}")
    return result


def _to_float(value: Any, datatype: ValueType) -> float:
    if isinstance(value, bool):
        return float(value)
    parsed = safe_float(value)
    if parsed is None:
        raise ValueError(f"cannot interpret {value!r} as {datatype.value}")
    return parsed


def coerce_value(datatype: ValueType, value: Any) -> Any:
    """Convert *value* to the Python type matching *datatype*.

    Raises :class:`ValueError` when the value cannot be represented.
    ``struct`` and ``unspecified`` values are returned untouched.
    """
    if datatype == ValueType.BOOL:
        return _to_bool(value)
    if datatype.is_integer:
        return _to_int(value, datatype)
    if datatype.is_floating:
        return _to_float(value, datatype)
    if datatype == ValueType.STRING:
        return scalar_text(value)
    return value
