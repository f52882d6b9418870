"""Conversion between plain JSON values and Firestore typed values.

Firestore's REST API wraps every value in a single-key object naming its
type, e.g. ``{"integerValue": "3"}`` or ``{"mapValue": {"fields": {...}}}``.
Integers travel as decimal strings. Arrays may not directly contain arrays.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from typing import Any


def encode_value(value: Any, *, _in_array: bool = False) -> dict[str, Any]:
    """Encode a JSON-compatible value. Raises :class:`ValueError` otherwise."""
    if value is None:
        return {"nullValue": None}
    if isinstance(value, bool):
        return {"booleanValue": value}
    if isinstance(value, int):
        return {"integerValue": str(value)}
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            raise ValueError(f"cannot encode non-finite number {value!r}")
        return {"doubleValue": value}
    if isinstance(value, str):
        return {"stringValue": value}
    if isinstance(value, Mapping):
        fields = encode_fields(value)
        return {"mapValue": {"fields": fields} if fields else {}}
    if isinstance(value, (list, tuple)):
        if _in_array:
            raise ValueError("Firestore arrays cannot directly contain arrays")
        values = [encode_value(item, _in_array=True) for item in value]
        return {"arrayValue": {"values": values} if values else {}}
    raise ValueError(f"cannot encode value of type {type(value).__name__}")


def encode_fields(data: Mapping[str, Any]) -> dict[str, Any]:
    fields: dict[str, Any] = {}
    for key, value in data.items():
        if not isinstance(key, str):
            raise ValueError(f"map keys must be strings, got {type(key).__name__}")
        fields[key] = encode_value(value)
    return fields


def decode_value(value: Mapping[str, Any]) -> Any:
    """Decode one Firestore typed value back to plain JSON."""
    if len(value) != 1:
        raise ValueError(f"expected exactly one value type, got {sorted(value)}")
    kind, inner = next(iter(value.items()))
    if kind == "nullValue":
        return None
    if kind == "booleanValue":
        return bool(inner)
    if kind == "integerValue":
        return int(inner)
    if kind == "doubleValue":
        return float(inner)
    if kind in ("stringValue", "timestampValue", "referenceValue", "bytesValue"):
        return str(inner)
    if kind == "mapValue":
        return decode_fields((inner or {}).get("fields", {}))
    if kind == "arrayValue":
        return [decode_value(item) for item in (inner or {}).get("values", [])]
    if kind == "geoPointValue":
        return dict(inner)
    raise ValueError(f"unsupported Firestore value type {kind!r}")


def decode_fields(fields: Mapping[str, Any]) -> dict[str, Any]:
    return {key: decode_value(value) for key, value in fields.items()}
