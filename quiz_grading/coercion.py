"""Helpers for reading loosely-typed answer payloads.

Stored answers arrive from several historical save paths: numbers stored as
strings, booleans stored as ``"true"``, whole payloads JSON-encoded once or
twice. These helpers turn such values into Python types, returning ``None``
when a value cannot be read instead of raising.
"""
import json
import math
import re
from typing import Any, Optional

_INT_PREFIX = re.compile(r'^\s*([+-]?\d+)')
_FLOAT_PREFIX = re.compile(r'^\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)')

MAX_DECODE_DEPTH = 3


def decode_json_payload(value: Any) -> Any:
    """Unwrap a JSON-encoded string, following nested encodings.

    Strings that are not valid JSON are returned unchanged.
    """
    for _ in range(MAX_DECODE_DEPTH):
        if not isinstance(value, str):
            return value
        stripped = value.strip()
        if not stripped or stripped[0] not in '{["':
            return value
        try:
            value = json.loads(stripped)
        except (ValueError, TypeError):
            return value
    return value


def to_int(value: Any) -> Optional[int]:
    """Read an option index.

    Accepts ints, integral floats and strings with a leading integer (the
    storage layer historically parsed indices with a prefix parser).
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if math.isfinite(value) and value.is_integer():
            return int(value)
        return None
    if isinstance(value, str):
        match = _INT_PREFIX.match(value)
        if match:
            return int(match.group(1))
    return None


def to_float(value: Any) -> Optional[float]:
    """Read a numeric answer from a number or a numeric string."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None
    if isinstance(value, str):
        match = _FLOAT_PREFIX.match(value)
        if match:
            return float(match.group(1))
    return None


def to_bool(value: Any, strict: bool = True) -> Optional[bool]:
    """Read a true/false value.

    With ``strict`` only ``"true"``/``"false"`` strings are accepted; the
    lenient form treats any string other than ``"true"`` as False, which is
    how stored correct answers were historically interpreted.
    """
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        if strict and value not in (0, 1):
            return None
        return value == 1
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered == 'true':
            return True
        if lowered == 'false' or not strict:
            return False
    return None


def to_points(value: Any) -> float:
    """Read a question's point value; unreadable values count as 0."""
    points = to_float(value)
    return points if points is not None else 0.0


def round_points(value: float) -> int:
    """Round half up to whole points."""
    return int(math.floor(value + 0.5))
