"""Utility functions for SchoolDiff engine."""

from __future__ import annotations

import json
from typing import Any, Optional


WILDCARD = "$"


def serialize_path(path: Any) -> Optional[str]:
    """
    Turn a field path into its dotted form.

    Accepts either a segment list (``['times', '$', 'timeBlockId']``) or an
    already dotted string. Returns None for anything that does not yield a
    non-empty path.
    """
    if isinstance(path, str):
        return path or None

    if not isinstance(path, (list, tuple)) or not path:
        return None

    segments = []
    for segment in path:
        if isinstance(segment, bool) or not isinstance(segment, (str, int)):
            return None
        segments.append(str(segment))

    joined = ".".join(segments)
    return joined or None


def split_path(path: str) -> list[str]:
    """Split a dotted field path into segments."""
    if not path:
        return []
    return path.split(".")


def join_path(base: str, key: Any) -> str:
    """Append a key to a dotted path."""
    return f"{base}.{key}" if base else str(key)


def segments_match(pattern: list[str], concrete: list[str]) -> bool:
    """Check a segment pattern against a concrete path, ``$`` matching any one segment."""
    if len(pattern) != len(concrete):
        return False
    return all(p == c or p == WILDCARD for p, c in zip(pattern, concrete))


def is_numeric(value: Any) -> bool:
    """Check if a value is numeric (int or float)."""
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def type_category(value: Any) -> str:
    """
    Coarse type bucket used by the structural differ.

    null, arrays and mappings all land in ``object``; ints and floats share
    ``number``.
    """
    if value is None or isinstance(value, (dict, list, tuple)):
        return "object"
    if isinstance(value, bool):
        return "boolean"
    if is_numeric(value):
        return "number"
    if isinstance(value, str):
        return "string"
    return type(value).__name__


def values_equal(old: Any, new: Any) -> bool:
    """Check if two scalars are equal (ints and floats interoperate, booleans never equal numbers)."""
    if isinstance(old, bool) or isinstance(new, bool):
        return type(old) == type(new) and old == new

    if type(old) == type(new):
        return old == new

    if is_numeric(old) and is_numeric(new):
        return float(old) == float(new)

    return old == new


def deep_equal(left: Any, right: Any) -> bool:
    """
    Structural equality for JSON-like values.

    Mapping keys are compared as sets, sequences element by element in order.
    """
    if isinstance(left, dict) and isinstance(right, dict):
        if set(left.keys()) != set(right.keys()):
            return False
        return all(deep_equal(left[k], right[k]) for k in left)

    if isinstance(left, (list, tuple)) and isinstance(right, (list, tuple)):
        if len(left) != len(right):
            return False
        return all(deep_equal(a, b) for a, b in zip(left, right))

    if isinstance(left, (dict, list, tuple)) or isinstance(right, (dict, list, tuple)):
        return False

    return values_equal(left, right)


def canonical_json(value: Any) -> str:
    """Serialize a value with sorted keys so equal structures give equal strings."""
    return json.dumps(value, sort_keys=True, separators=(",", ":"), default=str)


def value_to_string(value: Any) -> str:
    """JSON form of a value for display; strings keep their quotes."""
    try:
        return json.dumps(value, default=str)
    except (TypeError, ValueError):
        return str(value)


def display_value(value: Any) -> str:
    """Plain display form: ``null`` for None, JSON for containers, bare text otherwise."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list, tuple)):
        return value_to_string(value)
    return str(value)


def js_truthy(value: Any) -> bool:
    """Truthiness where empty containers still count as set."""
    if value is None or value is False:
        return False
    if is_numeric(value):
        return value == value and value != 0
    if isinstance(value, str):
        return value != ""
    return True


def truncate(text: str, max_length: Optional[int]) -> str:
    if max_length is None or max_length <= 0 or len(text) <= max_length:
        return text
    return text[:max_length] + "..."
