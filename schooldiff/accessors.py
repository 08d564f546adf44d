"""Accessors over untyped school payloads.

Every read of externally fetched JSON goes through these helpers so that a
shape mismatch yields a documented sentinel (``None``, ``{}`` or ``[]``)
instead of a type error deep inside a comparison.
"""

from __future__ import annotations

from typing import Any, Optional, Sequence
from jsonpath_ng.jsonpath import Child, Fields, Root


class JSONPathMatcher:
    """Builds jsonpath expressions for dotted field paths."""

    @classmethod
    def compile(cls, path: str | Sequence[str]):
        """Build the expression for a dotted path or segment list; nothing is cached."""
        segments = path.split(".") if isinstance(path, str) else path
        expr = Root()
        for segment in segments:
            expr = Child(expr, Fields(str(segment)))
        return expr

    @classmethod
    def find_values(cls, data: Any, path: str | Sequence[str]) -> list[Any]:
        """Find all values at the given path; an unreachable path gives an empty list."""
        if not path:
            return [data]
        return [m.value for m in cls.compile(path).find(data)]


def get_path(data: Any, path: str | Sequence[str], default: Any = None) -> Any:
    """Read a nested value by dotted path, returning ``default`` when any step is missing."""
    values = JSONPathMatcher.find_values(data, path)
    return values[0] if values else default


def as_dict(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


def as_list(value: Any) -> list:
    return value if isinstance(value, list) else []


def is_error_payload(value: Any) -> bool:
    """True when a fetch result is the ``{error: ...}`` marker the fetch layer leaves behind."""
    return isinstance(value, dict) and "error" in value


def payload_error(value: Any) -> Optional[str]:
    """The error text of an error payload, or None."""
    if not is_error_payload(value):
        return None
    error = value.get("error")
    if isinstance(error, dict):
        return str(error.get("message") or error)
    return str(error)


def entity_keys(merge_settings: Any) -> set[str]:
    """Keys of a merge-settings payload whose values are objects."""
    if not isinstance(merge_settings, dict) or is_error_payload(merge_settings):
        return set()
    return {key for key, value in merge_settings.items() if isinstance(value, dict)}


def entity_settings(merge_settings: Any, entity_type: str) -> Optional[dict]:
    """The settings object for one entity, or None when absent or malformed."""
    if not isinstance(merge_settings, dict) or is_error_payload(merge_settings):
        return None
    settings = merge_settings.get(entity_type)
    return settings if isinstance(settings, dict) else None


def merge_settings_available(merge_settings: Any) -> bool:
    """A merge-settings fetch counts as usable when it is a non-error mapping."""
    return isinstance(merge_settings, dict) and not is_error_payload(merge_settings)
