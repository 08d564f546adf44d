"""Generic structural diff of two JSON-like trees."""

from __future__ import annotations

from typing import Any, Iterable

import structlog

from .models import DiffRow, DiffStatus
from .utils import canonical_json, join_path, type_category, values_equal

logger = structlog.get_logger(__name__)

_MISSING = object()


def _keys(container: Any) -> list[str]:
    if isinstance(container, dict):
        return [str(k) for k in container.keys()]
    if isinstance(container, (list, tuple)):
        return [str(i) for i in range(len(container))]
    return []


def _child(container: Any, key: str) -> Any:
    if isinstance(container, dict):
        if key in container:
            return container[key]
        for k in container:
            if str(k) == key:
                return container[k]
        return _MISSING
    if isinstance(container, (list, tuple)):
        if key.isdigit() and int(key) < len(container):
            return container[int(key)]
    return _MISSING


def sort_rows(rows: Iterable[DiffRow]) -> list[DiffRow]:
    """Deterministic row order for rendering."""
    return sorted(rows, key=lambda r: r.path)


class StructuralDiffer:
    """
    Schema-less recursive comparison.

    Values fall into coarse type buckets first (null, arrays and mappings
    all count as objects). Different buckets give one ``different`` row. A
    null facing a non-null object gives ``onlyRight`` when the left side is
    null and ``onlyLeft`` otherwise; two nulls give no row. Scalars give
    ``match`` or ``different``. Objects recurse over the union of their
    keys, and a key held by one side only gives a single row without
    expanding the value.

    Rows are emitted in traversal order; sort them before rendering.
    """

    def __init__(self, max_depth: int = 100, include_match_rows: bool = True):
        self.max_depth = max_depth
        self.include_match_rows = include_match_rows
        self.rows: list[DiffRow] = []
        self.truncated_paths: list[str] = []

    def diff(self, left: Any, right: Any, base_path: str = "") -> list[DiffRow]:
        """
        Compare two trees.

        Args:
            left: Main side value
            right: Baseline side value
            base_path: Dotted path of the compared values; ``root`` when empty

        Returns:
            Rows produced by this call
        """
        start = len(self.rows)
        self._diff(left, right, base_path, 0)
        return self.rows[start:]

    def _diff(self, left: Any, right: Any, path: str, depth: int) -> None:
        row_path = path or "root"

        if type_category(left) != type_category(right):
            self._add_row(row_path, left, right, DiffStatus.DIFFERENT)
            return

        if left is None or right is None:
            if left is not right:
                status = DiffStatus.ONLY_RIGHT if left is None else DiffStatus.ONLY_LEFT
                self._add_row(row_path, left, right, status)
            return

        if type_category(left) != "object":
            # Serialized equality covers NaN
            equal = values_equal(left, right) or canonical_json(left) == canonical_json(right)
            status = DiffStatus.MATCH if equal else DiffStatus.DIFFERENT
            self._add_row(row_path, left, right, status)
            return

        if depth >= self.max_depth:
            self._add_truncated(row_path, left, right)
            return

        seen = set()
        all_keys = []
        for key in _keys(left) + _keys(right):
            if key not in seen:
                seen.add(key)
                all_keys.append(key)

        for key in all_keys:
            child_path = join_path(path, key)
            left_value = _child(left, key)
            right_value = _child(right, key)

            if left_value is _MISSING:
                self._add_row(child_path, None, right_value, DiffStatus.ONLY_RIGHT)
            elif right_value is _MISSING:
                self._add_row(child_path, left_value, None, DiffStatus.ONLY_LEFT)
            else:
                self._diff(left_value, right_value, child_path, depth + 1)

    def _add_truncated(self, path: str, left: Any, right: Any) -> None:
        equal = canonical_json(left) == canonical_json(right)
        self.truncated_paths.append(path)
        logger.warning("diff_depth_truncated", path=path, max_depth=self.max_depth)
        self._add_row(
            path,
            left,
            right,
            DiffStatus.MATCH if equal else DiffStatus.DIFFERENT,
            truncated=True
        )

    def _add_row(
        self,
        path: str,
        left: Any,
        right: Any,
        status: DiffStatus,
        truncated: bool = False
    ) -> None:
        if status is DiffStatus.MATCH and not self.include_match_rows and not truncated:
            return
        self.rows.append(DiffRow(
            path=path,
            left_value=left,
            right_value=right,
            status=status,
            truncated=truncated
        ))


def diff(
    left: Any,
    right: Any,
    base_path: str = "",
    max_depth: int = 100,
    include_match_rows: bool = True
) -> list[DiffRow]:
    """Structural diff of two values with a fresh differ."""
    return StructuralDiffer(max_depth=max_depth, include_match_rows=include_match_rows).diff(
        left, right, base_path
    )
