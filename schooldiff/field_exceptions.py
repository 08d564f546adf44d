"""Field exception, default method and stepsToExecute comparisons."""

from __future__ import annotations

from typing import Any, Iterable, Optional

import structlog

from .accessors import as_dict, entity_settings, merge_settings_available
from .differ import StructuralDiffer, sort_rows
from .field_list import map_data
from .models import (
    NO_RECORD_NOTE,
    NOT_CONFIGURED_NOTE,
    ConfiguredExceptionRow,
    DiffRow,
    DiffStatus,
    EntityComparisonStatus,
    EntityFieldExceptionComparison,
    FieldExceptionCell,
    FieldExceptionMapResponse,
    FieldExceptionRow,
    FieldExceptionStatus,
    SchoolEntityConfig,
    SchoolEntityStatus,
)
from .resolver import ExceptionResolver

logger = structlog.get_logger(__name__)


def _default_method(settings: Optional[dict]) -> Optional[str]:
    method = as_dict(settings).get("conflictHandlingMethod")
    return method if isinstance(method, str) and method else None


def _presence_status(left: Any, right: Any) -> DiffStatus:
    if left is None and right is None:
        return DiffStatus.MATCH
    if right is None:
        return DiffStatus.ONLY_LEFT
    if left is None:
        return DiffStatus.ONLY_RIGHT
    return DiffStatus.MATCH if left == right else DiffStatus.DIFFERENT


class FieldExceptionComparator:
    """Per-entity comparison of two schools' effective field exceptions."""

    def __init__(self, resolver: Optional[ExceptionResolver] = None):
        self.resolver = resolver or ExceptionResolver()

    def compare_entity(
        self,
        entity_type: str,
        main_merge_settings: Any,
        baseline_merge_settings: Any,
        main_response: Optional[FieldExceptionMapResponse],
        baseline_response: Optional[FieldExceptionMapResponse],
        field_list: Optional[Iterable[str]] = None
    ) -> EntityFieldExceptionComparison:
        """
        Compare one entity across both schools.

        Args:
            entity_type: Entity to compare
            main_merge_settings: Main school's full merge settings payload
            baseline_merge_settings: Baseline school's full merge settings payload
            main_response: Main school's classified field exception map
            baseline_response: Baseline school's classified field exception map
            field_list: Comparison domain; defaults to the union of both maps

        Returns:
            EntityFieldExceptionComparison
        """
        main_ok = merge_settings_available(main_merge_settings)
        baseline_ok = merge_settings_available(baseline_merge_settings)
        main_settings = entity_settings(main_merge_settings, entity_type)
        baseline_settings = entity_settings(baseline_merge_settings, entity_type)

        main_status = SchoolEntityStatus(
            merge_settings_ok=main_ok,
            response_status=self._response_status(main_response) if main_ok else None,
            default_method=_default_method(main_settings)
        )
        baseline_status = SchoolEntityStatus(
            merge_settings_ok=baseline_ok,
            response_status=self._response_status(baseline_response) if baseline_ok else None,
            default_method=_default_method(baseline_settings)
        )

        if not main_ok or not baseline_ok:
            if not main_ok and not baseline_ok:
                reason = "Both schools' merge settings failed"
            elif not main_ok:
                reason = "Main school's merge settings failed"
            else:
                reason = "Baseline school's merge settings failed"
            logger.warning("field_exceptions_cannot_compare", entity=entity_type, reason=reason)
            return EntityFieldExceptionComparison(
                entity_type=entity_type,
                status=EntityComparisonStatus.CANNOT_COMPARE,
                main=main_status,
                baseline=baseline_status,
                reason=reason
            )

        main_map = map_data(main_response)
        baseline_map = map_data(baseline_response)

        if not main_map and not baseline_map:
            logger.info("field_exceptions_no_data", entity=entity_type)
            return EntityFieldExceptionComparison(
                entity_type=entity_type,
                status=EntityComparisonStatus.NO_DATA,
                main=main_status,
                baseline=baseline_status,
                reason="Neither school has field exception data"
            )

        if field_list:
            paths = sorted(field_list)
        else:
            paths = sorted(set(main_map) | set(baseline_map))

        rows = []
        for path in paths:
            in_main = path in main_map
            in_baseline = path in baseline_map
            main_cell = self._cell(path, entity_type, in_main, main_map, main_response, main_settings)
            baseline_cell = self._cell(
                path, entity_type, in_baseline, baseline_map, baseline_response, baseline_settings
            )

            if in_main and in_baseline:
                status = (
                    DiffStatus.MATCH
                    if main_cell.comparable == baseline_cell.comparable
                    else DiffStatus.DIFFERENT
                )
            elif in_main:
                status = DiffStatus.ONLY_LEFT
            elif in_baseline:
                status = DiffStatus.ONLY_RIGHT
            else:
                status = DiffStatus.DIFFERENT

            # Same method means no mismatch, whichever layer produced it
            if main_cell.comparable == baseline_cell.comparable:
                status = DiffStatus.MATCH

            rows.append(FieldExceptionRow(
                path=path,
                main=main_cell,
                baseline=baseline_cell,
                status=status
            ))

        partial = (
            main_status.response_status is not FieldExceptionStatus.SUCCESS
            or baseline_status.response_status is not FieldExceptionStatus.SUCCESS
        )
        mismatches = [r for r in rows if r.status is not DiffStatus.MATCH]
        defaults_differ = (main_status.default_method or "N/A") != (baseline_status.default_method or "N/A")

        return EntityFieldExceptionComparison(
            entity_type=entity_type,
            status=EntityComparisonStatus.PARTIAL if partial else EntityComparisonStatus.OK,
            main=main_status,
            baseline=baseline_status,
            rows=rows,
            total_fields=len(paths),
            defaults_differ_everywhere=bool(rows) and len(mismatches) == len(rows) and defaults_differ
        )

    def _cell(
        self,
        path: str,
        entity_type: str,
        in_map: bool,
        field_map: dict,
        response: Optional[FieldExceptionMapResponse],
        settings: Optional[dict]
    ) -> FieldExceptionCell:
        if in_map or self.resolver.is_configured(path, settings):
            return FieldExceptionCell(
                resolution=self.resolver.resolve(path, entity_type, settings),
                map_value=field_map.get(path)
            )

        no_record = response is None or not response.api_available or response.is_empty
        return FieldExceptionCell(note=NO_RECORD_NOTE if no_record else NOT_CONFIGURED_NOTE)

    @staticmethod
    def _response_status(response: Optional[FieldExceptionMapResponse]) -> FieldExceptionStatus:
        if response is None:
            return FieldExceptionStatus.API_FAILED
        return response.status


def compare_entity_field_exceptions(
    entity_type: str,
    main_merge_settings: Any,
    baseline_merge_settings: Any,
    main_response: Optional[FieldExceptionMapResponse],
    baseline_response: Optional[FieldExceptionMapResponse],
    field_list: Optional[Iterable[str]] = None,
    resolver: Optional[ExceptionResolver] = None
) -> EntityFieldExceptionComparison:
    """Compare one entity's field exceptions with a comparator built on ``resolver``."""
    return FieldExceptionComparator(resolver).compare_entity(
        entity_type,
        main_merge_settings,
        baseline_merge_settings,
        main_response,
        baseline_response,
        field_list
    )


def compare_configured_exceptions(main_settings: Any, baseline_settings: Any) -> list[ConfiguredExceptionRow]:
    """
    Compare only the explicitly configured exception groups of one entity.

    A path listed in several groups of one school keeps the last group's
    method. Rows are sorted by path and include matches.
    """
    fields: dict[str, dict] = {}
    for side, settings in (("main", main_settings), ("baseline", baseline_settings)):
        config = SchoolEntityConfig.from_settings(settings)
        for path, method, label in config.iter_fields():
            entry = fields.setdefault(path, {})
            entry[f"{side}_method"] = method or None
            entry[f"{side}_label"] = label

    rows = []
    for path in sorted(fields):
        entry = fields[path]
        main_method = entry.get("main_method")
        baseline_method = entry.get("baseline_method")
        rows.append(ConfiguredExceptionRow(
            path=path,
            label=entry.get("main_label") or entry.get("baseline_label") or path,
            main_method=main_method,
            baseline_method=baseline_method,
            status=_presence_status(main_method, baseline_method)
        ))
    return rows


def compare_default_methods(
    entities: Iterable[str],
    main_merge_settings: Any,
    baseline_merge_settings: Any
) -> list[DiffRow]:
    """One row per entity comparing the default conflictHandlingMethod."""
    rows = []
    for entity in entities:
        main_method = _default_method(entity_settings(main_merge_settings, entity))
        baseline_method = _default_method(entity_settings(baseline_merge_settings, entity))
        rows.append(DiffRow(
            path=entity,
            left_value=main_method,
            right_value=baseline_method,
            status=_presence_status(main_method, baseline_method)
        ))
    return rows


def compare_steps_to_execute(
    entities: Iterable[str],
    main_merge_settings: Any,
    baseline_merge_settings: Any,
    max_depth: int = 100,
    include_match_rows: bool = True
) -> dict[str, list[DiffRow]]:
    """Structural diff of each entity's ``stepsToExecute``, keyed by entity."""
    results = {}
    for entity in entities:
        main_steps = as_dict(entity_settings(main_merge_settings, entity)).get("stepsToExecute")
        baseline_steps = as_dict(entity_settings(baseline_merge_settings, entity)).get("stepsToExecute")
        if main_steps is None and baseline_steps is None:
            results[entity] = []
            continue
        differ = StructuralDiffer(max_depth=max_depth, include_match_rows=include_match_rows)
        results[entity] = sort_rows(differ.diff(as_dict(main_steps), as_dict(baseline_steps)))
    return results
