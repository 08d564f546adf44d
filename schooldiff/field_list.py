"""Comparison domain for one entity's field exceptions."""

from __future__ import annotations

from typing import Any

from .accessors import entity_settings, is_error_payload
from .models import AssembledFieldMap, FieldExceptionMapResponse, SchoolEntityConfig


def map_data(field_map: Any) -> dict:
    """
    The path -> method mapping behind any of the shapes a field map travels in.

    Accepts a FieldExceptionMapResponse, an AssembledFieldMap, a raw
    ``{status, data, ...}`` response mapping, or a bare mapping.
    """
    if isinstance(field_map, FieldExceptionMapResponse):
        return field_map.data
    if isinstance(field_map, AssembledFieldMap):
        return field_map.map
    if not isinstance(field_map, dict) or is_error_payload(field_map):
        return {}
    if "status" in field_map and "data" in field_map:
        data = field_map.get("data")
        return data if isinstance(data, dict) else {}
    return field_map


class UnifiedFieldListBuilder:
    """
    Union of every field path either school knows about for an entity.

    Paths come from both field maps and from every configured exception
    group of both schools, so configured fields still surface when an API
    map failed. Nothing is dropped for being present on one side only.
    """

    def build(
        self,
        entity_type: str,
        main_field_map: Any,
        baseline_field_map: Any,
        main_merge_settings: Any,
        baseline_merge_settings: Any
    ) -> frozenset[str]:
        paths = set(map_data(main_field_map)) | set(map_data(baseline_field_map))

        for merge_settings in (main_merge_settings, baseline_merge_settings):
            config = SchoolEntityConfig.from_settings(entity_settings(merge_settings, entity_type))
            paths.update(config.configured_paths())

        return frozenset(str(path) for path in paths)
