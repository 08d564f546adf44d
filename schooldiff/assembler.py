"""Assembly of per-school field exception maps."""

from __future__ import annotations

from collections import Counter
from typing import Any, Optional

import structlog

from .accessors import is_error_payload, payload_error
from .global_exceptions import GlobalExceptionTable
from .models import (
    AssembledFieldMap,
    FieldExceptionMapResponse,
    FieldExceptionStatus,
    SchoolEntityConfig,
)

logger = structlog.get_logger(__name__)


class FieldExceptionMapAssembler:
    """
    Builds the effective field exception map for one school/entity pair.

    With a usable API map the result is that map with every configured
    group laid on top; configured groups always win and a path listed in
    several groups takes the last group's method. Without one the map is
    synthesized from configured paths only, and global exceptions fill
    configured paths that carry no method.
    """

    def __init__(self, table: Optional[GlobalExceptionTable] = None):
        self.table = table if table is not None else GlobalExceptionTable.default()

    def assemble(self, entity_type: str, api_field_map: Any, school_settings: Any) -> AssembledFieldMap:
        """
        Args:
            entity_type: Entity being assembled
            api_field_map: Flat path -> method mapping from the API, or None
            school_settings: Entity-level merge settings of the same school

        Returns:
            AssembledFieldMap, ``degraded`` when the API map was unusable
        """
        config = SchoolEntityConfig.from_settings(school_settings)
        duplicates = self._find_duplicates(config)
        if duplicates:
            logger.warning(
                "duplicate_configured_paths",
                entity=entity_type,
                paths=duplicates
            )

        if isinstance(api_field_map, dict) and api_field_map and not is_error_payload(api_field_map):
            field_map = {str(path): method for path, method in api_field_map.items()}
            for path, method, _ in config.iter_fields():
                if method:
                    field_map[path] = method
            return AssembledFieldMap(map=field_map, degraded=False, duplicates=duplicates)

        field_map = {}
        for path, method, _ in config.iter_fields():
            field_map[path] = method

        for path in [p for p, method in field_map.items() if not method]:
            global_value = self.table.lookup(path, entity_type)
            if global_value:
                field_map[path] = global_value
            else:
                del field_map[path]

        logger.info("field_map_degraded", entity=entity_type, fields=len(field_map))
        return AssembledFieldMap(map=field_map, degraded=True, duplicates=duplicates)

    @staticmethod
    def _find_duplicates(config: SchoolEntityConfig) -> list[str]:
        counts = Counter(config.configured_paths())
        return sorted(path for path, count in counts.items() if count > 1)


def build_field_exception_response(
    entity_type: str,
    api_payload: Any,
    school_settings: Any,
    assembler: Optional[FieldExceptionMapAssembler] = None
) -> FieldExceptionMapResponse:
    """
    Classify a raw entityFieldExceptions payload and assemble its map.

    A non-empty mapping is ``success``; an empty mapping is
    ``empty-response`` (the API answered but had no sample data); ``None``,
    an error payload or any other type is ``api-failed``.
    """
    assembler = assembler or FieldExceptionMapAssembler()
    error = None

    if api_payload is None:
        status = FieldExceptionStatus.API_FAILED
        error = "not fetched"
    elif is_error_payload(api_payload):
        status = FieldExceptionStatus.API_FAILED
        error = payload_error(api_payload)
    elif not isinstance(api_payload, dict):
        status = FieldExceptionStatus.API_FAILED
        error = f"unexpected payload type {type(api_payload).__name__}"
    elif not api_payload:
        status = FieldExceptionStatus.EMPTY
    else:
        status = FieldExceptionStatus.SUCCESS

    if status is FieldExceptionStatus.API_FAILED:
        logger.warning("field_exception_api_failed", entity=entity_type, error=error)
    elif status is FieldExceptionStatus.EMPTY:
        logger.warning("field_exception_empty_response", entity=entity_type)

    assembled = assembler.assemble(
        entity_type,
        api_payload if status is FieldExceptionStatus.SUCCESS else None,
        school_settings
    )

    return FieldExceptionMapResponse(
        entity_type=entity_type,
        status=status,
        data=assembled.map,
        api_available=status is not FieldExceptionStatus.API_FAILED,
        is_empty=status is FieldExceptionStatus.EMPTY,
        degraded=assembled.degraded,
        error=error,
        duplicates=assembled.duplicates
    )
