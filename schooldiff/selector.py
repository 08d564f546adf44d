"""Selection of the entity types in scope for a comparison."""

from __future__ import annotations

from typing import Any

import structlog

from .accessors import entity_keys, is_error_payload, payload_error
from .models import EntitySelection, FormatterValidation, SelectionMethod

logger = structlog.get_logger(__name__)


def validate_formatters(formatters: Any, school_name: str = "main") -> FormatterValidation:
    """
    Check a formatter payload.

    Valid means a non-error mapping with at least one key whose value is
    exactly ``True``.
    """
    result = FormatterValidation()

    if formatters is None:
        result.error_message = f"No formatter data available for {school_name}"
        return result

    if is_error_payload(formatters):
        result.error_message = f"Formatter API error for {school_name}: {payload_error(formatters)}"
        return result

    if not isinstance(formatters, dict):
        result.error_message = (
            f"Invalid formatter data type for {school_name}: "
            f"expected object, got {type(formatters).__name__}"
        )
        return result

    result.has_data = True
    result.enabled_count = sum(1 for value in formatters.values() if value is True)
    result.is_valid = result.enabled_count > 0
    if not result.is_valid:
        result.error_message = f"No formatters enabled for {school_name}"
    return result


def enabled_entities(*merge_settings: Any) -> list[str]:
    """Sorted union of entities flagged ``enabled: True`` in any of the given merge settings."""
    found = set()
    for settings in merge_settings:
        for key in entity_keys(settings):
            if settings[key].get("enabled") is True:
                found.add(key)
    return sorted(found)


class EntitySelector:
    """
    Decides which entity types to compare.

    Only the main school's formatters are consulted. Formatter-enabled keys
    must also appear in either school's merge settings; when none survive,
    the selection falls back to ``enabled`` flags in merge settings.
    """

    def __init__(self, school_name: str = "main"):
        self.school_name = school_name

    def select(
        self,
        main_formatters: Any,
        main_merge_settings: Any,
        baseline_merge_settings: Any
    ) -> EntitySelection:
        validation = validate_formatters(main_formatters, self.school_name)
        invalid = []

        if validation.is_valid:
            available = entity_keys(main_merge_settings) | entity_keys(baseline_merge_settings)
            selected = []
            for key, value in main_formatters.items():
                if value is not True:
                    continue
                if key in available:
                    selected.append(key)
                else:
                    invalid.append(key)
                    logger.warning("formatter_entity_not_in_merge_settings", entity=key)

            if selected:
                logger.info("entities_selected", method="formatters", count=len(selected))
                return EntitySelection(
                    entities=sorted(selected),
                    method=SelectionMethod.FORMATTERS,
                    formatter_validation=validation,
                    invalid_formatter_entities=sorted(invalid)
                )
            logger.warning("no_valid_formatter_entities", invalid=sorted(invalid))
        else:
            logger.warning("formatters_unusable", reason=validation.error_message)

        fallback = enabled_entities(main_merge_settings, baseline_merge_settings)
        logger.info("entity_selection_fallback", count=len(fallback))

        return EntitySelection(
            entities=fallback,
            method=SelectionMethod.MERGE_SETTINGS if fallback else SelectionMethod.NONE,
            formatter_validation=validation,
            invalid_formatter_entities=sorted(invalid)
        )

    def select_target_entities(
        self,
        main_formatters: Any,
        main_merge_settings: Any,
        baseline_merge_settings: Any
    ) -> list[str]:
        """Sorted entity types to compare; empty when nothing is in scope."""
        return self.select(main_formatters, main_merge_settings, baseline_merge_settings).entities


def select_target_entities(
    main_formatters: Any,
    main_merge_settings: Any,
    baseline_merge_settings: Any
) -> list[str]:
    """Convenience wrapper around ``EntitySelector().select_target_entities``."""
    return EntitySelector().select_target_entities(
        main_formatters, main_merge_settings, baseline_merge_settings
    )
