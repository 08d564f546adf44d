"""Attribute mapping, integration filter and integration settings comparisons."""

from __future__ import annotations

from typing import Any, Optional

import structlog

from .accessors import is_error_payload, payload_error
from .differ import StructuralDiffer, sort_rows
from .models import (
    DiffRow,
    IntegrationComparison,
    PayloadKind,
    PresenceRow,
    SectionError,
)
from .normalizer import (
    AliasTable,
    attribute_mapping_keys,
    classify_filters,
    filter_presence_keys,
    flatten_attribute_mappings,
    normalize_attribute_mappings,
    normalize_integration_filters,
)

logger = structlog.get_logger(__name__)


def _mapping_kind(data: Any) -> PayloadKind:
    if data is None or not isinstance(data, (dict, list)):
        return PayloadKind.INVALID
    if is_error_payload(data):
        return PayloadKind.API_ERROR
    if not flatten_attribute_mappings(data):
        return PayloadKind.EMPTY
    return PayloadKind.STRUCTURED


class IntegrationComparator:
    """Compares the integration-side configuration of two schools."""

    def __init__(
        self,
        aliases: Optional[AliasTable] = None,
        max_depth: int = 100,
        include_match_rows: bool = True
    ):
        self.aliases = aliases or AliasTable()
        self.max_depth = max_depth
        self.include_match_rows = include_match_rows

    def _diff(self, left: Any, right: Any) -> list[DiffRow]:
        return sort_rows(StructuralDiffer(self.max_depth, self.include_match_rows).diff(left, right))

    def compare_attribute_mappings(self, main: Any, baseline: Any) -> IntegrationComparison | SectionError:
        """
        Presence table keyed by primaryType and fieldName plus a structural diff.

        Either payload missing or errored makes the whole section an error.
        """
        for side, data in (("main", main), ("baseline", baseline)):
            if data is None or is_error_payload(data):
                logger.warning("attribute_mappings_unavailable", side=side, error=payload_error(data))
                return SectionError(
                    section="attributeMappings",
                    message="Attribute mappings data not available"
                )

        main_keys = attribute_mapping_keys(main, self.aliases)
        baseline_keys = attribute_mapping_keys(baseline, self.aliases)
        presence = [
            PresenceRow(
                group=primary_type,
                key=field_name,
                in_main=(primary_type, field_name) in main_keys,
                in_baseline=(primary_type, field_name) in baseline_keys
            )
            for primary_type, field_name in sorted(main_keys | baseline_keys)
        ]

        return IntegrationComparison(
            section="attributeMappings",
            main_kind=_mapping_kind(main),
            baseline_kind=_mapping_kind(baseline),
            presence=presence,
            diff_rows=self._diff(
                normalize_attribute_mappings(main, self.aliases),
                normalize_attribute_mappings(baseline, self.aliases)
            )
        )

    def compare_integration_filters(self, main: Any, baseline: Any) -> IntegrationComparison:
        """
        Presence table keyed by entityType, label and path plus a structural diff.

        An API error on either side leaves the comparison empty with the
        errors recorded.
        """
        main_kind, main_error = classify_filters(main)
        baseline_kind, baseline_error = classify_filters(baseline)
        result = IntegrationComparison(
            section="integrationFilters",
            main_kind=main_kind,
            baseline_kind=baseline_kind
        )

        if main_kind is PayloadKind.API_ERROR:
            result.errors["main"] = main_error or "unknown error"
        if baseline_kind is PayloadKind.API_ERROR:
            result.errors["baseline"] = baseline_error or "unknown error"
        if result.errors:
            logger.warning("integration_filters_cannot_compare", errors=result.errors)
            return result

        if PayloadKind.STRUCTURED not in (main_kind, baseline_kind):
            logger.info(
                "integration_filters_unstructured",
                main_kind=main_kind.value,
                baseline_kind=baseline_kind.value
            )
            return result

        main_keys = filter_presence_keys(main, self.aliases)
        baseline_keys = filter_presence_keys(baseline, self.aliases)
        result.presence = [
            PresenceRow(
                group=entity_type,
                key=path,
                label=label,
                in_main=(entity_type, label, path) in main_keys,
                in_baseline=(entity_type, label, path) in baseline_keys
            )
            for entity_type, label, path in sorted(main_keys | baseline_keys)
        ]
        result.diff_rows = self._diff(
            normalize_integration_filters(main, self.aliases),
            normalize_integration_filters(baseline, self.aliases)
        )
        return result

    def compare_integration_settings(self, main: Any, baseline: Any) -> Optional[list[DiffRow]]:
        """Structural diff of integrationSettings; None unless both schools carry usable settings."""
        if main is None or baseline is None:
            return None
        if is_error_payload(main) or is_error_payload(baseline):
            logger.warning("integration_settings_unavailable")
            return None
        return self._diff(main, baseline)
