"""Main comparison engine for SchoolDiff."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

import structlog

from .accessors import as_dict, entity_settings, is_error_payload, merge_settings_available
from .assembler import FieldExceptionMapAssembler, build_field_exception_response
from .exceptions import SchoolDiffError, ValidationError
from .field_exceptions import (
    FieldExceptionComparator,
    compare_configured_exceptions,
    compare_default_methods,
    compare_steps_to_execute,
)
from .field_list import UnifiedFieldListBuilder
from .global_exceptions import GlobalExceptionTable
from .integrations import IntegrationComparator
from .models import (
    ComparisonReport,
    DiffStatus,
    EngineConfig,
    EntityComparisonStatus,
    ErrorResponse,
    ExecutionInfo,
    FieldExceptionMapResponse,
    FieldExceptionStatus,
    IntegrationComparison,
    SectionError,
    Summary,
    TemplateComparison,
)
from .normalizer import AliasTable
from .questions import TEMPLATE_TYPES, QuestionConfigComparator, extract_questions
from .resolver import ExceptionResolver
from .selector import EntitySelector

logger = structlog.get_logger(__name__)


@dataclass
class SchoolSnapshot:
    """Everything fetched from one school, exactly as the fetch layer returned it."""
    name: str
    environment: str = "staging"
    merge_settings: Any = None
    formatters: Any = None
    field_exception_maps: dict[str, Any] = field(default_factory=dict)
    templates: dict[str, Any] = field(default_factory=dict)
    attribute_mappings: Any = None
    integration_filters: Any = None
    integration_settings: Any = None

    @classmethod
    def from_dict(cls, data: Any, default_name: str = "school") -> "SchoolSnapshot":
        """
        Build a snapshot from a loaded file.

        Raises:
            ValidationError: If ``data`` is not a mapping
        """
        if isinstance(data, SchoolSnapshot):
            return data
        if not isinstance(data, dict):
            raise ValidationError(
                "School snapshot must be an object",
                {"type": type(data).__name__}
            )

        return cls(
            name=str(data.get("name") or default_name),
            environment=str(data.get("environment") or "staging"),
            merge_settings=data.get("mergeSettings"),
            formatters=data.get("formatters"),
            field_exception_maps=as_dict(data.get("fieldExceptionMaps")),
            templates={t: data[t] for t in TEMPLATE_TYPES if t in data},
            attribute_mappings=data.get("attributeMappings"),
            integration_filters=data.get("integrationFilters"),
            integration_settings=data.get("integrationSettings"),
        )


class ComparisonEngine:
    """
    Orchestrates one report-generation pass over two school snapshots.

    1. Entity selection from main formatters and both merge settings
    2. Field exception maps assembled per school and entity
    3. Unified field lists and per-entity field exception comparison
    4. Default method and stepsToExecute comparison
    5. Template question comparison
    6. Attribute mappings, integration filters and integration settings

    Each pass builds its own collaborators; nothing is shared between passes
    except the read-only global exception table.
    """

    VERSION = "1.0.0"

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        table: Optional[GlobalExceptionTable] = None
    ):
        """
        Initialize the engine.

        Args:
            config: Engine configuration (uses defaults if not provided)
            table: Global exception table (uses the built-in table if not provided)
        """
        self.config = config or EngineConfig()
        self.table = table if table is not None else GlobalExceptionTable.default()

    def compare(self, main: Any, baseline: Any) -> ComparisonReport | ErrorResponse:
        """
        Compare a main school against a baseline school.

        Args:
            main: SchoolSnapshot or its mapping form for the school under review
            baseline: SchoolSnapshot or its mapping form for the reference school

        Returns:
            ComparisonReport on success, ErrorResponse on invalid input or failure
        """
        start_time = time.time()

        try:
            main_snapshot = SchoolSnapshot.from_dict(main, default_name="main")
            baseline_snapshot = SchoolSnapshot.from_dict(baseline, default_name="baseline")
            report = self._run(main_snapshot, baseline_snapshot)
            report.execution = ExecutionInfo(
                duration_ms=int((time.time() - start_time) * 1000),
                timestamp=datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
                engine_version=self.VERSION
            )
            return report

        except ValidationError as e:
            return self._create_error_response("VALIDATION_ERROR", e.message, e.details)
        except SchoolDiffError as e:
            return self._create_error_response("ENGINE_ERROR", str(e), {"type": type(e).__name__})
        except Exception as e:
            logger.exception("comparison_failed")
            return self._create_error_response("PROCESSING_ERROR", str(e), {"type": type(e).__name__})

    def _run(self, main: SchoolSnapshot, baseline: SchoolSnapshot) -> ComparisonReport:
        resolver = ExceptionResolver(self.table, self.config.default_conflict_method)
        assembler = FieldExceptionMapAssembler(self.table)
        builder = UnifiedFieldListBuilder()
        comparator = FieldExceptionComparator(resolver)

        selection = EntitySelector(main.name).select(
            main.formatters, main.merge_settings, baseline.merge_settings
        )
        entities = selection.entities
        logger.info(
            "comparison_started",
            main=main.name,
            baseline=baseline.name,
            entities=len(entities),
            selection=selection.method.value
        )

        report = ComparisonReport(
            main_school=main.name,
            baseline_school=baseline.name,
            main_environment=main.environment,
            baseline_environment=baseline.environment,
            execution=ExecutionInfo(duration_ms=0, timestamp="", engine_version=self.VERSION),
            summary=Summary(),
            selection=selection
        )

        both_settings = (
            merge_settings_available(main.merge_settings)
            and merge_settings_available(baseline.merge_settings)
        )
        degraded_maps = 0

        for entity in entities:
            main_response = self._field_map_response(entity, main, assembler)
            baseline_response = self._field_map_response(entity, baseline, assembler)
            degraded_maps += sum(1 for r in (main_response, baseline_response) if r is not None and r.degraded)

            field_list = builder.build(
                entity,
                main_response,
                baseline_response,
                main.merge_settings,
                baseline.merge_settings
            )
            report.field_exceptions[entity] = comparator.compare_entity(
                entity,
                main.merge_settings,
                baseline.merge_settings,
                main_response,
                baseline_response,
                field_list
            )

            if (
                main_response is not None and baseline_response is not None
                and main_response.status is FieldExceptionStatus.SUCCESS
                and baseline_response.status is FieldExceptionStatus.SUCCESS
            ):
                report.enhanced_available = True

            if both_settings:
                report.configured_exceptions[entity] = compare_configured_exceptions(
                    entity_settings(main.merge_settings, entity),
                    entity_settings(baseline.merge_settings, entity)
                )

        if both_settings:
            report.default_methods = compare_default_methods(
                entities, main.merge_settings, baseline.merge_settings
            )
            report.steps_to_execute = compare_steps_to_execute(
                entities,
                main.merge_settings,
                baseline.merge_settings,
                self.config.max_depth,
                self.config.include_match_rows
            )
        else:
            logger.warning(
                "merge_settings_unavailable",
                main_ok=merge_settings_available(main.merge_settings),
                baseline_ok=merge_settings_available(baseline.merge_settings)
            )

        question_comparator = QuestionConfigComparator()
        for template_type in TEMPLATE_TYPES:
            section = self._compare_template(template_type, main, baseline, question_comparator)
            if section is not None:
                report.templates[template_type] = section

        integrations = IntegrationComparator(
            AliasTable(self.config.entity_aliases),
            self.config.max_depth,
            self.config.include_match_rows
        )
        if main.attribute_mappings is not None or baseline.attribute_mappings is not None:
            report.attribute_mappings = integrations.compare_attribute_mappings(
                main.attribute_mappings, baseline.attribute_mappings
            )
        if main.integration_filters is not None or baseline.integration_filters is not None:
            report.integration_filters = integrations.compare_integration_filters(
                main.integration_filters, baseline.integration_filters
            )
        report.integration_settings = integrations.compare_integration_settings(
            main.integration_settings, baseline.integration_settings
        )

        report.summary = self._summarize(report, degraded_maps)
        return report

    def _field_map_response(
        self,
        entity: str,
        snapshot: SchoolSnapshot,
        assembler: FieldExceptionMapAssembler
    ) -> Optional[FieldExceptionMapResponse]:
        if not merge_settings_available(snapshot.merge_settings):
            return None
        return build_field_exception_response(
            entity,
            snapshot.field_exception_maps.get(entity),
            entity_settings(snapshot.merge_settings, entity),
            assembler
        )

    def _compare_template(
        self,
        template_type: str,
        main: SchoolSnapshot,
        baseline: SchoolSnapshot,
        comparator: QuestionConfigComparator
    ) -> Optional[TemplateComparison | SectionError]:
        main_payload = main.templates.get(template_type)
        baseline_payload = baseline.templates.get(template_type)
        if main_payload is None and baseline_payload is None:
            return None

        for payload in (main_payload, baseline_payload):
            if payload is None or is_error_payload(payload):
                logger.warning("template_unavailable", template=template_type)
                return SectionError(
                    section=template_type,
                    message=f"{template_type} data not available"
                )

        return comparator.compare_template(
            template_type,
            extract_questions(main_payload, template_type, self.config.max_depth),
            extract_questions(baseline_payload, template_type, self.config.max_depth)
        )

    @staticmethod
    def _summarize(report: ComparisonReport, degraded_maps: int) -> Summary:
        summary = Summary(
            entities_compared=len(report.selection.entities),
            degraded_maps=degraded_maps
        )
        for comparison in report.field_exceptions.values():
            if comparison.status in (EntityComparisonStatus.OK, EntityComparisonStatus.PARTIAL):
                summary.field_exception_mismatches += len(comparison.mismatches)
        summary.default_method_mismatches = len(
            [r for r in report.default_methods if r.status is not DiffStatus.MATCH]
        )
        summary.steps_to_execute_mismatches = sum(
            len([r for r in rows if r.status is not DiffStatus.MATCH])
            for rows in report.steps_to_execute.values()
        )
        summary.template_differences = sum(
            section.difference_count
            for section in report.templates.values()
            if isinstance(section, TemplateComparison)
        )
        if isinstance(report.attribute_mappings, IntegrationComparison):
            summary.attribute_mapping_differences = report.attribute_mappings.difference_count
        if isinstance(report.integration_filters, IntegrationComparison):
            summary.integration_filter_differences = report.integration_filters.difference_count
        return summary

    def _create_error_response(self, code: str, message: str, details: dict) -> ErrorResponse:
        """Create an error response."""
        logger.error("comparison_error", code=code, message=message)
        return ErrorResponse(
            success=False,
            error={
                "code": code,
                "message": message,
                "details": details
            }
        )


def compare(main: Any, baseline: Any, config: Optional[EngineConfig] = None) -> ComparisonReport | ErrorResponse:
    """
    Convenience function to compare two school snapshots.

    Args:
        main: Main school snapshot
        baseline: Baseline school snapshot
        config: Optional engine configuration

    Returns:
        ComparisonReport on success, ErrorResponse on errors
    """
    engine = ComparisonEngine(config)
    return engine.compare(main, baseline)
