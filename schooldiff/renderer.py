"""Markdown rendering of comparison reports."""

from __future__ import annotations

from typing import Any, Optional

from .models import (
    NOT_IN_BASELINE,
    NOT_IN_MAIN,
    ComparisonReport,
    DiffRow,
    DiffStatus,
    EntityComparisonStatus,
    FieldExceptionCell,
    FieldExceptionStatus,
    IntegrationComparison,
    QuestionDiffRow,
    SchoolEntityStatus,
    SectionError,
    SelectionMethod,
    TemplateComparison,
)
from .questions import TRACKED_PROPERTIES
from .utils import display_value, truncate, value_to_string


STATUS_LABELS = {
    DiffStatus.MATCH: "Match",
    DiffStatus.DIFFERENT: "Different",
    DiffStatus.ONLY_LEFT: "Only in main",
    DiffStatus.ONLY_RIGHT: "Only in baseline",
}

SECTION_TITLES = {
    "fieldExceptions": "Field Exceptions",
    "stepsToExecute": "Steps To Execute",
    "courseTemplate": "Course Template",
    "programTemplate": "Program Template",
    "sectionTemplate": "Section Template",
    "attributeMappings": "Attribute Mappings",
    "integrationFilters": "Integration Filters",
    "integrationSettings": "Integration Settings",
}

NO_DIFFERENCES = "No differences detected\n"


def _escape(text: str) -> str:
    return text.replace("|", "\\|").replace("\n", " ")


class MarkdownRenderer:
    """
    Renders a ComparisonReport as one Markdown document per section.

    Only differences are tabulated; matching rows are counted, not listed.
    """

    def __init__(self, value_truncate_length: int = 50):
        self.value_truncate_length = value_truncate_length

    def render(self, report: ComparisonReport) -> dict[str, str]:
        """
        Args:
            report: Result of ComparisonEngine.compare

        Returns:
            Mapping of section name to Markdown text
        """
        documents = {
            "fieldExceptions": self.render_field_exceptions(report),
            "stepsToExecute": self.render_steps_to_execute(report),
        }
        for template_type, section in report.templates.items():
            documents[template_type] = self.render_template(report, template_type, section)
        if report.attribute_mappings is not None:
            documents["attributeMappings"] = self.render_integration(report, report.attribute_mappings)
        if report.integration_filters is not None:
            documents["integrationFilters"] = self.render_integration(report, report.integration_filters)
        if report.integration_settings is not None:
            documents["integrationSettings"] = self.render_integration_settings(report)
        return documents

    # ------------------------------------------------------------------
    # Shared pieces
    # ------------------------------------------------------------------

    def _value(self, value: Any) -> str:
        return _escape(truncate(value_to_string(value), self.value_truncate_length))

    def _plain(self, value: Any) -> str:
        return _escape(truncate(display_value(value), self.value_truncate_length))

    @staticmethod
    def _school_header(name: str, environment: str) -> str:
        return f"{name} ({environment})"

    def _header(self, report: ComparisonReport, section: str) -> list[str]:
        return [
            f"# {SECTION_TITLES.get(section, section)} Comparison Report",
            "",
            f"**Main School:** {self._school_header(report.main_school, report.main_environment)}",
            f"**Baseline School:** {self._school_header(report.baseline_school, report.baseline_environment)}",
            f"**Generated:** {report.execution.timestamp}",
            "",
        ]

    def _columns(self, report: ComparisonReport, first: str) -> list[str]:
        main = self._school_header(report.main_school, report.main_environment)
        baseline = self._school_header(report.baseline_school, report.baseline_environment)
        return [
            f"| {first} | {main} | {baseline} | Status |",
            "|---|---|---|---|",
        ]

    def _diff_table(self, report: ComparisonReport, rows: list[DiffRow], first: str = "Path") -> list[str]:
        differences = [r for r in rows if r.status is not DiffStatus.MATCH]
        if not differences:
            return [NO_DIFFERENCES]
        lines = self._columns(report, first)
        for row in differences:
            left = "N/A" if row.status is DiffStatus.ONLY_RIGHT and row.left_value is None else self._value(row.left_value)
            right = "N/A" if row.status is DiffStatus.ONLY_LEFT and row.right_value is None else self._value(row.right_value)
            status = STATUS_LABELS[row.status] + (" (truncated)" if row.truncated else "")
            lines.append(f"| `{_escape(row.path)}` | {left} | {right} | {status} |")
        lines.append("")
        return lines

    @staticmethod
    def _section_error(error: SectionError) -> list[str]:
        return [f"**Error:** {error.message}", ""]

    # ------------------------------------------------------------------
    # Field exceptions
    # ------------------------------------------------------------------

    def render_field_exceptions(self, report: ComparisonReport) -> str:
        lines = self._header(report, "fieldExceptions")
        selection = report.selection
        if selection.method is SelectionMethod.FORMATTERS:
            lines.append("**Entity Selection Method:** main school formatters (formatters=true)")
        else:
            lines.append("**Entity Selection Method:** merge settings (enabled=true)")
        if selection.invalid_formatter_entities:
            lines.append(
                "**Formatter entities missing from merge settings:** "
                + ", ".join(selection.invalid_formatter_entities)
            )
        lines.append(f"**Target Entities ({len(selection.entities)}):** {', '.join(selection.entities)}")
        lines.append("")

        if not selection.entities:
            lines.append("*No target entities found for comparison*")
            return "\n".join(lines) + "\n"

        lines.extend(self._default_methods(report))

        if not report.enhanced_available:
            lines.append("**Enhanced data not available** - field exception maps were not fetched for both schools.")
            lines.append("Falling back to basic comparison (explicit exceptions only).")
            lines.append("")
            lines.extend(self._configured_only(report))
            return "\n".join(lines) + "\n"

        for entity, comparison in report.field_exceptions.items():
            lines.append(f"## {entity}")
            lines.append("")
            lines.append(self._school_status("Main School", report.main_school, comparison.main))
            lines.append(self._school_status("Baseline School", report.baseline_school, comparison.baseline))
            lines.append("")

            if comparison.status is EntityComparisonStatus.CANNOT_COMPARE:
                lines.append(f"**Cannot compare:** {comparison.reason}.")
                lines.append("")
                continue
            if comparison.status is EntityComparisonStatus.NO_DATA:
                lines.append(f"*{comparison.reason}*")
                lines.append("")
                continue
            if comparison.status is EntityComparisonStatus.PARTIAL:
                lines.append(
                    '**Note:** fields showing "No entityFieldExceptions record found" come from a '
                    "failed or empty entityFieldExceptions response."
                )
                lines.append("")

            mismatches = comparison.mismatches
            if not mismatches:
                lines.append(f"**All {comparison.total_fields} fields match** - No differences detected")
                lines.append("")
                continue

            if comparison.defaults_differ_everywhere:
                lines.append(
                    f"**All {comparison.total_fields} fields differ due to different default "
                    "conflict handling methods**"
                )
                lines.append(f"- **Main School default:** `{comparison.main.default_method or 'N/A'}`")
                lines.append(f"- **Baseline School default:** `{comparison.baseline.default_method or 'N/A'}`")
                lines.append("")
                continue

            lines.extend(self._columns(report, "Field Path"))
            for row in mismatches:
                lines.append(
                    f"| `{_escape(row.path)}` | {self._exception_cell(row.main)} | "
                    f"{self._exception_cell(row.baseline)} | {STATUS_LABELS[row.status]} |"
                )
            lines.append("")
            lines.append(f"**Total Fields:** {comparison.total_fields} - **Mismatches:** {len(mismatches)}")
            lines.append("")

        return "\n".join(lines) + "\n"

    @staticmethod
    def _exception_cell(cell: FieldExceptionCell) -> str:
        if cell.resolution is not None:
            return f"`{cell.resolution.value}` ({cell.resolution.source.value})"
        if cell.note == "not configured":
            return "_(not configured)_"
        return cell.note or ""

    @staticmethod
    def _school_status(title: str, name: str, status: SchoolEntityStatus) -> str:
        if not status.merge_settings_ok:
            return f"**{title} ({name}):** mergeSettings: Failed - entityFieldExceptions: Not attempted"
        response = {
            FieldExceptionStatus.SUCCESS: "Success",
            FieldExceptionStatus.EMPTY: "Empty (no sample data)",
            FieldExceptionStatus.API_FAILED: "Failed",
        }.get(status.response_status, "Not fetched")
        return (
            f"**{title} ({name}):** mergeSettings: Success - entityFieldExceptions: {response} "
            f"- Default: `{status.default_method or 'N/A'}`"
        )

    def _default_methods(self, report: ComparisonReport) -> list[str]:
        lines = ["## Default `conflictHandlingMethod` Comparison", ""]
        lines.extend(self._diff_table(report, report.default_methods, first="Entity Type"))
        return lines

    def _configured_only(self, report: ComparisonReport) -> list[str]:
        lines = ["## `fieldExceptions` Comparison (by entity)", ""]
        for entity, rows in report.configured_exceptions.items():
            lines.append(f"### {entity}")
            lines.append("")
            differences = [r for r in rows if r.status is not DiffStatus.MATCH]
            if not differences:
                lines.append(NO_DIFFERENCES)
                continue
            lines.extend(self._columns(report, "Field (Path)"))
            for row in differences:
                lines.append(
                    f"| {_escape(row.label)} (`{_escape(row.path)}`) | "
                    f"`{row.main_method or '*Not Found*'}` | `{row.baseline_method or '*Not Found*'}` | "
                    f"{STATUS_LABELS[row.status]} |"
                )
            lines.append("")
        return lines

    # ------------------------------------------------------------------
    # Steps to execute
    # ------------------------------------------------------------------

    def render_steps_to_execute(self, report: ComparisonReport) -> str:
        lines = self._header(report, "stepsToExecute")
        if not report.steps_to_execute:
            lines.append("*No stepsToExecute data available*")
            return "\n".join(lines) + "\n"

        with_diff = []
        without_diff = []
        for entity, rows in report.steps_to_execute.items():
            section = [f"### {entity}", ""]
            if any(r.status is not DiffStatus.MATCH for r in rows):
                section.extend(self._diff_table(report, rows, first="Step"))
                with_diff.extend(section)
            else:
                section.append("*No differences identified.*")
                section.append("")
                without_diff.extend(section)

        if not with_diff:
            lines.append("*No differences identified across all Steps To Execute sections.*")
            lines.append("")
        lines.extend(with_diff)
        lines.extend(without_diff)
        return "\n".join(lines) + "\n"

    # ------------------------------------------------------------------
    # Templates
    # ------------------------------------------------------------------

    def render_template(
        self,
        report: ComparisonReport,
        template_type: str,
        section: TemplateComparison | SectionError
    ) -> str:
        lines = self._header(report, template_type)
        if isinstance(section, SectionError):
            lines.extend(self._section_error(section))
            return "\n".join(lines) + "\n"

        lines.append("## Field Existence")
        lines.append("")
        missing = [r for r in section.existence if not r.found_in_both]
        if not missing:
            lines.append(f"All {len(section.existence)} fields exist in both templates.")
            lines.append("")
        else:
            lines.append("| Field | In Main | In Baseline |")
            lines.append("|---|---|---|")
            for row in missing:
                lines.append(
                    f"| {_escape(row.question_id)} | {'Yes' if row.in_main else 'No'} | "
                    f"{'Yes' if row.in_baseline else 'No'} |"
                )
            lines.append("")

        lines.extend(self._property_tables(report, section.visible_rows))
        if section.visible_nested_rows:
            lines.append("## Nested Field Differences")
            lines.append("")
            lines.extend(self._question_table(report, section.visible_nested_rows, nested=True))
        return "\n".join(lines) + "\n"

    def _property_tables(self, report: ComparisonReport, rows: list[QuestionDiffRow]) -> list[str]:
        lines = []
        for prop, label in TRACKED_PROPERTIES:
            lines.append(f"### {label} Differences")
            lines.append("")
            selected = [r for r in rows if r.property == prop]
            if not selected:
                lines.append(NO_DIFFERENCES)
                continue
            lines.extend(self._question_table(report, selected))
        return lines

    def _question_table(self, report: ComparisonReport, rows: list[QuestionDiffRow], nested: bool = False) -> list[str]:
        main = self._school_header(report.main_school, report.main_environment)
        baseline = self._school_header(report.baseline_school, report.baseline_environment)
        if nested:
            lines = [
                f"| Field | Nested Field | Property | {main} | {baseline} | Status |",
                "|---|---|---|---|---|---|",
            ]
        else:
            lines = [
                f"| Field | Field Label | {main} | {baseline} | Status |",
                "|---|---|---|---|---|",
            ]
        for row in sorted(rows, key=lambda r: (r.label, r.question_id, r.nested_field_id or "", r.property)):
            left = self._plain(row.left_value) if row.left_present else NOT_IN_MAIN
            right = self._plain(row.right_value) if row.right_present else NOT_IN_BASELINE
            status = STATUS_LABELS[row.status]
            if nested:
                lines.append(
                    f"| {_escape(row.question_id)} | {_escape(row.nested_field_id or '')} | "
                    f"{row.property} | {left} | {right} | {status} |"
                )
            else:
                lines.append(f"| {_escape(row.question_id)} | {_escape(row.label)} | {left} | {right} | {status} |")
        lines.append("")
        return lines

    # ------------------------------------------------------------------
    # Integrations
    # ------------------------------------------------------------------

    def render_integration(self, report: ComparisonReport, section: IntegrationComparison | SectionError) -> str:
        name = section.section
        lines = self._header(report, name)
        if isinstance(section, SectionError):
            lines.extend(self._section_error(section))
            return "\n".join(lines) + "\n"

        if section.errors:
            lines.append("## API Errors Detected")
            lines.append("")
            for side, error in sorted(section.errors.items()):
                lines.append(f"**{side} error:** `{_escape(error)}`")
            lines.append("")
            lines.append("**Status:** Cannot perform comparison due to API errors")
            return "\n".join(lines) + "\n"

        if not section.presence and not section.diff_rows:
            lines.append(
                f"*Nothing to compare (main: {section.main_kind.value}, "
                f"baseline: {section.baseline_kind.value})*"
            )
            return "\n".join(lines) + "\n"

        current_group: Optional[str] = None
        for row in section.presence:
            if row.group != current_group:
                if current_group is not None:
                    lines.append("")
                current_group = row.group
                lines.append(f"## {row.group}")
                lines.append("")
                lines.extend(self._presence_columns(report, with_label=row.label is not None))
            mark_main = "configured" if row.in_main else "-"
            mark_baseline = "configured" if row.in_baseline else "-"
            if row.label is not None:
                lines.append(f"| {_escape(row.label)} | {_escape(row.key)} | {mark_main} | {mark_baseline} |")
            else:
                lines.append(f"| {_escape(row.key)} | {mark_main} | {mark_baseline} |")
        lines.append("")

        lines.append("## Detailed Differences")
        lines.append("")
        lines.extend(self._diff_table(report, section.diff_rows))
        return "\n".join(lines) + "\n"

    def _presence_columns(self, report: ComparisonReport, with_label: bool) -> list[str]:
        main = self._school_header(report.main_school, report.main_environment)
        baseline = self._school_header(report.baseline_school, report.baseline_environment)
        if with_label:
            return [f"| Label | Path | {main} | {baseline} |", "|---|---|---|---|"]
        return [f"| fieldName | {main} | {baseline} |", "|---|---|---|"]

    def render_integration_settings(self, report: ComparisonReport) -> str:
        lines = self._header(report, "integrationSettings")
        lines.extend(self._diff_table(report, report.integration_settings or []))
        return "\n".join(lines) + "\n"
