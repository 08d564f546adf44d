"""Template question extraction and comparison."""

from __future__ import annotations

from typing import Any, Optional

import structlog

from .accessors import as_dict, get_path
from .models import (
    DiffStatus,
    FieldExistenceRow,
    QuestionDiffRow,
    TemplateComparison,
)
from .utils import deep_equal, display_value, js_truthy

logger = structlog.get_logger(__name__)


TEMPLATE_TYPES = ("courseTemplate", "programTemplate", "sectionTemplate")

# Tracked property -> human label; no other question attribute is compared
TRACKED_PROPERTIES = (
    ("required", "Required"),
    ("dynamicOptions", "Dynamic Options"),
    ("config_default", "Config Default"),
    ("config_useCourseOptions", "Config Use Course Options"),
    ("actions", "Actions"),
)


def _or(value: Any, default: Any) -> Any:
    return value if js_truthy(value) else default


def extract_tracked_properties(question: Any) -> dict[str, Any]:
    """
    Pull the tracked properties out of one question.

    Unset values take fixed defaults; an empty list or mapping counts as set.
    """
    question = as_dict(question)
    config = as_dict(question.get("config"))
    return {
        "required": _or(question.get("required"), False),
        "dynamicOptions": _or(config.get("dynamicOptions"), {}),
        "config_default": _or(config.get("default"), None),
        "config_useCourseOptions": _or(config.get("useCourseOptions"), None),
        "actions": _or(question.get("actions"), []),
    }


def nested_fields(question: Any) -> dict[str, dict]:
    """Sub-field definitions under ``config.fields``."""
    fields = get_path(question, "config.fields")
    if not isinstance(fields, dict):
        return {}
    return {str(k): as_dict(v) for k, v in fields.items()}


def _question_map(questions: Any) -> dict[str, dict]:
    if isinstance(questions, dict):
        return {str(k): as_dict(v) for k, v in questions.items()}
    if isinstance(questions, list):
        result = {}
        for question in questions:
            if isinstance(question, dict) and question.get("id") is not None:
                result[str(question["id"])] = question
        return result
    return {}


def flatten_program_template(template: Any, max_depth: int = 100) -> dict[str, dict]:
    """
    Collect question leaves from a program template's ``children`` tree.

    Top-level items are containers; only their descendants are inspected.
    Each question becomes ``{id, type, config}``. Branches deeper than
    ``max_depth`` are skipped with a warning.
    """
    questions: dict[str, dict] = {}
    if not isinstance(template, list):
        return questions

    stack = [(item.get("children"), 1) for item in reversed(template) if isinstance(item, dict)]
    while stack:
        children, depth = stack.pop()
        if not isinstance(children, list):
            continue
        if depth > max_depth:
            logger.warning("program_template_truncated", max_depth=max_depth)
            continue
        pending = []
        for child in children:
            if not isinstance(child, dict):
                continue
            if child.get("type") == "question" and child.get("id"):
                questions[str(child["id"])] = {
                    "id": child["id"],
                    "type": child["type"],
                    "config": as_dict(child.get("config")),
                }
            if child.get("children"):
                pending.append((child["children"], depth + 1))
        stack.extend(reversed(pending))

    return questions


def extract_questions(payload: Any, template_type: str, max_depth: int = 100) -> dict[str, dict]:
    """
    Question map of a fetched template payload.

    Args:
        payload: Fetch result, either ``{<template_type>: {...}}`` or the inner template
        template_type: One of courseTemplate, programTemplate, sectionTemplate
        max_depth: Bound for walking program template trees

    Returns:
        Mapping of question id to question; empty for unknown types or shapes
    """
    if template_type not in TEMPLATE_TYPES:
        return {}

    template = get_path(payload, template_type)
    if template is None:
        template = payload

    if template_type == "programTemplate":
        tree = get_path(template, "template")
        if isinstance(tree, list):
            return flatten_program_template(tree, max_depth)
        return _question_map(get_path(template, "questions"))

    return _question_map(get_path(template, "questions"))


def should_render_row(row: QuestionDiffRow) -> bool:
    """
    Whether a property row belongs in the differences table.

    Hides matching rows, rows whose question is missing on one side (the
    existence table reports those) and empty lists on both sides. A
    sub-field missing on one side stays visible while its parent question
    exists in both templates.
    """
    if row.nested_field_id is not None:
        if not row.parent_in_both:
            return False
    elif not row.exists_in_both:
        return False
    if row.is_match:
        return False
    if display_value(row.left_value) == "[]" and display_value(row.right_value) == "[]":
        return False
    return True


class QuestionConfigComparator:
    """
    Compares the tracked properties of two templates' questions.

    Every question id in either template yields one row per tracked
    property, so the table shape does not depend on which side lacks a
    question. Sub-fields under ``config.fields`` are compared one level
    deep in the same way.
    """

    def compare(self, main_questions: Any, baseline_questions: Any) -> list[QuestionDiffRow]:
        """Property rows for questions followed by rows for their sub-fields."""
        main = _question_map(main_questions)
        baseline = _question_map(baseline_questions)
        return self.compare_questions(main, baseline) + self.compare_nested(main, baseline)

    def compare_questions(self, main: dict[str, dict], baseline: dict[str, dict]) -> list[QuestionDiffRow]:
        rows = []
        for question_id in sorted(set(main) | set(baseline)):
            rows.extend(self._property_rows(
                question_id,
                main.get(question_id),
                baseline.get(question_id),
                label=self._label(main.get(question_id), baseline.get(question_id))
            ))
        return rows

    def compare_nested(self, main: dict[str, dict], baseline: dict[str, dict]) -> list[QuestionDiffRow]:
        rows = []
        for question_id in sorted(set(main) | set(baseline)):
            main_fields = nested_fields(main.get(question_id))
            baseline_fields = nested_fields(baseline.get(question_id))
            parent_label = self._label(main.get(question_id), baseline.get(question_id))
            parent_in_both = question_id in main and question_id in baseline
            for field_id in sorted(set(main_fields) | set(baseline_fields)):
                rows.extend(self._property_rows(
                    question_id,
                    main_fields.get(field_id),
                    baseline_fields.get(field_id),
                    label=parent_label,
                    nested_field_id=field_id,
                    nested_label=self._label(main_fields.get(field_id), baseline_fields.get(field_id)),
                    parent_in_both=parent_in_both
                ))
        return rows

    def existence_table(self, main_questions: Any, baseline_questions: Any) -> list[FieldExistenceRow]:
        """One row per question id; ids missing somewhere come first."""
        main = _question_map(main_questions)
        baseline = _question_map(baseline_questions)
        rows = [
            FieldExistenceRow(question_id=qid, in_main=qid in main, in_baseline=qid in baseline)
            for qid in set(main) | set(baseline)
        ]
        return sorted(rows, key=lambda r: (r.found_in_both, r.question_id))

    def compare_template(
        self,
        template_type: str,
        main_questions: Any,
        baseline_questions: Any
    ) -> TemplateComparison:
        main = _question_map(main_questions)
        baseline = _question_map(baseline_questions)
        rows = self.compare_questions(main, baseline)
        nested = self.compare_nested(main, baseline)
        return TemplateComparison(
            template_type=template_type,
            rows=rows,
            nested_rows=nested,
            existence=self.existence_table(main, baseline),
            visible_rows=[r for r in rows if should_render_row(r)],
            visible_nested_rows=[r for r in nested if should_render_row(r)]
        )

    @staticmethod
    def _label(main_question: Optional[dict], baseline_question: Optional[dict]) -> str:
        for question in (main_question, baseline_question):
            label = as_dict(question).get("label")
            if label:
                return str(label)
        return ""

    @staticmethod
    def _property_rows(
        question_id: str,
        main_question: Optional[dict],
        baseline_question: Optional[dict],
        label: str,
        nested_field_id: Optional[str] = None,
        nested_label: str = "",
        parent_in_both: Optional[bool] = None
    ) -> list[QuestionDiffRow]:
        left_present = main_question is not None
        right_present = baseline_question is not None
        left = extract_tracked_properties(main_question) if left_present else {}
        right = extract_tracked_properties(baseline_question) if right_present else {}

        rows = []
        for prop, _ in TRACKED_PROPERTIES:
            left_value = left.get(prop)
            right_value = right.get(prop)
            if left_present and right_present:
                status = DiffStatus.MATCH if deep_equal(left_value, right_value) else DiffStatus.DIFFERENT
            elif left_present:
                status = DiffStatus.ONLY_LEFT
            else:
                status = DiffStatus.ONLY_RIGHT
            rows.append(QuestionDiffRow(
                question_id=question_id,
                property=prop,
                label=label,
                left_value=left_value,
                right_value=right_value,
                left_present=left_present,
                right_present=right_present,
                status=status,
                nested_field_id=nested_field_id,
                nested_label=nested_label,
                parent_in_both=parent_in_both
            ))
        return rows
