"""
SchoolDiff - Configuration diffing and field exception resolution

Compares the integration configuration of two schools (merge settings,
field exceptions, templates, attribute mappings, integration filters) and
produces deterministic row-level differences and Markdown/JSON reports.
"""

from .engine import ComparisonEngine, SchoolSnapshot, compare
from .models import (
    EngineConfig,
    ComparisonReport,
    ErrorResponse,
    DiffRow,
    DiffStatus,
    ExceptionResolution,
    Layer,
    QuestionDiffRow,
    FieldExceptionStatus,
    EntityComparisonStatus,
    SelectionMethod,
)
from .exceptions import (
    SchoolDiffError,
    ValidationError,
    ConfigError,
    SnapshotLoadError,
)
from .global_exceptions import GlobalExceptionTable
from .resolver import ExceptionResolver
from .selector import EntitySelector, select_target_entities
from .field_list import UnifiedFieldListBuilder
from .assembler import FieldExceptionMapAssembler, build_field_exception_response
from .differ import StructuralDiffer, diff
from .questions import QuestionConfigComparator, extract_questions
from .renderer import MarkdownRenderer
from .runner import ReportRunner, run_report

__version__ = "1.0.0"
__all__ = [
    # Engine
    "ComparisonEngine",
    "SchoolSnapshot",
    "EngineConfig",
    "compare",
    # Reports
    "ComparisonReport",
    "ErrorResponse",
    "DiffRow",
    "DiffStatus",
    "QuestionDiffRow",
    "FieldExceptionStatus",
    "EntityComparisonStatus",
    "SelectionMethod",
    # Resolution
    "GlobalExceptionTable",
    "ExceptionResolver",
    "ExceptionResolution",
    "Layer",
    # Components
    "EntitySelector",
    "select_target_entities",
    "UnifiedFieldListBuilder",
    "FieldExceptionMapAssembler",
    "build_field_exception_response",
    "StructuralDiffer",
    "diff",
    "QuestionConfigComparator",
    "extract_questions",
    # Output
    "MarkdownRenderer",
    "ReportRunner",
    "run_report",
    # Errors
    "SchoolDiffError",
    "ValidationError",
    "ConfigError",
    "SnapshotLoadError",
]
