"""Data models for SchoolDiff engine."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Iterator, Optional

from .exceptions import ConfigError
from .utils import serialize_path


DEFAULT_CONFLICT_METHOD = "resolveAsCoursedog"

# Sentinels rendered in place of a value that is not there
NOT_IN_MAIN = "Field not in main"
NOT_IN_BASELINE = "Field not in baseline"
NO_RECORD_NOTE = "No entityFieldExceptions record found"
NOT_CONFIGURED_NOTE = "not configured"


class LogLevel(Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


class Layer(Enum):
    GLOBAL = "global"
    CONFIGURED = "configured"
    DEFAULT = "default"


class DiffStatus(Enum):
    MATCH = "match"
    ONLY_LEFT = "onlyLeft"
    ONLY_RIGHT = "onlyRight"
    DIFFERENT = "different"

    def swapped(self) -> "DiffStatus":
        if self is DiffStatus.ONLY_LEFT:
            return DiffStatus.ONLY_RIGHT
        if self is DiffStatus.ONLY_RIGHT:
            return DiffStatus.ONLY_LEFT
        return self


class FieldExceptionStatus(Enum):
    SUCCESS = "success"
    EMPTY = "empty-response"
    API_FAILED = "api-failed"


class EntityComparisonStatus(Enum):
    OK = "ok"
    PARTIAL = "partial"
    NO_DATA = "no_data"
    CANNOT_COMPARE = "cannot_compare"


class SelectionMethod(Enum):
    FORMATTERS = "formatters"
    MERGE_SETTINGS = "merge_settings"
    NONE = "none"


class PayloadKind(Enum):
    INVALID = "invalid"
    API_ERROR = "api_error"
    EMPTY = "empty"
    STRUCTURED = "structured"
    UNKNOWN = "unknown"


@dataclass
class EngineConfig:
    """Global configuration for the comparison engine."""
    max_depth: int = 100
    default_conflict_method: str = DEFAULT_CONFLICT_METHOD
    include_match_rows: bool = True
    entity_aliases: dict[str, str] = field(default_factory=dict)
    value_truncate_length: int = 50
    log_level: LogLevel = LogLevel.INFO
    log_json: bool = False

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "EngineConfig":
        """
        Build a config from a plain mapping such as a loaded YAML file.

        Raises:
            ConfigError: On unknown keys or values of the wrong type
        """

        if data is None:
            return cls()
        if not isinstance(data, dict):
            raise ConfigError(f"Config must be a mapping, got {type(data).__name__}")

        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigError(f"Unknown config keys: {', '.join(unknown)}", key=unknown[0])

        values = dict(data)
        for key in ("max_depth", "value_truncate_length"):
            if key in values and (isinstance(values[key], bool) or not isinstance(values[key], int)):
                raise ConfigError(f"{key} must be an integer", key=key)
        if "max_depth" in values and values["max_depth"] < 1:
            raise ConfigError("max_depth must be at least 1", key="max_depth")
        for key in ("include_match_rows", "log_json"):
            if key in values and not isinstance(values[key], bool):
                raise ConfigError(f"{key} must be a boolean", key=key)
        if "default_conflict_method" in values:
            method = values["default_conflict_method"]
            if not isinstance(method, str) or not method:
                raise ConfigError("default_conflict_method must be a non-empty string",
                                  key="default_conflict_method")
        if "entity_aliases" in values:
            aliases = values["entity_aliases"] or {}
            if not isinstance(aliases, dict):
                raise ConfigError("entity_aliases must be a mapping", key="entity_aliases")
            values["entity_aliases"] = {str(k): str(v) for k, v in aliases.items()}
        if "log_level" in values:
            try:
                values["log_level"] = LogLevel(str(values["log_level"]).upper())
            except ValueError:
                raise ConfigError(f"Invalid log_level: {values['log_level']}", key="log_level")

        return cls(**values)


# ---------------------------------------------------------------------------
# Exception resolution
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ExceptionResolution:
    """Effective conflict-handling method for one field and the layer it came from."""
    value: str
    source: Layer

    def to_dict(self) -> dict:
        return {"value": self.value, "source": self.source.value}


@dataclass(frozen=True)
class ConfiguredField:
    path: str
    label: Optional[str] = None


@dataclass(frozen=True)
class ConfiguredExceptionGroup:
    """A user-configured group of fields sharing one conflict-handling method."""
    conflict_handling_method: str
    fields: tuple[ConfiguredField, ...] = ()

    @classmethod
    def from_dict(cls, data: Any) -> Optional["ConfiguredExceptionGroup"]:
        """
        Build a group from a raw ``fieldExceptions`` entry.

        Fields with a missing or empty ``path`` are dropped. Returns None when
        the entry is not a mapping or has no usable field left.
        """

        if not isinstance(data, dict):
            return None

        raw_fields = data.get("fields")
        if not isinstance(raw_fields, list):
            return None

        fields = []
        for raw_field in raw_fields:
            if not isinstance(raw_field, dict):
                continue
            path = serialize_path(raw_field.get("path"))
            if path is None:
                continue
            label = raw_field.get("label")
            fields.append(ConfiguredField(
                path=path,
                label=label if isinstance(label, str) else None
            ))

        if not fields:
            return None

        method = data.get("conflictHandlingMethod")
        return cls(
            conflict_handling_method=method if isinstance(method, str) else "",
            fields=tuple(fields)
        )


@dataclass
class SchoolEntityConfig:
    """One school's merge settings for one entity, reduced to what resolution needs."""
    default_method: Optional[str] = None
    groups: list[ConfiguredExceptionGroup] = field(default_factory=list)

    @classmethod
    def from_settings(cls, settings: Any) -> "SchoolEntityConfig":
        """Parse an entity-level merge settings object; anything malformed yields an empty config."""
        if isinstance(settings, SchoolEntityConfig):
            return settings
        if not isinstance(settings, dict):
            return cls()

        method = settings.get("conflictHandlingMethod")
        groups = []
        raw_groups = settings.get("fieldExceptions")
        if isinstance(raw_groups, list):
            for raw_group in raw_groups:
                group = ConfiguredExceptionGroup.from_dict(raw_group)
                if group is not None:
                    groups.append(group)

        return cls(
            default_method=method if isinstance(method, str) and method else None,
            groups=groups
        )

    def iter_fields(self) -> Iterator[tuple[str, str, Optional[str]]]:
        """Yield ``(path, method, label)`` for every configured field in declaration order."""
        for group in self.groups:
            for configured in group.fields:
                yield configured.path, group.conflict_handling_method, configured.label

    def configured_paths(self) -> list[str]:
        return [path for path, _, _ in self.iter_fields()]


# ---------------------------------------------------------------------------
# Field exception maps
# ---------------------------------------------------------------------------

@dataclass
class AssembledFieldMap:
    """Effective field exception map for one school/entity pair."""
    map: dict[str, str]
    degraded: bool
    duplicates: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "map": dict(self.map),
            "degraded": self.degraded,
            "duplicates": list(self.duplicates),
        }


@dataclass
class FieldExceptionMapResponse:
    """Classified entityFieldExceptions response with its assembled map."""
    entity_type: str
    status: FieldExceptionStatus
    data: dict[str, str]
    api_available: bool
    is_empty: bool
    degraded: bool
    error: Optional[str] = None
    duplicates: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        result = {
            "entityType": self.entity_type,
            "status": self.status.value,
            "data": dict(self.data),
            "apiAvailable": self.api_available,
            "isEmpty": self.is_empty,
            "degraded": self.degraded,
        }
        if self.error:
            result["error"] = self.error
        if self.duplicates:
            result["duplicates"] = list(self.duplicates)
        return result


# ---------------------------------------------------------------------------
# Entity selection
# ---------------------------------------------------------------------------

@dataclass
class FormatterValidation:
    """Outcome of checking the main school's formatter payload."""
    is_valid: bool = False
    has_data: bool = False
    error_message: Optional[str] = None
    enabled_count: int = 0

    def to_dict(self) -> dict:
        return {
            "is_valid": self.is_valid,
            "has_data": self.has_data,
            "error_message": self.error_message,
            "enabled_count": self.enabled_count,
        }


@dataclass
class EntitySelection:
    entities: list[str]
    method: SelectionMethod
    formatter_validation: FormatterValidation
    invalid_formatter_entities: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "entities": list(self.entities),
            "method": self.method.value,
            "formatter_validation": self.formatter_validation.to_dict(),
            "invalid_formatter_entities": list(self.invalid_formatter_entities),
        }


# ---------------------------------------------------------------------------
# Diff rows
# ---------------------------------------------------------------------------

@dataclass
class DiffRow:
    """A single path-level comparison result."""
    path: str
    left_value: Any
    right_value: Any
    status: DiffStatus
    truncated: bool = False

    def to_dict(self) -> dict:
        result = {
            "path": self.path,
            "left_value": self.left_value,
            "right_value": self.right_value,
            "status": self.status.value,
        }
        if self.truncated:
            result["truncated"] = True
        return result


@dataclass
class QuestionDiffRow:
    """Comparison of one tracked property of one template question."""
    question_id: str
    property: str
    label: str
    left_value: Any
    right_value: Any
    left_present: bool
    right_present: bool
    status: DiffStatus
    nested_field_id: Optional[str] = None
    nested_label: str = ""
    parent_in_both: Optional[bool] = None

    @property
    def exists_in_both(self) -> bool:
        return self.left_present and self.right_present

    @property
    def is_match(self) -> bool:
        return self.status is DiffStatus.MATCH

    def to_dict(self) -> dict:
        result = {
            "question_id": self.question_id,
            "property": self.property,
            "label": self.label,
            "left_value": self.left_value if self.left_present else NOT_IN_MAIN,
            "right_value": self.right_value if self.right_present else NOT_IN_BASELINE,
            "exists_in_both": self.exists_in_both,
            "status": self.status.value,
        }
        if self.nested_field_id is not None:
            result["nested_field_id"] = self.nested_field_id
            result["nested_label"] = self.nested_label
            result["parent_in_both"] = self.parent_in_both
        return result


@dataclass
class FieldExistenceRow:
    question_id: str
    in_main: bool
    in_baseline: bool

    @property
    def found_in_both(self) -> bool:
        return self.in_main and self.in_baseline

    def to_dict(self) -> dict:
        return {
            "question_id": self.question_id,
            "in_main": self.in_main,
            "in_baseline": self.in_baseline,
            "found_in_both": self.found_in_both,
        }


@dataclass
class TemplateComparison:
    """All rows produced for one template type."""
    template_type: str
    rows: list[QuestionDiffRow] = field(default_factory=list)
    nested_rows: list[QuestionDiffRow] = field(default_factory=list)
    existence: list[FieldExistenceRow] = field(default_factory=list)
    visible_rows: list[QuestionDiffRow] = field(default_factory=list)
    visible_nested_rows: list[QuestionDiffRow] = field(default_factory=list)

    @property
    def difference_count(self) -> int:
        return len(self.visible_rows) + len(self.visible_nested_rows)

    def to_dict(self) -> dict:
        return {
            "template_type": self.template_type,
            "existence": [r.to_dict() for r in self.existence],
            "rows": [r.to_dict() for r in self.rows],
            "nested_rows": [r.to_dict() for r in self.nested_rows],
            "difference_count": self.difference_count,
        }


# ---------------------------------------------------------------------------
# Field exception comparison
# ---------------------------------------------------------------------------

@dataclass
class FieldExceptionCell:
    """What one school says about one field path."""
    resolution: Optional[ExceptionResolution] = None
    note: Optional[str] = None
    map_value: Optional[str] = None

    @property
    def comparable(self) -> Optional[str]:
        if self.resolution is not None:
            return self.resolution.value
        return self.note

    def to_dict(self) -> dict:
        result = {}
        if self.resolution is not None:
            result["resolution"] = self.resolution.to_dict()
        if self.note is not None:
            result["note"] = self.note
        if self.map_value is not None:
            result["map_value"] = self.map_value
        return result


@dataclass
class FieldExceptionRow:
    path: str
    main: FieldExceptionCell
    baseline: FieldExceptionCell
    status: DiffStatus

    @property
    def has_no_record(self) -> bool:
        return NO_RECORD_NOTE in (self.main.note, self.baseline.note)

    def to_dict(self) -> dict:
        return {
            "path": self.path,
            "main": self.main.to_dict(),
            "baseline": self.baseline.to_dict(),
            "status": self.status.value,
            "has_no_record": self.has_no_record,
        }


@dataclass
class SchoolEntityStatus:
    merge_settings_ok: bool
    response_status: Optional[FieldExceptionStatus] = None
    default_method: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "merge_settings_ok": self.merge_settings_ok,
            "response_status": self.response_status.value if self.response_status else None,
            "default_method": self.default_method,
        }


@dataclass
class EntityFieldExceptionComparison:
    entity_type: str
    status: EntityComparisonStatus
    main: SchoolEntityStatus
    baseline: SchoolEntityStatus
    reason: Optional[str] = None
    rows: list[FieldExceptionRow] = field(default_factory=list)
    total_fields: int = 0
    defaults_differ_everywhere: bool = False

    @property
    def mismatches(self) -> list[FieldExceptionRow]:
        return [r for r in self.rows if r.status is not DiffStatus.MATCH]

    def to_dict(self) -> dict:
        return {
            "entity_type": self.entity_type,
            "status": self.status.value,
            "reason": self.reason,
            "main": self.main.to_dict(),
            "baseline": self.baseline.to_dict(),
            "total_fields": self.total_fields,
            "mismatch_count": len(self.mismatches),
            "defaults_differ_everywhere": self.defaults_differ_everywhere,
            "rows": [r.to_dict() for r in self.rows],
        }


@dataclass
class ConfiguredExceptionRow:
    path: str
    label: str
    main_method: Optional[str]
    baseline_method: Optional[str]
    status: DiffStatus

    def to_dict(self) -> dict:
        return {
            "path": self.path,
            "label": self.label,
            "main_method": self.main_method,
            "baseline_method": self.baseline_method,
            "status": self.status.value,
        }


# ---------------------------------------------------------------------------
# Attribute mappings and integration filters
# ---------------------------------------------------------------------------

@dataclass
class PresenceRow:
    """Whether a keyed item is configured in each school."""
    group: str
    key: str
    in_main: bool
    in_baseline: bool
    label: Optional[str] = None

    def to_dict(self) -> dict:
        result = {
            "group": self.group,
            "key": self.key,
            "in_main": self.in_main,
            "in_baseline": self.in_baseline,
        }
        if self.label is not None:
            result["label"] = self.label
        return result


@dataclass
class IntegrationComparison:
    """Presence table plus structural diff for attribute mappings or integration filters."""
    section: str
    main_kind: PayloadKind
    baseline_kind: PayloadKind
    presence: list[PresenceRow] = field(default_factory=list)
    diff_rows: list[DiffRow] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def can_compare(self) -> bool:
        return not self.errors

    @property
    def difference_count(self) -> int:
        return len([r for r in self.diff_rows if r.status is not DiffStatus.MATCH])

    def to_dict(self) -> dict:
        return {
            "section": self.section,
            "main_kind": self.main_kind.value,
            "baseline_kind": self.baseline_kind.value,
            "can_compare": self.can_compare,
            "errors": dict(self.errors),
            "presence": [r.to_dict() for r in self.presence],
            "diff_rows": [r.to_dict() for r in self.diff_rows],
        }


# ---------------------------------------------------------------------------
# Report envelope
# ---------------------------------------------------------------------------

@dataclass
class SectionError:
    """A report section that could not be produced."""
    section: str
    message: str

    def to_dict(self) -> dict:
        return {"section": self.section, "error": self.message}


@dataclass
class ExecutionInfo:
    """Execution metadata."""
    duration_ms: int
    timestamp: str
    engine_version: str = "1.0.0"

    def to_dict(self) -> dict:
        return {
            "duration_ms": self.duration_ms,
            "timestamp": self.timestamp,
            "engine_version": self.engine_version,
        }


@dataclass
class Summary:
    """Summary statistics of a comparison run."""
    entities_compared: int = 0
    field_exception_mismatches: int = 0
    default_method_mismatches: int = 0
    steps_to_execute_mismatches: int = 0
    template_differences: int = 0
    attribute_mapping_differences: int = 0
    integration_filter_differences: int = 0
    degraded_maps: int = 0

    def to_dict(self) -> dict:
        return {
            "entities_compared": self.entities_compared,
            "field_exception_mismatches": self.field_exception_mismatches,
            "default_method_mismatches": self.default_method_mismatches,
            "steps_to_execute_mismatches": self.steps_to_execute_mismatches,
            "template_differences": self.template_differences,
            "attribute_mapping_differences": self.attribute_mapping_differences,
            "integration_filter_differences": self.integration_filter_differences,
            "degraded_maps": self.degraded_maps,
        }


@dataclass
class ComparisonReport:
    """Complete comparison between a main and a baseline school."""
    main_school: str
    baseline_school: str
    execution: ExecutionInfo
    summary: Summary
    selection: EntitySelection
    field_exceptions: dict[str, EntityFieldExceptionComparison] = field(default_factory=dict)
    configured_exceptions: dict[str, list[ConfiguredExceptionRow]] = field(default_factory=dict)
    enhanced_available: bool = False
    default_methods: list[DiffRow] = field(default_factory=list)
    steps_to_execute: dict[str, list[DiffRow]] = field(default_factory=dict)
    templates: dict[str, TemplateComparison | SectionError] = field(default_factory=dict)
    attribute_mappings: Optional[IntegrationComparison | SectionError] = None
    integration_filters: Optional[IntegrationComparison | SectionError] = None
    integration_settings: Optional[list[DiffRow]] = None
    main_environment: str = "staging"
    baseline_environment: str = "staging"

    def to_dict(self) -> dict:
        result = {
            "main_school": self.main_school,
            "baseline_school": self.baseline_school,
            "main_environment": self.main_environment,
            "baseline_environment": self.baseline_environment,
            "execution": self.execution.to_dict(),
            "summary": self.summary.to_dict(),
            "selection": self.selection.to_dict(),
            "enhanced_available": self.enhanced_available,
            "field_exceptions": {
                entity: comparison.to_dict()
                for entity, comparison in self.field_exceptions.items()
            },
            "configured_exceptions": {
                entity: [r.to_dict() for r in rows]
                for entity, rows in self.configured_exceptions.items()
            },
            "default_methods": [r.to_dict() for r in self.default_methods],
            "steps_to_execute": {
                entity: [r.to_dict() for r in rows]
                for entity, rows in self.steps_to_execute.items()
            },
            "templates": {
                name: section.to_dict() for name, section in self.templates.items()
            },
        }
        if self.attribute_mappings is not None:
            result["attribute_mappings"] = self.attribute_mappings.to_dict()
        if self.integration_filters is not None:
            result["integration_filters"] = self.integration_filters.to_dict()
        if self.integration_settings is not None:
            result["integration_settings"] = [r.to_dict() for r in self.integration_settings]
        return result


@dataclass
class ErrorResponse:
    """Error response structure."""
    success: bool = False
    error: Optional[dict] = None

    def to_dict(self) -> dict:
        result = {"success": self.success}
        if self.error:
            result["error"] = self.error
        return result
