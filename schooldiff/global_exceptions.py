"""Hardcoded field exceptions the platform's sync engine always applies."""

from __future__ import annotations

from types import MappingProxyType
from typing import Any, Mapping, Optional

from .exceptions import ValidationError
from .utils import WILDCARD, serialize_path, split_path, segments_match


ALWAYS_COURSEDOG = "alwaysCoursedog"
ALWAYS_INSTITUTION = "alwaysInstitution"
RESOLVE_AS_INSTITUTION = "resolveAsInstitution"

# Applies to every entity type the table knows about
GENERAL_FIELD_EXCEPTIONS = MappingProxyType({
    "workflowStep": ALWAYS_COURSEDOG,
    "version": ALWAYS_COURSEDOG,
    "lastSyncedAt": ALWAYS_COURSEDOG,
    "lastSyncStatus": ALWAYS_COURSEDOG,
    "lastSyncErrors": ALWAYS_COURSEDOG,
    "lastSyncErrorRecommendations": ALWAYS_COURSEDOG,
    "lastSyncMergeReportId": ALWAYS_COURSEDOG,
    "objectMergeSettings": ALWAYS_COURSEDOG,
    "createdAt": ALWAYS_COURSEDOG,
    "createdBy": ALWAYS_COURSEDOG,
    "lastEditedAt": ALWAYS_COURSEDOG,
    "lastEditedBy": ALWAYS_COURSEDOG,
    "allowIntegration": ALWAYS_COURSEDOG,
})

_STUDENT_RECORD_EXCEPTIONS = {
    "customFields.deprecatedShuffledId": ALWAYS_COURSEDOG,
}

ENTITY_FIELD_EXCEPTIONS = MappingProxyType({
    "terms": MappingProxyType({
        "phaseId": ALWAYS_COURSEDOG,
    }),
    "sections": MappingProxyType({
        "linkedSections": ALWAYS_COURSEDOG,
        "crossEnrolledSections": ALWAYS_COURSEDOG,
        "relationships": ALWAYS_COURSEDOG,
        "createdInternally": ALWAYS_COURSEDOG,
        "ruleExceptions": ALWAYS_COURSEDOG,
        "requests": ALWAYS_COURSEDOG,
        "preferredBuilding": ALWAYS_COURSEDOG,
        "preferredBuildings": ALWAYS_COURSEDOG,
        "preferredRoomType": ALWAYS_COURSEDOG,
        "preferredRoomCapacity": ALWAYS_COURSEDOG,
        "preferredRoomFeatures": ALWAYS_COURSEDOG,
        "doRoomScheduling": ALWAYS_COURSEDOG,
        "times.$.timeBlockId": ALWAYS_COURSEDOG,
        "customFields.secTopicCode": ALWAYS_INSTITUTION,
        "professorsMeta.$.instructorId": RESOLVE_AS_INSTITUTION,
    }),
    "courses": MappingProxyType({
        "requisites": ALWAYS_COURSEDOG,
        "learningOutcomes": ALWAYS_COURSEDOG,
        "learningOutcomesV2": ALWAYS_COURSEDOG,
        "rolloverSetting": ALWAYS_COURSEDOG,
        "owners": ALWAYS_COURSEDOG,
        "requestId": ALWAYS_COURSEDOG,
        "requestStatus": ALWAYS_COURSEDOG,
        "files": ALWAYS_COURSEDOG,
    }),
    "relationships": MappingProxyType({
        "courseIds": ALWAYS_COURSEDOG,
        "sectionNumbers": ALWAYS_COURSEDOG,
    }),
    "events": MappingProxyType({}),
    "programMaps": MappingProxyType({
        "semesters.$.sisId": ALWAYS_INSTITUTION,
        "semesters.$.requirements.$.sisId": ALWAYS_INSTITUTION,
    }),
    "students": MappingProxyType(dict(_STUDENT_RECORD_EXCEPTIONS)),
    "studentAudits": MappingProxyType(dict(_STUDENT_RECORD_EXCEPTIONS)),
    "studentCourseHistory": MappingProxyType(dict(_STUDENT_RECORD_EXCEPTIONS)),
    "studentProgramHistory": MappingProxyType(dict(_STUDENT_RECORD_EXCEPTIONS)),
    "programGoals": MappingProxyType({
        "programMapId": ALWAYS_COURSEDOG,
    }),
    "rooms": MappingProxyType({
        "subRooms": ALWAYS_COURSEDOG,
        "subRoomsNotes": ALWAYS_COURSEDOG,
        "parentRooms": ALWAYS_COURSEDOG,
    }),
    "professors": MappingProxyType({
        "workload": ALWAYS_COURSEDOG,
    }),
})


def _check_entity_type(entity_type: Any) -> None:
    if not isinstance(entity_type, str):
        raise ValidationError(
            "entity_type must be a string",
            {"entity_type": repr(entity_type)}
        )


class GlobalExceptionTable:
    """
    Read-only per-entity table of field exceptions with parent-path inheritance.

    Each entity table is the general table with the entity's own entries laid
    on top. Entity types missing from the table have no global exceptions at
    all, not even the general ones.
    """

    _default: Optional["GlobalExceptionTable"] = None

    def __init__(self, general: Mapping[str, str], entities: Mapping[str, Mapping[str, str]]):
        tables = {}
        wildcards = {}
        for entity_type, entries in entities.items():
            merged = dict(general)
            merged.update(entries)
            tables[entity_type] = MappingProxyType(merged)
            wildcards[entity_type] = tuple(
                (split_path(key), value)
                for key, value in sorted(merged.items())
                if WILDCARD in split_path(key)
            )
        self._tables = MappingProxyType(tables)
        self._wildcards = MappingProxyType(wildcards)

    @classmethod
    def default(cls) -> "GlobalExceptionTable":
        """The built-in table, created once per process."""
        if cls._default is None:
            cls._default = cls(GENERAL_FIELD_EXCEPTIONS, ENTITY_FIELD_EXCEPTIONS)
        return cls._default

    @property
    def entity_types(self) -> list[str]:
        return sorted(self._tables)

    def lookup(self, path: Any, entity_type: str) -> Optional[str]:
        """
        Find the global exception governing a field.

        The full path is checked first, then each ancestor from the longest
        down to the first segment. At every length an exact key beats a key
        with ``$`` wildcard segments.

        Args:
            path: Dotted path or segment list
            entity_type: Entity the field belongs to

        Returns:
            The conflict-handling method, or None
        """
        _check_entity_type(entity_type)

        table = self._tables.get(entity_type)
        if table is None:
            return None

        serialized = serialize_path(path)
        if serialized is None:
            return None

        segments = split_path(serialized)
        for length in range(len(segments), 0, -1):
            value = self._match(entity_type, table, segments[:length])
            if value:
                return value

        return None

    def _match(self, entity_type: str, table: Mapping[str, str], segments: list[str]) -> Optional[str]:
        value = table.get(".".join(segments))
        if value:
            return value

        for pattern, pattern_value in self._wildcards[entity_type]:
            if segments_match(pattern, segments):
                return pattern_value

        return None

    def has(self, path: Any, entity_type: str) -> bool:
        return self.lookup(path, entity_type) is not None

    def get_all(self, entity_type: str) -> dict[str, str]:
        """All exceptions for an entity as a fresh dict; empty for unknown entities."""
        _check_entity_type(entity_type)
        return dict(self._tables.get(entity_type, {}))
