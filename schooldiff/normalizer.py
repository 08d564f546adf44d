"""Normalization of attribute mappings and integration filters.

Both payloads arrive in loosely defined shapes. They are reduced here to
stable trees (keys canonicalized, unordered lists sorted) that the
structural differ can compare without false positives.
"""

from __future__ import annotations

from typing import Any, Iterator, Mapping, Optional

import structlog

from .accessors import as_dict, as_list, get_path, is_error_payload, payload_error
from .models import PayloadKind
from .utils import canonical_json, serialize_path

logger = structlog.get_logger(__name__)


DEFAULT_ALIASES = {
    "campus": "campuses",
    "degreeDesignation": "degreeDesignations",
}

CORE_MAPPING_FIELDS = ("code", "description", "status", "primaryType", "fieldName", "types")


class AliasTable:
    """
    Maps entity-type spellings onto one canonical key.

    The two built-in pairs are always present; extra pairs are laid on top.
    """

    def __init__(self, extra: Optional[Mapping[str, str]] = None):
        aliases = dict(DEFAULT_ALIASES)
        if extra:
            aliases.update({str(k).strip(): str(v).strip() for k, v in extra.items()})
        self._aliases = aliases

    @property
    def pairs(self) -> dict[str, str]:
        return dict(self._aliases)

    def canonical(self, key: Any) -> str:
        normalized = str(key).strip()
        return self._aliases.get(normalized, normalized)

    def equivalent(self, left: Any, right: Any) -> bool:
        return self.canonical(left) == self.canonical(right)


def _sorted_list(value: Any) -> list:
    return sorted(as_list(value), key=canonical_json)


# ---------------------------------------------------------------------------
# Attribute mappings
# ---------------------------------------------------------------------------

def flatten_attribute_mappings(data: Any) -> list[dict]:
    """
    Mapping records from either payload shape.

    Accepts a flat array or the grouped ``{fieldName: {data: [...]}}`` form.
    """
    if isinstance(data, list):
        return [m for m in data if isinstance(m, dict)]

    if isinstance(data, dict) and not is_error_payload(data):
        mappings = []
        for group in data.values():
            mappings.extend(m for m in as_list(as_dict(group).get("data")) if isinstance(m, dict))
        return mappings

    return []


def mapping_core(mapping: dict) -> dict:
    """Fields that decide whether two mappings are the same; ``types`` is order-free."""
    core = {}
    for field in CORE_MAPPING_FIELDS:
        if field == "types":
            core[field] = _sorted_list(mapping.get("types"))
        else:
            core[field] = mapping.get(field)
    return core


def mapping_key(mapping: dict) -> str:
    """Identity of a mapping: code, description, fieldName and primaryType, falling back to its id."""
    def sanitize(value: Any) -> str:
        return "" if value is None else str(value).strip().lower()

    core = "|".join(sanitize(mapping.get(f)) for f in ("code", "description", "fieldName", "primaryType"))
    if core != "|||":
        return core
    return f"id:{sanitize(mapping.get('id', mapping.get('_id')))}"


def normalize_attribute_mappings(data: Any, aliases: Optional[AliasTable] = None) -> dict:
    """
    Tree of ``{primaryType: {fieldName: {mappingKey: coreFields}}}``.

    Mappings missing a primaryType or fieldName are skipped.
    """
    aliases = aliases or AliasTable()
    tree: dict[str, dict] = {}
    skipped = 0

    for mapping in flatten_attribute_mappings(data):
        primary_type = mapping.get("primaryType")
        field_name = mapping.get("fieldName")
        if not primary_type or not field_name:
            skipped += 1
            continue
        mapping = dict(mapping, primaryType=aliases.canonical(primary_type))
        group = tree.setdefault(mapping["primaryType"], {})
        group.setdefault(str(field_name), {})[mapping_key(mapping)] = mapping_core(mapping)

    if skipped:
        logger.debug("attribute_mappings_skipped", count=skipped)
    return tree


def attribute_mapping_keys(data: Any, aliases: Optional[AliasTable] = None) -> set[tuple[str, str]]:
    """Set of ``(canonicalPrimaryType, fieldName)`` pairs configured in a payload."""
    aliases = aliases or AliasTable()
    keys = set()
    for mapping in flatten_attribute_mappings(data):
        primary_type = mapping.get("primaryType")
        field_name = mapping.get("fieldName")
        if primary_type and field_name:
            keys.add((aliases.canonical(primary_type), str(field_name)))
    return keys


# ---------------------------------------------------------------------------
# Integration filters
# ---------------------------------------------------------------------------

def classify_filters(data: Any) -> tuple[PayloadKind, Optional[str]]:
    """Kind of an integration filters payload and, for API errors, the error text."""
    if not isinstance(data, dict):
        return PayloadKind.INVALID, None
    if is_error_payload(data):
        return PayloadKind.API_ERROR, payload_error(data)
    if not data:
        return PayloadKind.EMPTY, None
    if isinstance(data.get("integrationFilters"), dict):
        return PayloadKind.STRUCTURED, None
    return PayloadKind.UNKNOWN, None


def iter_filter_values(data: Any) -> Iterator[tuple[str, dict, dict]]:
    """Yield ``(entityType, filter, filterValue)`` for every filter value with a key."""
    filters_by_entity = get_path(data, "integrationFilters")
    if not isinstance(filters_by_entity, dict):
        return
    for entity_type, filters in filters_by_entity.items():
        for flt in as_list(filters):
            if not isinstance(flt, dict):
                continue
            for filter_value in as_list(flt.get("filterValues")):
                if isinstance(filter_value, dict) and isinstance(filter_value.get("key"), dict):
                    yield str(entity_type), flt, filter_value


def filter_path(filter_value: dict) -> str:
    path = get_path(filter_value, "key.path")
    return serialize_path(path) or (str(path) if path else "N/A")


def filter_label(filter_value: dict) -> Optional[str]:
    label = get_path(filter_value, "key.label")
    return str(label) if label else None


def filter_presence_keys(data: Any, aliases: Optional[AliasTable] = None) -> set[tuple[str, str, str]]:
    """Set of ``(canonicalEntityType, label, path)`` for filter values that carry a label."""
    aliases = aliases or AliasTable()
    keys = set()
    for entity_type, _, filter_value in iter_filter_values(data):
        label = filter_label(filter_value)
        if label:
            keys.add((aliases.canonical(entity_type), label, filter_path(filter_value)))
    return keys


def normalize_integration_filters(data: Any, aliases: Optional[AliasTable] = None) -> dict:
    """
    Tree of ``{entityType: {path: {filterType, label, values, antiValues}}}``.

    A path filtered more than once within one entity gets ``#2``, ``#3``...
    suffixes in encounter order.
    """
    aliases = aliases or AliasTable()
    tree: dict[str, dict] = {}

    for entity_type, flt, filter_value in iter_filter_values(data):
        group = tree.setdefault(aliases.canonical(entity_type), {})
        path = filter_path(filter_value)
        key = path
        occurrence = 1
        while key in group:
            occurrence += 1
            key = f"{path}#{occurrence}"
        group[key] = {
            "filterType": flt.get("filterType", "unknown"),
            "label": filter_label(filter_value),
            "values": _sorted_list(filter_value.get("values")),
            "antiValues": _sorted_list(filter_value.get("antiValues")),
        }

    return tree
