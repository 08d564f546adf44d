"""Three-layer conflict-handling resolution for a single field."""

from __future__ import annotations

from typing import Any, Optional

from .global_exceptions import GlobalExceptionTable
from .models import (
    DEFAULT_CONFLICT_METHOD,
    ExceptionResolution,
    Layer,
    SchoolEntityConfig,
)
from .utils import serialize_path


class ExceptionResolver:
    """
    Resolves the effective conflict-handling method of a field.

    Layers, highest first:
    1. global: the hardcoded table, including inherited parent entries
    2. configured: the school's fieldExceptions, exact path only, first group wins
    3. default: the entity's conflictHandlingMethod, else the engine default
    """

    def __init__(
        self,
        table: Optional[GlobalExceptionTable] = None,
        default_method: str = DEFAULT_CONFLICT_METHOD
    ):
        self.table = table if table is not None else GlobalExceptionTable.default()
        self.default_method = default_method

    def resolve(self, path: Any, entity_type: str, school_config: Any) -> ExceptionResolution:
        """
        Resolve one field.

        Args:
            path: Dotted path or segment list
            entity_type: Entity the field belongs to
            school_config: Entity-level merge settings (raw mapping or SchoolEntityConfig)

        Returns:
            ExceptionResolution with the value and the layer that produced it
        """
        global_value = self.table.lookup(path, entity_type)
        if global_value:
            return ExceptionResolution(value=global_value, source=Layer.GLOBAL)

        config = SchoolEntityConfig.from_settings(school_config)

        configured = self.configured_method(path, config)
        if configured is not None:
            return ExceptionResolution(value=configured, source=Layer.CONFIGURED)

        return ExceptionResolution(
            value=config.default_method or self.default_method,
            source=Layer.DEFAULT
        )

    def configured_method(self, path: Any, school_config: Any) -> Optional[str]:
        """Method of the first configured group listing exactly this path."""
        serialized = serialize_path(path)
        if serialized is None:
            return None

        config = SchoolEntityConfig.from_settings(school_config)
        for field_path, method, _ in config.iter_fields():
            if field_path == serialized and method:
                return method
        return None

    def is_configured(self, path: Any, school_config: Any) -> bool:
        """Whether the path is explicitly configured; global and default layers are ignored."""
        return self.configured_method(path, school_config) is not None
