"""Custom exceptions for the SchoolDiff engine."""


class SchoolDiffError(Exception):
    """Base exception for SchoolDiff errors."""
    pass


class ValidationError(SchoolDiffError):
    """Raised when an input has a type the engine cannot work with at all."""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigError(SchoolDiffError):
    """Raised when the engine configuration is invalid."""
    def __init__(self, message: str, key: str = None):
        super().__init__(message)
        self.message = message
        self.key = key


class SnapshotLoadError(SchoolDiffError):
    """Raised when a school snapshot or config file cannot be read."""
    def __init__(self, path: str, reason: str):
        super().__init__(f"Cannot load {path}: {reason}")
        self.path = path
        self.reason = reason
