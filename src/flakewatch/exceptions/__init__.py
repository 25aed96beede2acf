"""Exception hierarchy for Flakewatch."""

from .base import FlakewatchError
from .classification import ClassificationError, InsufficientDataError, InvalidRecordError
from .config import (
    ConfigurationError,
    ConfigurationMissingError,
    InvalidConfigError,
    StorageError,
)
from .lifecycle import ConcurrentTransitionConflict, LifecycleError, PolicyViolationError
from .taxonomy import ErrorCode, FlakewatchIssue

__all__ = [
    "FlakewatchError",
    "ClassificationError",
    "InvalidRecordError",
    "InsufficientDataError",
    "LifecycleError",
    "PolicyViolationError",
    "ConcurrentTransitionConflict",
    "ConfigurationError",
    "ConfigurationMissingError",
    "InvalidConfigError",
    "StorageError",
    "ErrorCode",
    "FlakewatchIssue",
]
