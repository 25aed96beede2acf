"""Configuration and storage exceptions."""

from pathlib import Path
from typing import Any, Optional

from .base import FlakewatchError


class ConfigurationError(FlakewatchError):
    """Base class for configuration-related errors."""

    pass


class InvalidConfigError(ConfigurationError):
    """Raised when configuration values are invalid."""

    def __init__(self, key: str, value: Any, reason: str):
        super().__init__(
            f"Invalid configuration for {key}: {value}",
            details={"key": key, "value": str(value), "reason": reason},
        )
        self.key = key
        self.value = value
        self.reason = reason


class ConfigurationMissingError(ConfigurationError):
    """Team configuration absent for a project.

    Never fatal to a calculation: the engine falls back to defaults.
    """

    def __init__(self, project_id: str, section: str = "team"):
        super().__init__(
            f"No {section} configuration for project {project_id}",
            details={"project": project_id, "section": section},
        )
        self.project_id = project_id
        self.section = section


class StorageError(FlakewatchError):
    """Raised when the sample store cannot read or write."""

    def __init__(self, reason: str, path: Optional[Path] = None):
        details = {"reason": reason}
        if path is not None:
            details["path"] = str(path)
        super().__init__(f"Storage failure: {reason}", details=details)
        self.reason = reason
        self.path = path
