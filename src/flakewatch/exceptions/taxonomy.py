"""Error taxonomy with codes and recovery hints.

Error Code Convention:
    FW1xx - Classification errors
    FW2xx - Quarantine lifecycle errors
    FW3xx - Impact estimation errors
    FW4xx - Risk scoring errors
    FW5xx - Storage errors
    FW6xx - Configuration errors
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCode(Enum):
    """Structured error codes for observability and debugging."""

    # Classification (FW1xx)
    FW100 = "FW100"  # Record missing status
    FW101 = "FW101"  # Record missing timestamp
    FW102 = "FW102"  # Record has unknown status value
    FW103 = "FW103"  # Record has negative duration
    FW104 = "FW104"  # Record identity mismatch
    FW110 = "FW110"  # Sample below minimum size (undetermined)

    # Quarantine lifecycle (FW2xx)
    FW200 = "FW200"  # Manual action contradicts classification
    FW201 = "FW201"  # Concurrent transition conflict (retried)
    FW202 = "FW202"  # Transition retries exhausted

    # Impact (FW3xx)
    FW300 = "FW300"  # Project impact calculation failed
    FW301 = "FW301"  # Trend day recompute failed
    FW302 = "FW302"  # Trend job cancelled

    # Risk (FW4xx)
    FW400 = "FW400"  # Source could not be parsed, regex fallback used
    FW401 = "FW401"  # File does not look like a test file

    # Storage (FW5xx)
    FW500 = "FW500"  # SQLite write failed
    FW501 = "FW501"  # Schema migration failed

    # Configuration (FW6xx)
    FW600 = "FW600"  # Team configuration missing, defaults used
    FW601 = "FW601"  # Policy configuration warning


@dataclass
class FlakewatchIssue:
    """A recoverable problem attached to a result instead of raised.

    Attributes:
        message: Human-readable description
        code: Structured error code for categorization
        context: Additional context (identity, record index, ...)
        recoverable: Whether processing continued past the problem
        recovery_hint: Suggested fix for the user
    """

    message: str
    code: ErrorCode
    context: dict[str, Any] = field(default_factory=dict)
    recoverable: bool = True
    recovery_hint: str | None = None

    def __str__(self) -> str:
        return f"[{self.code.value}] {self.message}"

    def to_json(self) -> dict[str, Any]:
        """Structured logging format."""
        return {
            "error_code": self.code.value,
            "message": self.message,
            "context": self.context,
            "recoverable": self.recoverable,
            "recovery_hint": self.recovery_hint,
        }
