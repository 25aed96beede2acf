"""Classification-related exceptions: malformed records, thin samples."""

from typing import Any, Dict, Optional

from .base import FlakewatchError
from .taxonomy import ErrorCode


class ClassificationError(FlakewatchError):
    """Base class for classification errors."""

    pass


class InvalidRecordError(ClassificationError):
    """Raised when an outcome record is malformed.

    Recoverable: callers skip the record and keep processing the batch.
    """

    def __init__(
        self,
        reason: str,
        record: Optional[Any] = None,
        index: Optional[int] = None,
        code: ErrorCode = ErrorCode.FW102,
    ):
        details: Dict[str, str] = {"reason": reason}
        if index is not None:
            details["index"] = str(index)
        super().__init__(f"Invalid outcome record: {reason}", details=details)
        self.reason = reason
        self.record = record
        self.index = index
        self.code = code


class InsufficientDataError(ClassificationError):
    """Raised when a sample is below the minimum size.

    The classifier itself never raises this; it returns an undetermined
    result instead. Callers that require a determined verdict raise it.
    """

    def __init__(self, reason: str, minimum_required: Optional[int] = None):
        details: Dict[str, str] = {"reason": reason}
        if minimum_required is not None:
            details["minimum_required"] = str(minimum_required)

        super().__init__(f"Insufficient data for classification: {reason}", details=details)
        self.reason = reason
        self.minimum_required = minimum_required
