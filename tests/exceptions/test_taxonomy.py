"""Tests for the error taxonomy and exception hierarchy."""

import pytest

from flakewatch.exceptions import (
    ConcurrentTransitionConflict,
    ConfigurationMissingError,
    ErrorCode,
    FlakewatchError,
    FlakewatchIssue,
    InsufficientDataError,
    InvalidConfigError,
    InvalidRecordError,
    LifecycleError,
    PolicyViolationError,
    StorageError,
)


class TestErrorCode:
    """Codes are grouped by area."""

    def test_classification_codes(self):
        """Classification errors are FW1xx."""
        for code in (ErrorCode.FW100, ErrorCode.FW101, ErrorCode.FW102, ErrorCode.FW103, ErrorCode.FW104, ErrorCode.FW110):
            assert code.value.startswith("FW1")

    def test_values_match_names(self):
        for code in ErrorCode:
            assert code.value == code.name

    def test_areas(self):
        areas = {code.value[:3] for code in ErrorCode}
        assert areas == {"FW1", "FW2", "FW3", "FW4", "FW5", "FW6"}


class TestFlakewatchIssue:
    def test_str(self):
        issue = FlakewatchIssue(message="bad record", code=ErrorCode.FW100)
        assert str(issue) == "[FW100] bad record"

    def test_to_json(self):
        issue = FlakewatchIssue(
            message="retry",
            code=ErrorCode.FW301,
            context={"day": "2024-03-01"},
            recoverable=True,
            recovery_hint="Rerun",
        )
        assert issue.to_json() == {
            "error_code": "FW301",
            "message": "retry",
            "context": {"day": "2024-03-01"},
            "recoverable": True,
            "recovery_hint": "Rerun",
        }


class TestExceptions:
    def test_hierarchy(self):
        assert issubclass(PolicyViolationError, LifecycleError)
        assert issubclass(ConcurrentTransitionConflict, LifecycleError)
        for cls in (InvalidRecordError, InsufficientDataError, InvalidConfigError, StorageError):
            assert issubclass(cls, FlakewatchError)

    def test_details_in_message(self):
        error = InvalidConfigError("workers", 0, "must be at least 1")
        assert "workers" in str(error)
        assert error.details["reason"] == "must be at least 1"

    def test_conflict_details(self):
        error = ConcurrentTransitionConflict("web::test_a", 3, 4)
        assert error.expected_version == 3
        assert error.details["actual_version"] == "4"

    def test_missing_team_config(self):
        error = ConfigurationMissingError("payments")
        assert str(error).startswith("No team configuration for project payments")

    def test_insufficient_data(self):
        error = InsufficientDataError("2 runs", minimum_required=3)
        assert error.minimum_required == 3
        with pytest.raises(FlakewatchError):
            raise error
