"""Tests for per-record validation of outcome batches."""

import pytest

from flakewatch.classification import partition_valid, validate_record
from flakewatch.exceptions import ErrorCode, InvalidRecordError
from flakewatch.models import OutcomeRecord, OutcomeStatus, TestIdentity


class TestValidateRecord:
    def test_valid_record_passes(self, identity, t0):
        validate_record(OutcomeRecord(identity, OutcomeStatus.PASSED, t0, duration=0.0))

    @pytest.mark.parametrize(
        "kwargs, code",
        [
            ({"status": None}, ErrorCode.FW100),
            ({"timestamp": None}, ErrorCode.FW101),
            ({"duration": -1.0}, ErrorCode.FW103),
        ],
    )
    def test_rejections(self, identity, t0, kwargs, code):
        fields = {"identity": identity, "status": OutcomeStatus.FAILED, "timestamp": t0}
        fields.update(kwargs)
        with pytest.raises(InvalidRecordError) as exc_info:
            validate_record(OutcomeRecord(**fields), index=4)
        assert exc_info.value.code is code
        assert exc_info.value.index == 4

    def test_unknown_status_value(self, identity, t0):
        with pytest.raises(InvalidRecordError) as exc_info:
            validate_record(OutcomeRecord(identity, "exploded", t0))
        assert exc_info.value.code is ErrorCode.FW102

    def test_incomplete_identity(self, t0):
        with pytest.raises(InvalidRecordError) as exc_info:
            validate_record(OutcomeRecord(TestIdentity("web", ""), OutcomeStatus.PASSED, t0))
        assert exc_info.value.code is ErrorCode.FW104


class TestPartitionValid:
    def test_bad_records_do_not_stop_batch(self, identity, runs, t0):
        batch = runs(identity, "PF") + [OutcomeRecord(identity, None, t0)] + runs(identity, "P")
        valid, issues = partition_valid(batch)
        assert len(valid) == 3
        assert len(issues) == 1
        assert issues[0].recoverable
        assert issues[0].context["index"] == "2"
        assert issues[0].context["identity"] == identity.key


class TestFromDict:
    def test_parses_json_object(self):
        record = OutcomeRecord.from_dict(
            {
                "project": "web",
                "test_name": "test_login",
                "suite": "auth",
                "status": "FAILED",
                "timestamp": "2024-03-01T10:00:00Z",
                "duration": "1.5",
                "retry_attempt": 1,
            }
        )
        assert record.identity == TestIdentity("web", "test_login", "auth")
        assert record.status is OutcomeStatus.FAILED
        assert record.timestamp.tzinfo is not None
        assert record.duration == 1.5
        assert record.retry_attempt == 1

    def test_project_id_fallback(self):
        record = OutcomeRecord.from_dict({"name": "test_a", "status": "passed", "timestamp": 0}, project_id="api")
        assert record.identity.project_id == "api"

    def test_unknown_status_raises(self):
        with pytest.raises(ValueError):
            OutcomeRecord.from_dict({"project_id": "web", "test_name": "t", "status": "exploded"})
