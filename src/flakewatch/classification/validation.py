"""Per-record validation for outcome batches.

Malformed records are rejected one at a time; the rest of the batch
continues. Rejections are returned as issues rather than raised.
"""

from __future__ import annotations

from typing import Iterable, Optional

from ..exceptions import ErrorCode, FlakewatchIssue, InvalidRecordError
from ..logging_config import get_logger
from ..models import OutcomeRecord, OutcomeStatus, TestIdentity

logger = get_logger(__name__)


def validate_record(
    record: OutcomeRecord,
    index: Optional[int] = None,
    identity: Optional[TestIdentity] = None,
) -> None:
    """Raise InvalidRecordError if ``record`` cannot be classified.

    Args:
        record: The record to check
        index: Position in the batch, for error context
        identity: If given, the record must belong to this identity
    """
    if not record.identity.project_id or not record.identity.test_name:
        raise InvalidRecordError("identity is incomplete", record, index, ErrorCode.FW104)
    if identity is not None and record.identity != identity:
        raise InvalidRecordError(
            f"record belongs to {record.identity.key}, not {identity.key}",
            record,
            index,
            ErrorCode.FW104,
        )
    if record.status is None:
        raise InvalidRecordError("missing status", record, index, ErrorCode.FW100)
    if not isinstance(record.status, OutcomeStatus):
        raise InvalidRecordError(f"unknown status {record.status!r}", record, index, ErrorCode.FW102)
    if record.timestamp is None:
        raise InvalidRecordError("missing timestamp", record, index, ErrorCode.FW101)
    if record.duration is not None and record.duration < 0:
        raise InvalidRecordError(
            f"negative duration {record.duration}", record, index, ErrorCode.FW103
        )


def issue_from_error(error: InvalidRecordError) -> FlakewatchIssue:
    context = dict(error.details)
    if error.record is not None and hasattr(error.record, "identity"):
        context["identity"] = error.record.identity.key
    return FlakewatchIssue(
        message=str(error),
        code=error.code,
        context=context,
        recoverable=True,
        recovery_hint="Fix the producer of this record; it was skipped",
    )


def partition_valid(
    records: Iterable[OutcomeRecord],
    identity: Optional[TestIdentity] = None,
) -> tuple[list[OutcomeRecord], list[FlakewatchIssue]]:
    """Split a batch into valid records and issues for the rejected ones."""
    valid: list[OutcomeRecord] = []
    issues: list[FlakewatchIssue] = []
    for index, record in enumerate(records):
        try:
            validate_record(record, index=index, identity=identity)
        except InvalidRecordError as e:
            logger.warning(f"Skipping record {index}: {e.reason}")
            issues.append(issue_from_error(e))
            continue
        valid.append(record)
    return valid, issues
