"""Shared domain types: identities, outcomes, patterns and audit events."""

from __future__ import annotations

import zlib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 string, epoch seconds or datetime into UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return ensure_utc(datetime.fromisoformat(text))


class OutcomeStatus(Enum):
    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"


class Classification(Enum):
    """Classifier verdict for one identity's window.

    NO_DATA and UNDETERMINED are "not enough data yet"; STABLE is a
    confirmed verdict. They must never be conflated.
    """

    NO_DATA = "no_data"
    UNDETERMINED = "undetermined"
    STABLE = "stable"
    FLAKY = "flaky"
    BROKEN = "broken"


class LifecycleState(Enum):
    STABLE = "stable"
    FLAKY = "flaky"
    QUARANTINED = "quarantined"
    RECOVERING_STABLE = "recovering_stable"


class QuarantineAction(Enum):
    QUARANTINED = "quarantined"
    UNQUARANTINED = "unquarantined"


class TriggeredBy(Enum):
    AUTO = "auto"
    MANUAL = "manual"


class FailurePattern(Enum):
    INTERMITTENT = "intermittent"
    ENVIRONMENT_DEPENDENT = "environment_dependent"
    TIMING_SENSITIVE = "timing_sensitive"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class TestIdentity:
    """(project, test name, optional suite). Hashable and immutable."""

    __test__ = False  # not a pytest test class

    project_id: str
    test_name: str
    suite: Optional[str] = None

    @property
    def key(self) -> str:
        if self.suite:
            return f"{self.project_id}::{self.suite}::{self.test_name}"
        return f"{self.project_id}::{self.test_name}"

    def shard(self, buckets: int) -> int:
        """Stable bucket index, identical across processes."""
        return zlib.crc32(self.key.encode("utf-8")) % buckets

    def __str__(self) -> str:
        return self.key


@dataclass(frozen=True)
class OutcomeRecord:
    """One execution of one test. Append-only.

    ``status`` and ``timestamp`` are Optional only so that malformed input
    can be represented and rejected by validation; valid records always
    carry both. ``duration`` is in seconds.
    """

    identity: TestIdentity
    status: Optional[OutcomeStatus]
    timestamp: Optional[datetime]
    duration: Optional[float] = None
    branch: Optional[str] = None
    error_message: Optional[str] = None
    stack_trace: Optional[str] = None
    retry_attempt: Optional[int] = None
    run_id: Optional[str] = None

    @property
    def is_failure(self) -> bool:
        return self.status is OutcomeStatus.FAILED

    @classmethod
    def from_dict(cls, data: dict, project_id: Optional[str] = None) -> "OutcomeRecord":
        """Build a record from a JSON object.

        Unknown status strings and unparseable timestamps raise
        ``ValueError``; missing ones produce ``None`` fields.
        """
        identity = TestIdentity(
            project_id=str(data.get("project_id") or data.get("project") or project_id or ""),
            test_name=str(data.get("test_name") or data.get("name") or ""),
            suite=data.get("suite") or data.get("suite_name") or None,
        )
        raw_status = data.get("status")
        status = OutcomeStatus(str(raw_status).lower()) if raw_status else None
        duration = data.get("duration")
        retry = data.get("retry_attempt")
        return cls(
            identity=identity,
            status=status,
            timestamp=parse_timestamp(data.get("timestamp")),
            duration=float(duration) if duration is not None else None,
            branch=data.get("branch"),
            error_message=data.get("error_message"),
            stack_trace=data.get("stack_trace"),
            retry_attempt=int(retry) if retry is not None else None,
            run_id=data.get("run_id"),
        )

    def to_dict(self) -> dict:
        return {
            "project_id": self.identity.project_id,
            "test_name": self.identity.test_name,
            "suite": self.identity.suite,
            "status": self.status.value if self.status else None,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "duration": self.duration,
            "branch": self.branch,
            "error_message": self.error_message,
            "stack_trace": self.stack_trace,
            "retry_attempt": self.retry_attempt,
            "run_id": self.run_id,
        }


@dataclass
class FlakyPattern:
    """Persisted per-identity classification and lifecycle state.

    Created the first time a test is classified flaky, recomputed from the
    full window on every batch, deactivated but never deleted.
    ``version`` is bumped on every write for optimistic concurrency.
    """

    identity: TestIdentity
    failure_rate: float = 0.0
    total_runs: int = 0
    failure_count: int = 0
    confidence: float = 0.0
    first_seen: Optional[datetime] = None
    last_seen: Optional[datetime] = None
    is_active: bool = False
    is_quarantined: bool = False
    quarantined_at: Optional[datetime] = None
    state: LifecycleState = LifecycleState.STABLE
    classification: Classification = Classification.UNDETERMINED
    failure_pattern: Optional[FailurePattern] = None
    day_variance: float = 0.0
    recovery_started_at: Optional[datetime] = None
    unquarantined_at: Optional[datetime] = None
    premature_unquarantines: int = 0
    updated_at: Optional[datetime] = None
    version: int = 0

    def to_dict(self) -> dict:
        return {
            "identity": self.identity.key,
            "project_id": self.identity.project_id,
            "test_name": self.identity.test_name,
            "suite": self.identity.suite,
            "failure_rate": self.failure_rate,
            "total_runs": self.total_runs,
            "failure_count": self.failure_count,
            "confidence": self.confidence,
            "first_seen": _iso(self.first_seen),
            "last_seen": _iso(self.last_seen),
            "is_active": self.is_active,
            "is_quarantined": self.is_quarantined,
            "quarantined_at": _iso(self.quarantined_at),
            "state": self.state.value,
            "classification": self.classification.value,
            "failure_pattern": self.failure_pattern.value if self.failure_pattern else None,
            "day_variance": self.day_variance,
            "unquarantined_at": _iso(self.unquarantined_at),
            "premature_unquarantines": self.premature_unquarantines,
            "version": self.version,
        }


@dataclass(frozen=True)
class QuarantineEvent:
    """Immutable audit entry. Written only when the quarantined flag changes
    or when an operator acts manually."""

    identity: TestIdentity
    action: QuarantineAction
    triggered_by: TriggeredBy
    reason: str
    timestamp: datetime
    confidence: float
    policy_violation: bool = False
    event_id: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            "id": self.event_id,
            "identity": self.identity.key,
            "action": self.action.value,
            "triggered_by": self.triggered_by.value,
            "reason": self.reason,
            "timestamp": self.timestamp.isoformat(),
            "confidence": self.confidence,
            "policy_violation": self.policy_violation,
        }


@dataclass(frozen=True)
class LifecycleNotification:
    """Payload handed to the notification collaborator on every transition."""

    identity: TestIdentity
    action: str
    reason: str
    confidence: float
    from_state: LifecycleState
    to_state: LifecycleState
    timestamp: datetime = field(default_factory=utcnow)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None
