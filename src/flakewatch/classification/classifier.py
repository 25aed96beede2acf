"""Flaky classifier: outcome window → failure rate, confidence, verdict.

``classify`` is a pure function of its input window and the configured
thresholds. It never raises for "no signal yet": windows below the
minimum sample size come back as ``Classification.UNDETERMINED`` and an
empty window as ``Classification.NO_DATA``.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Iterable, Optional

from ..config import ClassifierConfig
from ..exceptions import ErrorCode, FlakewatchIssue, InsufficientDataError
from ..logging_config import get_logger
from ..models import (
    Classification,
    FailurePattern,
    FlakyPattern,
    OutcomeRecord,
    OutcomeStatus,
    TestIdentity,
    ensure_utc,
)
from . import patterns
from .validation import partition_valid

logger = get_logger(__name__)


@dataclass
class ClassificationResult:
    """Everything the classifier learned about one identity's window."""

    identity: TestIdentity
    classification: Classification
    failure_rate: float = 0.0
    total_runs: int = 0
    failure_count: int = 0
    pass_count: int = 0
    skipped_count: int = 0
    confidence: float = 0.0
    first_seen: Optional[datetime] = None
    last_seen: Optional[datetime] = None
    window_start: Optional[datetime] = None
    window_end: Optional[datetime] = None
    average_duration: Optional[float] = None  # seconds, non-skipped runs

    # Secondary signals
    day_variance: float = 0.0
    branch_rates: dict[str, float] = field(default_factory=dict)
    branch_variance: float = 0.0
    clustered_failures: bool = False
    max_consecutive_failures: int = 0
    trailing_consecutive_failures: int = 0
    recent_failure_rate: float = 0.0
    recent_runs: int = 0

    failure_pattern: Optional[FailurePattern] = None
    recommendations: list[str] = field(default_factory=list)
    issues: list[FlakewatchIssue] = field(default_factory=list)
    insufficient_data: Optional[InsufficientDataError] = field(default=None, repr=False, compare=False)

    @property
    def is_active(self) -> bool:
        return self.classification is Classification.FLAKY

    @property
    def is_determined(self) -> bool:
        return self.classification not in (Classification.NO_DATA, Classification.UNDETERMINED)

    def require_determined(self) -> "ClassificationResult":
        """Return self, or raise the attached ``InsufficientDataError`` for a
        NO_DATA or UNDETERMINED window."""
        if self.insufficient_data is not None:
            raise self.insufficient_data
        return self


def classify(
    identity: TestIdentity,
    outcomes: Iterable[OutcomeRecord],
    config: Optional[ClassifierConfig] = None,
    now: Optional[datetime] = None,
    since: Optional[datetime] = None,
) -> ClassificationResult:
    """Classify one identity from its outcome history.

    Args:
        identity: The test being classified
        outcomes: Outcome records; other identities and malformed records
            are skipped and reported in ``issues``
        config: Classifier thresholds (defaults if omitted)
        now: End of the observation window. Defaults to the latest valid
            timestamp, which keeps the result a pure function of its input.
        since: Optional lower bound that narrows the window, used to start
            from fresh evidence after a test leaves quarantine

    Returns:
        ClassificationResult. Never raises for thin or empty windows.
    """
    config = config or ClassifierConfig()
    valid, issues = partition_valid(outcomes, identity=identity)
    valid = [
        r if r.timestamp.tzinfo is not None else replace(r, timestamp=ensure_utc(r.timestamp))
        for r in valid
    ]

    if now is None:
        now = max((r.timestamp for r in valid), default=None)
    else:
        now = ensure_utc(now)

    if now is None:
        return ClassificationResult(
            identity,
            Classification.NO_DATA,
            issues=issues,
            insufficient_data=InsufficientDataError("no runs", config.minimum_sample_size),
        )

    start = now - timedelta(days=config.window_days)
    if since is not None:
        start = max(start, ensure_utc(since))
    window = sorted(
        (r for r in valid if start <= r.timestamp <= now),
        key=lambda r: r.timestamp,
    )
    runs = [r for r in window if r.status is not OutcomeStatus.SKIPPED]
    skipped = len(window) - len(runs)
    total = len(runs)

    result = ClassificationResult(
        identity,
        Classification.NO_DATA,
        skipped_count=skipped,
        window_start=start,
        window_end=now,
        issues=issues,
    )
    if total == 0:
        result.insufficient_data = InsufficientDataError("no runs in window", config.minimum_sample_size)
        return result

    failures = sum(1 for r in runs if r.is_failure)
    failure_rate = failures / total
    durations = [r.duration for r in runs if r.duration is not None]

    result.total_runs = total
    result.failure_count = failures
    result.pass_count = total - failures
    result.failure_rate = failure_rate
    result.confidence = min(1.0, total / config.confidence_saturation_size)
    result.first_seen = runs[0].timestamp
    result.last_seen = runs[-1].timestamp
    result.average_duration = sum(durations) / len(durations) if durations else None

    result.day_variance = patterns.day_success_variance(runs)
    result.branch_rates = patterns.branch_failure_rates(runs)
    result.branch_variance = patterns.branch_variance(result.branch_rates)
    result.clustered_failures = patterns.has_temporal_clustering(runs)
    longest, trailing = patterns.consecutive_failures(runs)
    result.max_consecutive_failures = longest
    result.trailing_consecutive_failures = trailing

    recent_start = now - timedelta(days=config.recent_window_days)
    recent = [r for r in runs if r.timestamp >= recent_start]
    result.recent_runs = len(recent)
    if recent:
        result.recent_failure_rate = sum(1 for r in recent if r.is_failure) / len(recent)

    if total < config.minimum_sample_size:
        result.classification = Classification.UNDETERMINED
        result.insufficient_data = InsufficientDataError(f"{total} runs", config.minimum_sample_size)
        result.issues.append(
            FlakewatchIssue(
                message=str(result.insufficient_data),
                code=ErrorCode.FW110,
                context={"identity": identity.key, "total_runs": total},
                recovery_hint="Wait for more CI runs",
            )
        )
        logger.debug(f"{identity.key}: undetermined ({total} runs)")
        return result

    result.classification = _verdict(failure_rate, config)
    result.failure_pattern = patterns.identify_pattern(
        runs,
        result.branch_variance,
        longest,
        variance_threshold=config.branch_variance_threshold,
        consecutive_threshold=config.timing_consecutive_threshold,
    )
    if result.classification is Classification.FLAKY:
        result.recommendations = patterns.recommendations_for(
            result.failure_pattern, failure_rate, runs, config.high_failure_rate
        )
    logger.debug(
        f"{identity.key}: {result.classification.value} "
        f"rate={failure_rate:.3f} confidence={result.confidence:.2f}"
    )
    return result


def _verdict(failure_rate: float, config: ClassifierConfig) -> Classification:
    # Band is inclusive on both ends; only rates strictly above it are broken.
    if failure_rate < config.min_flaky_rate:
        return Classification.STABLE
    if failure_rate > config.max_flaky_rate:
        return Classification.BROKEN
    return Classification.FLAKY


def apply_classification(
    existing: Optional[FlakyPattern],
    result: ClassificationResult,
    now: Optional[datetime] = None,
) -> Optional[FlakyPattern]:
    """Fold a classification into the persisted pattern.

    Statistics are always replaced wholesale from the result, never
    adjusted incrementally. Lifecycle fields are left untouched.

    An empty window leaves ``existing`` as it is. Returns None when no
    pattern should exist yet: a test that has never been flaky and is not
    flaky now.
    """
    if result.classification is Classification.NO_DATA:
        return existing
    if existing is None and result.classification is not Classification.FLAKY:
        return None

    base = existing or FlakyPattern(identity=result.identity, first_seen=result.first_seen)
    updated = replace(
        base,
        failure_rate=result.failure_rate,
        total_runs=result.total_runs,
        failure_count=result.failure_count,
        confidence=result.confidence,
        last_seen=result.last_seen or base.last_seen,
        day_variance=result.day_variance,
        failure_pattern=result.failure_pattern or base.failure_pattern,
        updated_at=now or result.window_end,
    )
    if base.first_seen is None or (
        result.first_seen is not None and result.first_seen < base.first_seen
    ):
        updated.first_seen = result.first_seen

    # Undetermined and empty windows must not move the active flag.
    if result.is_determined:
        updated.classification = result.classification
        updated.is_active = result.is_active
    return updated


def is_inactive(pattern: FlakyPattern, now: datetime, config: ClassifierConfig) -> bool:
    """True when a pattern has seen no runs for ``inactivity_days``."""
    if pattern.last_seen is None:
        return False
    return ensure_utc(now) - ensure_utc(pattern.last_seen) >= timedelta(days=config.inactivity_days)
