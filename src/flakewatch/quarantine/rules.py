"""Auto-quarantine rules.

Each rule looks at a flaky classification and returns a reason string
when it fires, else None. Rules are checked in priority order and the
first reason wins.
"""

from __future__ import annotations

from typing import Callable, Optional

from ..classification import ClassificationResult
from ..config import HIGH_IMPACT_KEYWORDS, QuarantinePolicy
from ..models import Classification, TestIdentity

Rule = Callable[[TestIdentity, ClassificationResult, QuarantinePolicy], Optional[str]]


def is_critical_path(identity: TestIdentity, policy: QuarantinePolicy) -> bool:
    """Explicitly listed tests or suites, or high-impact keywords."""
    if identity.test_name in policy.critical_tests or identity.key in policy.critical_tests:
        return True
    if identity.suite and identity.suite in policy.critical_suites:
        return True
    if policy.detect_high_impact_keywords:
        haystack = f"{identity.test_name} {identity.suite or ''}".lower()
        return any(kw in haystack for kw in HIGH_IMPACT_KEYWORDS)
    return False


def high_failure_rate(
    identity: TestIdentity, result: ClassificationResult, policy: QuarantinePolicy
) -> Optional[str]:
    if (
        result.failure_rate >= policy.auto_quarantine_threshold
        and result.confidence >= policy.auto_quarantine_confidence
    ):
        return (
            f"Failure rate {result.failure_rate:.1%} exceeds threshold "
            f"{policy.auto_quarantine_threshold:.1%} (confidence {result.confidence:.2f})"
        )
    return None


def consecutive_failures(
    identity: TestIdentity, result: ClassificationResult, policy: QuarantinePolicy
) -> Optional[str]:
    if result.trailing_consecutive_failures >= policy.consecutive_failure_threshold:
        return f"{result.trailing_consecutive_failures} consecutive failures"
    return None


def critical_path(
    identity: TestIdentity, result: ClassificationResult, policy: QuarantinePolicy
) -> Optional[str]:
    if result.failure_rate >= policy.critical_path_threshold and is_critical_path(identity, policy):
        return (
            f"Critical-path test failing at {result.failure_rate:.1%} "
            f"(threshold {policy.critical_path_threshold:.1%})"
        )
    return None


def rapid_degradation(
    identity: TestIdentity, result: ClassificationResult, policy: QuarantinePolicy
) -> Optional[str]:
    if not policy.rapid_degradation_enabled:
        return None
    if (
        result.recent_failure_rate > result.failure_rate * policy.rapid_degradation_factor
        and result.recent_runs >= policy.rapid_degradation_min_runs
        and result.confidence >= policy.rapid_degradation_confidence
    ):
        return (
            f"Rapid degradation: recent failure rate {result.recent_failure_rate:.1%} "
            f"vs overall {result.failure_rate:.1%}"
        )
    return None


AUTO_QUARANTINE_RULES: tuple[Rule, ...] = (
    high_failure_rate,
    consecutive_failures,
    critical_path,
    rapid_degradation,
)


def auto_quarantine_reason(
    identity: TestIdentity, result: ClassificationResult, policy: QuarantinePolicy
) -> Optional[str]:
    """First firing rule's reason. Only flaky verdicts are eligible."""
    if result.classification is not Classification.FLAKY:
        return None
    for rule in AUTO_QUARANTINE_RULES:
        reason = rule(identity, result, policy)
        if reason:
            return reason
    return None
