"""Secondary signals over an outcome window.

None of these feed the failure rate; they type the failure pattern and
drive recommendations and the lifecycle's consecutive-failure rule.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import timedelta
from typing import Sequence

import numpy as np

from ..models import FailurePattern, OutcomeRecord, OutcomeStatus

TIMING_KEYWORDS = ("timeout", "race condition", "timing", "wait", "async")
NETWORK_KEYWORDS = ("network", "connection")
CLUSTER_GAP = timedelta(hours=24)

RECOMMENDATIONS = {
    FailurePattern.TIMING_SENSITIVE: [
        "Add explicit waits or increase timeout values",
        "Review async operations and race conditions",
        "Consider using deterministic test data",
    ],
    FailurePattern.ENVIRONMENT_DEPENDENT: [
        "Check test environment setup and teardown",
        "Verify dependencies and external services",
        "Ensure proper test isolation",
    ],
    FailurePattern.INTERMITTENT: [
        "Review test logic for non-deterministic behavior",
        "Check for shared state between tests",
        "Increase test stability with retry mechanisms",
    ],
    FailurePattern.UNKNOWN: [
        "Investigate test for non-deterministic behavior",
        "Consider adding logging for better debugging",
    ],
}


def day_success_variance(runs: Sequence[OutcomeRecord]) -> float:
    """Population variance of per-UTC-day success rates (0 with < 2 days)."""
    passes: dict = defaultdict(int)
    totals: dict = defaultdict(int)
    for r in runs:
        day = r.timestamp.date()
        totals[day] += 1
        if r.status is OutcomeStatus.PASSED:
            passes[day] += 1
    if len(totals) < 2:
        return 0.0
    rates = np.array([passes[d] / totals[d] for d in sorted(totals)])
    return float(np.var(rates))


def branch_failure_rates(runs: Sequence[OutcomeRecord]) -> dict[str, float]:
    failures: dict[str, int] = defaultdict(int)
    totals: dict[str, int] = defaultdict(int)
    for r in runs:
        branch = r.branch or "unknown"
        totals[branch] += 1
        if r.is_failure:
            failures[branch] += 1
    return {b: failures[b] / totals[b] for b in totals}


def branch_variance(rates: dict[str, float]) -> float:
    if len(rates) < 2:
        return 0.0
    return float(np.var(np.array(list(rates.values()))))


def has_temporal_clustering(runs: Sequence[OutcomeRecord]) -> bool:
    """True when two consecutive failures are less than 24 hours apart."""
    failed = [r.timestamp for r in runs if r.is_failure]
    return any(b - a < CLUSTER_GAP for a, b in zip(failed, failed[1:]))


def consecutive_failures(runs: Sequence[OutcomeRecord]) -> tuple[int, int]:
    """(longest failure streak, failure streak at the end of the window)."""
    longest = current = 0
    for r in runs:
        if r.is_failure:
            current += 1
            longest = max(longest, current)
        else:
            current = 0
    return longest, current


def identify_pattern(
    runs: Sequence[OutcomeRecord],
    branch_var: float,
    max_consecutive: int,
    variance_threshold: float = 0.1,
    consecutive_threshold: int = 3,
) -> FailurePattern:
    if not any(r.is_failure for r in runs):
        return FailurePattern.UNKNOWN
    if branch_var > variance_threshold:
        return FailurePattern.ENVIRONMENT_DEPENDENT
    if max_consecutive >= consecutive_threshold:
        return FailurePattern.TIMING_SENSITIVE
    if _any_message_contains(runs, TIMING_KEYWORDS):
        return FailurePattern.TIMING_SENSITIVE
    return FailurePattern.INTERMITTENT


def recommendations_for(
    pattern: FailurePattern,
    failure_rate: float,
    runs: Sequence[OutcomeRecord],
    high_failure_rate: float = 0.3,
) -> list[str]:
    recs = list(RECOMMENDATIONS[pattern])
    if failure_rate > high_failure_rate:
        recs.append("High failure rate - prioritize fixing this test")
    if _any_message_contains(runs, NETWORK_KEYWORDS):
        recs.append("Network-related failures detected - add retry logic for network calls")
    return recs


def _any_message_contains(runs: Sequence[OutcomeRecord], keywords: Sequence[str]) -> bool:
    for r in runs:
        if r.error_message:
            msg = r.error_message.lower()
            if any(kw in msg for kw in keywords):
                return True
    return False
