"""Per-test impact heuristics.

The time heuristics are additive rules of thumb, not learned values:

    investigation_time = 15 (+30 if rate > 0.5) (+45 if rate > 0.8) (+20 if confidence < 0.7)
    fix_time           = 45 (+60 if rate > 0.7) (+30 if failures > 20)
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional

from ..config import ImpactPolicy, TeamConfiguration
from ..models import FlakyPattern, OutcomeRecord, OutcomeStatus, TestIdentity
from .models import ImpactRecord, ImpactScope, ImpactStatus


@dataclass(frozen=True)
class TestStats:
    """Failure statistics of one test over an impact period."""

    __test__ = False

    identity: TestIdentity
    total_runs: int
    failure_count: int
    failure_rate: float
    confidence: float
    average_execution_time: float  # seconds

    @classmethod
    def from_outcomes(
        cls,
        identity: TestIdentity,
        outcomes: Iterable[OutcomeRecord],
        saturation: int = 10,
    ) -> "TestStats":
        runs = [r for r in outcomes if r.status in (OutcomeStatus.PASSED, OutcomeStatus.FAILED)]
        total = len(runs)
        failures = sum(1 for r in runs if r.is_failure)
        durations = [r.duration or 0.0 for r in runs]
        return cls(
            identity=identity,
            total_runs=total,
            failure_count=failures,
            failure_rate=failures / total if total else 0.0,
            confidence=min(1.0, total / saturation) if saturation else 1.0,
            average_execution_time=sum(durations) / total if total else 0.0,
        )

    @classmethod
    def from_pattern(
        cls,
        pattern: FlakyPattern,
        outcomes: Iterable[OutcomeRecord],
    ) -> "TestStats":
        """Rate and confidence from the classifier's pattern; failure count
        and execution time from the runs inside the impact period."""
        runs = [r for r in outcomes if r.status in (OutcomeStatus.PASSED, OutcomeStatus.FAILED)]
        durations = [r.duration or 0.0 for r in runs]
        return cls(
            identity=pattern.identity,
            total_runs=len(runs),
            failure_count=sum(1 for r in runs if r.is_failure),
            failure_rate=pattern.failure_rate,
            confidence=pattern.confidence,
            average_execution_time=sum(durations) / len(runs) if runs else 0.0,
        )


def investigation_time(failure_rate: float, confidence: float) -> float:
    minutes = 15.0
    if failure_rate > 0.5:
        minutes += 30
    if failure_rate > 0.8:
        minutes += 45
    if confidence < 0.7:
        minutes += 20
    return minutes


def fix_time(failure_rate: float, failure_count: int) -> float:
    minutes = 45.0
    if failure_rate > 0.7:
        minutes += 60
    if failure_count > 20:
        minutes += 30
    return minutes


def estimate_test_impact(
    stats: TestStats,
    team: TeamConfiguration,
    period_start: datetime,
    period_end: datetime,
    policy: Optional[ImpactPolicy] = None,
    calculated_at: Optional[datetime] = None,
) -> ImpactRecord:
    """Impact of one test's flakiness over a period.

    A test with no failures in the period yields a NO_DATA record with
    zero costs rather than the fixed investigation/fix overhead.
    """
    policy = policy or ImpactPolicy()
    extra = {"calculated_at": calculated_at} if calculated_at else {}
    if stats.failure_count == 0:
        return ImpactRecord(
            project_id=stats.identity.project_id,
            scope=ImpactScope.TEST,
            period_start=period_start,
            period_end=period_end,
            identity=stats.identity,
            status=ImpactStatus.NO_DATA,
            failure_rate=stats.failure_rate,
            **extra,
        )

    rate = stats.failure_rate
    failures = stats.failure_count
    investigation = investigation_time(rate, stats.confidence)
    fixing = fix_time(rate, failures)
    ci_time = failures * stats.average_execution_time
    total_minutes = investigation + fixing + ci_time / 60

    developer_cost = (total_minutes / 60) * team.hourly_rate
    # Literal formula: CI seconds × per-minute cost.
    infrastructure_cost = ci_time * team.ci_cost_per_minute
    delayed = math.floor(failures * policy.deployment_delay_factor)
    blocked = math.floor(failures * policy.blocked_merge_request_factor)
    delay_cost = delayed * team.cost_per_deployment_delay

    return ImpactRecord(
        project_id=stats.identity.project_id,
        scope=ImpactScope.TEST,
        period_start=period_start,
        period_end=period_end,
        identity=stats.identity,
        test_count=1,
        failure_count=failures,
        failure_rate=rate,
        investigation_time=investigation,
        fix_time=fixing,
        ci_time_wasted=ci_time,
        total_time_wasted=total_minutes,
        developer_hours_lost=total_minutes / 60,
        developer_cost=developer_cost,
        infrastructure_cost=infrastructure_cost,
        deployment_delay_cost=delay_cost,
        estimated_cost_impact=developer_cost + infrastructure_cost + delay_cost,
        delayed_deployments=delayed,
        blocked_merge_requests=blocked,
        velocity_reduction=min(rate * 20, policy.per_test_velocity_cap),
        production_deployment_risk=min(rate * 0.5, policy.per_test_risk_cap),
        technical_debt_hours=fixing / 60,
        false_alerts=math.floor(failures * policy.false_alert_factor),
        customer_impacting_bugs=math.floor(failures * policy.customer_bug_factor),
        **extra,
    )
