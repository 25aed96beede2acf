"""Project-level aggregation of per-test impact records."""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from typing import Optional, Sequence

from ..config import ImpactPolicy
from .models import ADDITIVE_FIELDS, ImpactRecord, ImpactScope, ImpactStatus
from .recommendations import generate_recommendations


def aggregate_project(
    project_id: str,
    tests: Sequence[ImpactRecord],
    period_start: datetime,
    period_end: datetime,
    policy: Optional[ImpactPolicy] = None,
    calculated_at: Optional[datetime] = None,
) -> ImpactRecord:
    """Sum per-test records into one project record.

    Every field is summed linearly except velocity reduction and
    deployment risk, which are capped. Only OK records contribute; with
    none the project record is NO_DATA.
    """
    policy = policy or ImpactPolicy()
    contributing = [t for t in tests if t.status is ImpactStatus.OK]
    total = ImpactRecord(
        project_id=project_id,
        scope=ImpactScope.PROJECT,
        period_start=period_start,
        period_end=period_end,
        status=ImpactStatus.OK if contributing else ImpactStatus.NO_DATA,
        **({"calculated_at": calculated_at} if calculated_at else {}),
    )
    if not contributing:
        return total

    sums = {name: sum(getattr(t, name) for t in contributing) for name in ADDITIVE_FIELDS}
    velocity = 0.0
    risk = 0.0
    for t in contributing:
        velocity = min(velocity + t.velocity_reduction, policy.aggregate_velocity_cap)
        risk = min(risk + t.production_deployment_risk, policy.aggregate_risk_cap)

    mean_rate = sum(t.failure_rate for t in contributing) / len(contributing)
    total = replace(
        total,
        test_count=len(contributing),
        failure_rate=mean_rate,
        velocity_reduction=velocity,
        production_deployment_risk=risk,
        **sums,
    )
    return replace(total, recommendations=tuple(generate_recommendations(contributing, total, policy)))
