"""Impact record types."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from ..models import TestIdentity, utcnow


class ImpactScope(Enum):
    TEST = "test"
    PROJECT = "project"


class ImpactStatus(Enum):
    """OK, nothing to measure yet, or the calculation itself failed."""

    OK = "ok"
    NO_DATA = "no_data"
    ERROR = "error"


# Summed linearly when aggregating a project.
ADDITIVE_FIELDS = (
    "failure_count",
    "investigation_time",
    "fix_time",
    "ci_time_wasted",
    "total_time_wasted",
    "developer_hours_lost",
    "developer_cost",
    "infrastructure_cost",
    "deployment_delay_cost",
    "estimated_cost_impact",
    "delayed_deployments",
    "blocked_merge_requests",
    "technical_debt_hours",
    "false_alerts",
    "customer_impacting_bugs",
)


@dataclass(frozen=True)
class ImpactRecord:
    """Time and cost attributed to flakiness for one test or one project.

    Units: ``investigation_time``, ``fix_time`` and ``total_time_wasted``
    are minutes; ``ci_time_wasted`` is seconds of CI execution;
    ``velocity_reduction`` is a percentage; costs are dollars.

    Records are never merged field by field: recomputing the same
    (project, scope, identity, period) replaces the stored record whole.
    """

    project_id: str
    scope: ImpactScope
    period_start: datetime
    period_end: datetime
    identity: Optional[TestIdentity] = None
    status: ImpactStatus = ImpactStatus.OK
    test_count: int = 0
    failure_count: int = 0
    failure_rate: float = 0.0
    investigation_time: float = 0.0
    fix_time: float = 0.0
    ci_time_wasted: float = 0.0
    total_time_wasted: float = 0.0
    developer_hours_lost: float = 0.0
    developer_cost: float = 0.0
    infrastructure_cost: float = 0.0
    deployment_delay_cost: float = 0.0
    estimated_cost_impact: float = 0.0
    delayed_deployments: int = 0
    blocked_merge_requests: int = 0
    velocity_reduction: float = 0.0
    production_deployment_risk: float = 0.0
    technical_debt_hours: float = 0.0
    false_alerts: int = 0
    customer_impacting_bugs: int = 0
    recommendations: tuple[str, ...] = ()
    error: Optional[str] = None
    calculated_at: datetime = field(default_factory=utcnow)
    record_id: Optional[int] = None

    @property
    def ci_minutes_wasted(self) -> float:
        return self.ci_time_wasted / 60

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["scope"] = self.scope.value
        data["status"] = self.status.value
        data["identity"] = self.identity.key if self.identity else None
        data["period_start"] = self.period_start.isoformat()
        data["period_end"] = self.period_end.isoformat()
        data["calculated_at"] = self.calculated_at.isoformat()
        data["recommendations"] = list(self.recommendations)
        data["ci_minutes_wasted"] = self.ci_minutes_wasted
        return data


@dataclass
class ProjectImpact:
    """Aggregate for a project plus its per-test breakdown."""

    total: ImpactRecord
    tests: list[ImpactRecord] = field(default_factory=list)
    quarantine_savings: Optional["QuarantineSavings"] = None

    def top_tests(self, n: int = 5) -> list[ImpactRecord]:
        ranked = [t for t in self.tests if t.status is ImpactStatus.OK]
        return sorted(ranked, key=lambda t: t.estimated_cost_impact, reverse=True)[:n]


@dataclass(frozen=True)
class QuarantineSavings:
    """Cost avoided because failures happened while tests were quarantined."""

    failures_absorbed: int = 0
    ci_minutes_avoided: float = 0.0
    developer_hours_avoided: float = 0.0
    cost_avoided: float = 0.0
