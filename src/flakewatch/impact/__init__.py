"""Impact estimation: per-test heuristics, project aggregation, trends."""

from .aggregate import aggregate_project
from .estimator import TestStats, estimate_test_impact, fix_time, investigation_time
from .models import ImpactRecord, ImpactScope, ImpactStatus, ProjectImpact, QuarantineSavings
from .recommendations import generate_recommendations
from .service import ImpactEstimator
from .trends import TrendJob, TrendPoint, TrendResult, is_flaky_day

__all__ = [
    "ImpactEstimator",
    "ImpactRecord",
    "ImpactScope",
    "ImpactStatus",
    "ProjectImpact",
    "QuarantineSavings",
    "TestStats",
    "TrendJob",
    "TrendPoint",
    "TrendResult",
    "aggregate_project",
    "estimate_test_impact",
    "fix_time",
    "generate_recommendations",
    "investigation_time",
    "is_flaky_day",
]
