"""Deterministic recommendation text for a project's impact."""

from __future__ import annotations

from typing import Sequence

from ..config import ImpactPolicy
from .models import ImpactRecord


def generate_recommendations(
    tests: Sequence[ImpactRecord],
    total: ImpactRecord,
    policy: ImpactPolicy,
) -> list[str]:
    recs: list[str] = []

    high_cost = [t for t in tests if t.estimated_cost_impact > policy.priority_cost_threshold]
    if high_cost:
        cost = round(sum(t.estimated_cost_impact for t in high_cost))
        recs.append(
            f"Priority: Fix {len(high_cost)} high-cost flaky tests that are causing ${cost} in impact"
        )

    blockers = [t for t in tests if t.delayed_deployments > 0]
    if blockers:
        recs.append(
            f"Critical: {len(blockers)} tests are blocking deployments. "
            "Consider quarantining or implementing intelligent retry strategies."
        )

    if total.velocity_reduction > policy.velocity_threshold:
        recs.append(
            f"Team velocity is reduced by {round(total.velocity_reduction)}%. "
            "Focus on fixing tests with highest failure rates first."
        )

    if total.infrastructure_cost > policy.infrastructure_cost_threshold:
        recs.append(
            f"CI/CD costs could be reduced by ${round(total.infrastructure_cost)} "
            "by fixing flaky tests and optimizing retry strategies."
        )

    if total.technical_debt_hours > policy.technical_debt_threshold:
        recs.append(
            f"Flaky tests are adding {round(total.technical_debt_hours)} hours of technical debt. "
            "Implement systematic fixing process."
        )
    return recs
