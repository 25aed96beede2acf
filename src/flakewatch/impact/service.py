"""Impact estimation against a sample store.

``ImpactEstimator.estimate_impact`` computes one test's record or a whole
project's aggregate for a period, persisting what it computes. A
multi-project batch never stops on a failing project: that project gets
an ERROR record instead.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Iterable, Optional, Union

from ..config import EngineConfig, TeamConfiguration
from ..exceptions import ErrorCode, FlakewatchIssue
from ..logging_config import get_logger
from ..models import FlakyPattern, TestIdentity, ensure_utc, utcnow
from .aggregate import aggregate_project
from .estimator import TestStats, estimate_test_impact
from .models import ImpactRecord, ImpactScope, ImpactStatus, ProjectImpact, QuarantineSavings

if TYPE_CHECKING:
    from ..storage.adapter import SampleStore

logger = get_logger(__name__)

Period = tuple[datetime, datetime]


class ImpactEstimator:
    """Per-test and per-project impact over a period."""

    def __init__(self, store: "SampleStore", config: Optional[EngineConfig] = None):
        self.store = store
        self.config = config or EngineConfig()

    def default_period(self, now: Optional[datetime] = None) -> Period:
        end = ensure_utc(now or utcnow())
        return end - timedelta(days=self.config.classifier.window_days), end

    def estimate_impact(
        self,
        target: Union[TestIdentity, str],
        team_config: Optional[TeamConfiguration] = None,
        period: Optional[Period] = None,
        persist: bool = True,
    ) -> Union[ImpactRecord, ProjectImpact]:
        """Impact of one test (``TestIdentity``) or a project (its id).

        ``team_config`` defaults to the project's configured team, or the
        documented defaults when none is configured.
        """
        start, end = (ensure_utc(p) for p in (period or self.default_period()))
        if isinstance(target, TestIdentity):
            team = team_config or self.config.team_for(target.project_id)
            record = self.estimate_test(target, team, start, end)
            if persist:
                record = self.store.save_impact(record)
            return record

        team = team_config or self.config.team_for(target)
        result = self.estimate_project(target, team, start, end)
        if persist:
            saved = self.store.save_impacts([*result.tests, result.total])
            result.tests, result.total = saved[:-1], saved[-1]
        return result

    def estimate_test(
        self,
        identity: TestIdentity,
        team: TeamConfiguration,
        start: datetime,
        end: datetime,
        pattern: Optional[FlakyPattern] = None,
    ) -> ImpactRecord:
        """Impact of one tracked flaky test.

        A test the classifier never flagged has no pattern and yields a
        NO_DATA record: stable and broken tests are not flakiness cost.
        """
        pattern = pattern or self.store.get_pattern(identity)
        if pattern is None:
            return ImpactRecord(
                project_id=identity.project_id,
                scope=ImpactScope.TEST,
                period_start=start,
                period_end=end,
                identity=identity,
                status=ImpactStatus.NO_DATA,
            )
        runs = self.store.outcomes(identity, since=start, until=end)
        return estimate_test_impact(TestStats.from_pattern(pattern, runs), team, start, end, self.config.impact)

    def flaky_patterns(self, project_id: str, since: datetime) -> list[FlakyPattern]:
        """Patterns last seen since ``since``, plus anything still quarantined."""
        return [
            p
            for p in self.store.patterns(project_id=project_id)
            if p.is_quarantined
            or (p.last_seen is not None and ensure_utc(p.last_seen) >= since)
        ]

    def estimate_project(
        self,
        project_id: str,
        team: TeamConfiguration,
        start: datetime,
        end: datetime,
    ) -> ProjectImpact:
        tests = [
            self.estimate_test(pattern.identity, team, start, end, pattern=pattern)
            for pattern in self.flaky_patterns(project_id, start)
        ]
        total = aggregate_project(project_id, tests, start, end, self.config.impact)
        savings = self.quarantine_savings(project_id, team, start, end)
        logger.info(
            f"Impact for {project_id}: {total.test_count} contributing tests, "
            f"${total.estimated_cost_impact:,.0f}"
        )
        return ProjectImpact(total=total, tests=tests, quarantine_savings=savings)

    def estimate_projects(
        self,
        project_ids: Optional[Iterable[str]] = None,
        period: Optional[Period] = None,
        persist: bool = True,
    ) -> tuple[dict[str, Union[ProjectImpact, ImpactRecord]], list[FlakewatchIssue]]:
        """Estimate many projects; a failure becomes that project's ERROR record."""
        start, end = (ensure_utc(p) for p in (period or self.default_period()))
        results: dict[str, Union[ProjectImpact, ImpactRecord]] = {}
        issues: list[FlakewatchIssue] = []
        for project_id in project_ids if project_ids is not None else self.store.projects():
            try:
                results[project_id] = self.estimate_impact(project_id, period=(start, end), persist=persist)
            except Exception as e:
                logger.error(f"Impact calculation failed for {project_id}: {e}")
                error = ImpactRecord(
                    project_id=project_id,
                    scope=ImpactScope.PROJECT,
                    period_start=start,
                    period_end=end,
                    status=ImpactStatus.ERROR,
                    error=str(e),
                )
                if persist:
                    try:
                        error = self.store.save_impact(error)
                    except Exception as store_error:
                        logger.error(f"Could not record impact error for {project_id}: {store_error}")
                results[project_id] = error
                issues.append(
                    FlakewatchIssue(
                        message=f"Impact calculation failed for {project_id}: {e}",
                        code=ErrorCode.FW300,
                        context={"project": project_id},
                        recovery_hint="Other projects were processed; rerun this one after fixing the cause",
                    )
                )
        return results, issues

    def quarantine_savings(
        self,
        project_id: str,
        team: TeamConfiguration,
        start: datetime,
        end: datetime,
    ) -> QuarantineSavings:
        """Failures that landed while a test was quarantined, priced as the
        triage and CI time they would otherwise have cost."""
        from ..quarantine.analytics import quarantine_intervals

        spans = quarantine_intervals(self.store.events(project_id=project_id), now=end)
        absorbed = 0
        ci_seconds = 0.0
        for identity, intervals in spans.items():
            clipped = [(max(a, start), min(b, end)) for a, b in intervals if b >= start and a <= end]
            if not clipped:
                continue
            for run in self.store.outcomes(identity, since=start, until=end):
                ts = ensure_utc(run.timestamp)
                if run.is_failure and any(a <= ts <= b for a, b in clipped):
                    absorbed += 1
                    ci_seconds += run.duration or 0.0

        ci_minutes = ci_seconds / 60
        developer_hours = absorbed * self.config.impact.triage_minutes_per_failure / 60
        return QuarantineSavings(
            failures_absorbed=absorbed,
            ci_minutes_avoided=ci_minutes,
            developer_hours_avoided=developer_hours,
            cost_avoided=developer_hours * team.hourly_rate + ci_minutes * team.ci_cost_per_minute,
        )
