"""Daily impact trend recomputation.

Every day in the window is recomputed from raw outcomes; nothing is
rolled up incrementally. A day's test records and its project record
are written in one all-or-nothing call, so cancelling or failing midway
leaves earlier days complete and later days untouched.
"""

from __future__ import annotations

import threading
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Optional

from ..config import ClassifierConfig, EngineConfig, TeamConfiguration
from ..exceptions import ErrorCode, FlakewatchIssue
from ..logging_config import get_logger
from ..models import OutcomeRecord, OutcomeStatus, TestIdentity, ensure_utc, utcnow
from .aggregate import aggregate_project
from .estimator import TestStats, estimate_test_impact
from .models import ImpactRecord, ImpactStatus

if TYPE_CHECKING:
    from ..storage.adapter import SampleStore

logger = get_logger(__name__)

DIRECTION_TOLERANCE = 0.05


@dataclass
class TrendPoint:
    day: datetime
    flaky_tests: int
    failure_count: int
    estimated_cost_impact: float
    velocity_reduction: float
    status: ImpactStatus

    def to_dict(self) -> dict:
        return {
            "day": self.day.date().isoformat(),
            "flaky_tests": self.flaky_tests,
            "failure_count": self.failure_count,
            "estimated_cost_impact": self.estimated_cost_impact,
            "velocity_reduction": self.velocity_reduction,
            "status": self.status.value,
        }


@dataclass
class TrendResult:
    project_id: str
    points: list[TrendPoint] = field(default_factory=list)
    failed_days: list[datetime] = field(default_factory=list)
    cancelled: bool = False
    issues: list[FlakewatchIssue] = field(default_factory=list)

    @property
    def direction(self) -> str:
        """Compare mean daily cost of the first and second half of the window."""
        values = [p.estimated_cost_impact for p in self.points]
        if len(values) < 2:
            return "stable"
        half = len(values) // 2
        first = sum(values[:half]) / half
        second = sum(values[half:]) / (len(values) - half)
        if first == 0:
            return "increasing" if second > 0 else "stable"
        change = (second - first) / first
        if abs(change) < DIRECTION_TOLERANCE:
            return "stable"
        return "increasing" if change > 0 else "decreasing"


def is_flaky_day(runs: list[OutcomeRecord], config: ClassifierConfig) -> bool:
    """A test counts as flaky on a day when it both passed and failed
    enough times for its failure rate to sit inside the flaky band."""
    counted = [r for r in runs if r.status in (OutcomeStatus.PASSED, OutcomeStatus.FAILED)]
    failures = sum(1 for r in counted if r.is_failure)
    if len(counted) < config.minimum_sample_size or failures == 0 or failures == len(counted):
        return False
    rate = failures / len(counted)
    return config.min_flaky_rate <= rate <= config.max_flaky_rate


class TrendJob:
    """Recompute one project's daily impact records over a window.

    ``cancel()`` may be called from another thread; the job stops before
    the next day starts.
    """

    def __init__(self, store: "SampleStore", config: Optional[EngineConfig] = None):
        self.store = store
        self.config = config or EngineConfig()
        self._cancelled = threading.Event()

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def run(
        self,
        project_id: str,
        days: int = 30,
        end: Optional[datetime] = None,
        team: Optional[TeamConfiguration] = None,
    ) -> TrendResult:
        team = team or self.config.team_for(project_id)
        end_day = ensure_utc(end or utcnow()).replace(hour=0, minute=0, second=0, microsecond=0)
        first_day = end_day - timedelta(days=days - 1)
        result = TrendResult(project_id=project_id)

        for offset in range(days):
            day = first_day + timedelta(days=offset)
            if self.cancelled:
                result.cancelled = True
                result.issues.append(
                    FlakewatchIssue(
                        message=f"Trend recompute for {project_id} cancelled at {day.date()}",
                        code=ErrorCode.FW302,
                        context={"project": project_id, "day": day.date().isoformat()},
                    )
                )
                logger.info(f"Trend recompute for {project_id} cancelled at {day.date()}")
                break

            point = self._run_day(project_id, day, team, result)
            if point is not None:
                result.points.append(point)

        logger.info(
            f"Trend for {project_id}: {len(result.points)} days computed, "
            f"{len(result.failed_days)} failed"
        )
        return result

    def _run_day(
        self, project_id: str, day: datetime, team: TeamConfiguration, result: TrendResult
    ) -> Optional[TrendPoint]:
        retries = self.config.max_day_retries
        for attempt in range(retries + 1):
            try:
                return self.recompute_day(project_id, day, team)
            except Exception as e:
                if attempt < retries:
                    logger.warning(f"Retrying {project_id} {day.date()} after error: {e}")
                    continue
                logger.error(f"Trend day {day.date()} failed for {project_id}: {e}")
                result.failed_days.append(day)
                result.issues.append(
                    FlakewatchIssue(
                        message=f"Could not recompute {day.date()} for {project_id}: {e}",
                        code=ErrorCode.FW301,
                        context={"project": project_id, "day": day.date().isoformat()},
                        recovery_hint="Rerun the trend job; completed days are kept",
                    )
                )
        return None

    def recompute_day(self, project_id: str, day: datetime, team: TeamConfiguration) -> TrendPoint:
        """Recompute and persist one day's records. Raises on failure."""
        start = day
        end = day + timedelta(days=1) - timedelta(microseconds=1)
        by_identity: dict[TestIdentity, list[OutcomeRecord]] = defaultdict(list)
        for run in self.store.project_outcomes(project_id, since=start, until=end):
            by_identity[run.identity].append(run)

        saturation = self.config.classifier.confidence_saturation_size
        tests: list[ImpactRecord] = []
        for identity, runs in sorted(by_identity.items(), key=lambda kv: kv[0].key):
            if not is_flaky_day(runs, self.config.classifier):
                continue
            stats = TestStats.from_outcomes(identity, runs, saturation)
            tests.append(estimate_test_impact(stats, team, start, end, self.config.impact))

        total = aggregate_project(project_id, tests, start, end, self.config.impact)
        self.store.save_impacts([*tests, total])
        return TrendPoint(
            day=day,
            flaky_tests=len(tests),
            failure_count=total.failure_count,
            estimated_cost_impact=total.estimated_cost_impact,
            velocity_reduction=total.velocity_reduction,
            status=total.status,
        )
