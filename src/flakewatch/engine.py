"""Engine facade: batches in, classifications, transitions, impact and risk out.

Usage::

    engine = FlakewatchEngine.open(load_config())
    result = engine.ingest(records)
    for identity, transition in result.transitions.items():
        ...
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable, Optional, Union

from .classification import ClassificationResult, partition_valid
from .classification.validation import issue_from_error
from .config import EngineConfig, TeamConfiguration
from .exceptions import ErrorCode, FlakewatchIssue, InvalidRecordError
from .impact import ImpactEstimator, ImpactRecord, ProjectImpact, TrendJob, TrendResult
from .logging_config import get_logger
from .models import OutcomeRecord, TestIdentity, utcnow
from .notifications import LoggingNotifier, Notifier
from .quarantine import QuarantineManager, QuarantineStats, Transition, quarantine_stats
from .risk import (
    MetadataFeatures,
    ProjectRiskSummary,
    RiskAssessment,
    StaticFeatures,
    extract_file,
    notify_high_risk,
    score_risk,
    summarize,
)
from .scheduler import ShardedScheduler
from .storage import MemorySampleStore, SampleStore, SQLiteSampleStore

logger = get_logger(__name__)


@dataclass
class BatchResult:
    """Outcome of one ingested batch.

    ``transitions`` holds an entry for every identity that was evaluated;
    the value is None when the identity has no pattern yet.
    """

    accepted: int = 0
    rejected: int = 0
    transitions: dict[TestIdentity, Optional[Transition]] = field(default_factory=dict)
    failed: dict[TestIdentity, str] = field(default_factory=dict)
    issues: list[FlakewatchIssue] = field(default_factory=list)

    @property
    def events(self) -> list:
        return [t.event for t in self.transitions.values() if t is not None and t.event is not None]


@dataclass
class RiskReport:
    assessments: list[RiskAssessment] = field(default_factory=list)
    summary: ProjectRiskSummary = field(default_factory=ProjectRiskSummary)
    issues: list[FlakewatchIssue] = field(default_factory=list)


class FlakewatchEngine:
    """Wires the store, lifecycle manager, impact estimator and risk scorer."""

    def __init__(
        self,
        store: Optional[SampleStore] = None,
        config: Optional[EngineConfig] = None,
        notifier: Optional[Notifier] = None,
    ):
        self.config = config or EngineConfig()
        self.store = store or MemorySampleStore()
        self.notifier = notifier or LoggingNotifier()
        self.manager = QuarantineManager(self.store, self.config, self.notifier)
        self.impact = ImpactEstimator(self.store, self.config)
        self.scheduler = ShardedScheduler(self.config.workers)

    @classmethod
    def open(cls, config: EngineConfig, notifier: Optional[Notifier] = None) -> "FlakewatchEngine":
        """Engine over the SQLite store named in ``config``."""
        return cls(SQLiteSampleStore.from_config(config), config, notifier)

    def close(self) -> None:
        self.store.close()

    def __enter__(self) -> "FlakewatchEngine":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # ── batches ──────────────────────────────────────────────────────

    def ingest(
        self,
        records: Iterable[Union[OutcomeRecord, dict[str, Any]]],
        project_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> BatchResult:
        """Validate, store and evaluate one batch (typically one CI run).

        Malformed records are skipped and reported as issues. Identities
        are then processed on the sharded pool.
        """
        parsed: list[OutcomeRecord] = []
        issues: list[FlakewatchIssue] = []
        for index, raw in enumerate(records):
            if isinstance(raw, OutcomeRecord):
                parsed.append(raw)
                continue
            try:
                parsed.append(OutcomeRecord.from_dict(raw, project_id=project_id))
            except (ValueError, TypeError, AttributeError) as e:
                error = InvalidRecordError(str(e), raw, index, ErrorCode.FW102)
                logger.warning(f"Skipping record {index}: {e}")
                issues.append(issue_from_error(error))

        valid, rejected = partition_valid(parsed)
        issues.extend(rejected)
        accepted = self.store.append_outcomes(valid)

        result = self.process_identities(sorted({r.identity for r in valid}, key=lambda i: i.key), now=now)
        result.accepted = accepted
        result.rejected = len(issues)
        result.issues = issues + result.issues
        logger.info(
            f"Batch: {accepted} accepted, {result.rejected} rejected, "
            f"{len(result.transitions)} identities evaluated, {len(result.events)} events"
        )
        return result

    def process_identities(
        self, identities: Iterable[TestIdentity], now: Optional[datetime] = None
    ) -> BatchResult:
        outcome = self.scheduler.run(identities, lambda identity: self.manager.process(identity, now=now))
        result = BatchResult(transitions=dict(outcome.results))
        for identity, error in outcome.errors.items():
            result.failed[identity] = str(error)
            result.issues.append(
                FlakewatchIssue(
                    message=f"Could not evaluate {identity.key}: {error}",
                    code=ErrorCode.FW202,
                    context={"identity": identity.key},
                    recoverable=False,
                    recovery_hint="Reprocess the identity; no partial transition was written",
                )
            )
        return result

    def reprocess_project(self, project_id: str, now: Optional[datetime] = None) -> BatchResult:
        return self.process_identities(self.store.identities(project_id), now=now)

    # ── classification and lifecycle ─────────────────────────────────

    def classify(self, identity: TestIdentity, now: Optional[datetime] = None) -> ClassificationResult:
        """Classify from stored history without changing any state."""
        return self.manager.classify(identity, now=now)

    def evaluate(self, identity: TestIdentity, now: Optional[datetime] = None) -> Optional[Transition]:
        return self.manager.process(identity, now=now)

    def manual_quarantine(self, identity: TestIdentity, reason: str, now: Optional[datetime] = None) -> Transition:
        return self.manager.manual_quarantine(identity, reason, now=now)

    def manual_unquarantine(self, identity: TestIdentity, reason: str, now: Optional[datetime] = None) -> Transition:
        return self.manager.manual_unquarantine(identity, reason, now=now)

    def deactivate_inactive(self, project_id: Optional[str] = None, now: Optional[datetime] = None):
        return self.manager.deactivate_inactive(project_id, now=now)

    def quarantine_stats(self, project_id: Optional[str] = None, now: Optional[datetime] = None) -> QuarantineStats:
        return quarantine_stats(
            self.store.events(project_id=project_id),
            self.store.patterns(project_id=project_id),
            now=now,
        )

    # ── impact ───────────────────────────────────────────────────────

    def estimate_impact(
        self,
        target: Union[TestIdentity, str],
        team_config: Optional[TeamConfiguration] = None,
        period: Optional[tuple[datetime, datetime]] = None,
    ) -> Union[ImpactRecord, ProjectImpact]:
        return self.impact.estimate_impact(target, team_config, period)

    def estimate_all_projects(self, period: Optional[tuple[datetime, datetime]] = None):
        return self.impact.estimate_projects(period=period)

    def recompute_trend(self, project_id: str, days: int = 30, end: Optional[datetime] = None) -> TrendResult:
        return TrendJob(self.store, self.config).run(project_id, days=days, end=end)

    # ── risk ─────────────────────────────────────────────────────────

    def score_risk(
        self,
        static: StaticFeatures,
        metadata: MetadataFeatures,
        file_path: str = "<memory>",
        project_id: Optional[str] = None,
    ) -> RiskAssessment:
        """Score, persist and alert on one file's features."""
        assessment = score_risk(static, metadata, file_path, project_id, self.config.risk)
        assessment = self.store.save_risk(assessment)
        notify_high_risk([assessment], self.notifier, self.config.risk)
        return assessment

    def score_files(
        self, paths: Iterable[Union[str, Path]], project_id: Optional[str] = None
    ) -> RiskReport:
        report = RiskReport()
        assessed_at = utcnow()
        for path in paths:
            try:
                extracted = extract_file(path)
            except OSError as e:
                logger.warning(f"Cannot read {path}: {e}")
                report.issues.append(
                    FlakewatchIssue(
                        message=f"Cannot read {path}: {e}",
                        code=ErrorCode.FW401,
                        context={"file": str(path)},
                    )
                )
                continue
            report.issues.extend(extracted.issues)
            assessment = score_risk(
                extracted.static,
                extracted.metadata,
                extracted.file_path,
                project_id,
                self.config.risk,
                assessed_at=assessed_at,
            )
            report.assessments.append(self.store.save_risk(assessment))

        notify_high_risk(report.assessments, self.notifier, self.config.risk)
        report.summary = summarize(report.assessments, self.config.risk)
        return report
