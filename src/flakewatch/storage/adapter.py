"""Sample store contract.

The engine reaches all persisted state through a ``SampleStore``.
Implementations must make ``save_pattern`` atomic: the pattern and its
optional event are written together or not at all, and a stale
``expected_version`` raises ``ConcurrentTransitionConflict``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Iterable, Optional

from ..impact.models import ImpactRecord, ImpactScope
from ..models import FlakyPattern, OutcomeRecord, QuarantineEvent, TestIdentity
from ..risk.models import RiskAssessment


class SampleStore(ABC):
    """Persistence for outcomes, patterns, events, impact and risk."""

    # ── outcomes ─────────────────────────────────────────────────────

    @abstractmethod
    def append_outcomes(self, records: Iterable[OutcomeRecord]) -> int:
        """Append validated records; returns how many were written."""

    @abstractmethod
    def outcomes(
        self,
        identity: TestIdentity,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
    ) -> list[OutcomeRecord]:
        """Windowed history of one identity, oldest first, bounds inclusive."""

    @abstractmethod
    def project_outcomes(
        self,
        project_id: str,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
    ) -> list[OutcomeRecord]:
        ...

    @abstractmethod
    def latest_timestamp(self, identity: TestIdentity) -> Optional[datetime]:
        ...

    @abstractmethod
    def identities(self, project_id: Optional[str] = None) -> list[TestIdentity]:
        ...

    @abstractmethod
    def projects(self) -> list[str]:
        ...

    # ── patterns and events ──────────────────────────────────────────

    @abstractmethod
    def get_pattern(self, identity: TestIdentity) -> Optional[FlakyPattern]:
        ...

    @abstractmethod
    def patterns(self, project_id: Optional[str] = None, active_only: bool = False) -> list[FlakyPattern]:
        ...

    @abstractmethod
    def save_pattern(
        self,
        pattern: FlakyPattern,
        expected_version: int,
        event: Optional[QuarantineEvent] = None,
    ) -> FlakyPattern:
        """Atomically write a pattern (and event); returns it with its new version."""

    @abstractmethod
    def events(
        self, identity: Optional[TestIdentity] = None, project_id: Optional[str] = None
    ) -> list[QuarantineEvent]:
        ...

    # ── impact and risk ──────────────────────────────────────────────

    @abstractmethod
    def save_impacts(self, records: Iterable[ImpactRecord]) -> list[ImpactRecord]:
        """Write records all-or-nothing, replacing same-period records."""

    @abstractmethod
    def impact_records(
        self,
        project_id: str,
        scope: Optional[ImpactScope] = None,
        identity: Optional[TestIdentity] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
    ) -> list[ImpactRecord]:
        ...

    @abstractmethod
    def latest_impact(
        self, project_id: str, identity: Optional[TestIdentity] = None
    ) -> Optional[ImpactRecord]:
        ...

    @abstractmethod
    def save_risk(self, assessment: RiskAssessment) -> RiskAssessment:
        ...

    @abstractmethod
    def risk_assessments(
        self, project_id: Optional[str] = None, file_path: Optional[str] = None
    ) -> list[RiskAssessment]:
        ...

    def save_impact(self, record: ImpactRecord) -> ImpactRecord:
        return self.save_impacts([record])[0]

    def close(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
