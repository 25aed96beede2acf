"""In-process sample store for tests and dry runs."""

from __future__ import annotations

import threading
from collections import defaultdict
from dataclasses import replace
from datetime import datetime
from typing import Iterable, Optional

from ..exceptions import ConcurrentTransitionConflict
from ..impact.models import ImpactRecord, ImpactScope
from ..models import FlakyPattern, OutcomeRecord, QuarantineEvent, TestIdentity, ensure_utc
from ..risk.models import RiskAssessment
from .adapter import SampleStore


def _in_window(ts: datetime, since: Optional[datetime], until: Optional[datetime]) -> bool:
    ts = ensure_utc(ts)
    return (since is None or ts >= ensure_utc(since)) and (until is None or ts <= ensure_utc(until))


class MemorySampleStore(SampleStore):
    """Dict-backed store. Patterns are copied on the way in and out."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._outcomes: dict[TestIdentity, list[OutcomeRecord]] = defaultdict(list)
        self._patterns: dict[TestIdentity, FlakyPattern] = {}
        self._events: list[QuarantineEvent] = []
        self._impacts: dict[tuple, ImpactRecord] = {}
        self._risks: list[RiskAssessment] = []
        self._next_id = 1

    def _id(self) -> int:
        value = self._next_id
        self._next_id += 1
        return value

    def append_outcomes(self, records: Iterable[OutcomeRecord]) -> int:
        count = 0
        with self._lock:
            for record in records:
                history = self._outcomes[record.identity]
                history.append(record)
                history.sort(key=lambda r: ensure_utc(r.timestamp))
                count += 1
        return count

    def outcomes(self, identity, since=None, until=None) -> list[OutcomeRecord]:
        with self._lock:
            return [r for r in self._outcomes.get(identity, []) if _in_window(r.timestamp, since, until)]

    def project_outcomes(self, project_id, since=None, until=None) -> list[OutcomeRecord]:
        with self._lock:
            runs = [
                r
                for identity, history in self._outcomes.items()
                if identity.project_id == project_id
                for r in history
                if _in_window(r.timestamp, since, until)
            ]
        return sorted(runs, key=lambda r: ensure_utc(r.timestamp))

    def latest_timestamp(self, identity) -> Optional[datetime]:
        with self._lock:
            history = self._outcomes.get(identity)
            return ensure_utc(history[-1].timestamp) if history else None

    def identities(self, project_id=None) -> list[TestIdentity]:
        with self._lock:
            found = [i for i, h in self._outcomes.items() if h and (project_id is None or i.project_id == project_id)]
        return sorted(found, key=lambda i: (i.project_id, i.suite or "", i.test_name))

    def projects(self) -> list[str]:
        with self._lock:
            ids = {i.project_id for i in self._outcomes} | {i.project_id for i in self._patterns}
        return sorted(ids)

    def get_pattern(self, identity) -> Optional[FlakyPattern]:
        with self._lock:
            pattern = self._patterns.get(identity)
            return replace(pattern) if pattern else None

    def patterns(self, project_id=None, active_only=False) -> list[FlakyPattern]:
        with self._lock:
            found = [
                replace(p)
                for p in self._patterns.values()
                if (project_id is None or p.identity.project_id == project_id)
                and (not active_only or p.is_active)
            ]
        return sorted(found, key=lambda p: p.identity.key)

    def save_pattern(self, pattern, expected_version, event=None) -> FlakyPattern:
        with self._lock:
            current = self._patterns.get(pattern.identity)
            actual = current.version if current else 0
            if actual != expected_version:
                raise ConcurrentTransitionConflict(pattern.identity.key, expected_version, actual)
            saved = replace(pattern, version=expected_version + 1)
            self._patterns[pattern.identity] = saved
            if event is not None:
                self._events.append(replace(event, event_id=self._id()))
            return replace(saved)

    def events(self, identity=None, project_id=None) -> list[QuarantineEvent]:
        with self._lock:
            return [
                e
                for e in self._events
                if (identity is None or e.identity == identity)
                and (project_id is None or e.identity.project_id == project_id)
            ]

    def save_impacts(self, records) -> list[ImpactRecord]:
        with self._lock:
            saved = []
            for record in records:
                key = (
                    record.project_id,
                    record.scope,
                    record.identity,
                    ensure_utc(record.period_start),
                    ensure_utc(record.period_end),
                )
                stored = replace(record, record_id=self._id())
                self._impacts.pop(key, None)
                self._impacts[key] = stored
                saved.append(stored)
            return saved

    def impact_records(self, project_id, scope=None, identity=None, since=None, until=None) -> list[ImpactRecord]:
        with self._lock:
            found = [
                r
                for r in self._impacts.values()
                if r.project_id == project_id
                and (scope is None or r.scope is scope)
                and (identity is None or r.identity == identity)
                and (since is None or ensure_utc(r.period_start) >= ensure_utc(since))
                and (until is None or ensure_utc(r.period_end) <= ensure_utc(until))
            ]
        return sorted(found, key=lambda r: (ensure_utc(r.period_start), r.record_id))

    def latest_impact(self, project_id, identity=None) -> Optional[ImpactRecord]:
        scope = ImpactScope.TEST if identity is not None else ImpactScope.PROJECT
        with self._lock:
            found = [
                r
                for r in self._impacts.values()
                if r.project_id == project_id and r.scope is scope and r.identity == identity
            ]
        if not found:
            return None
        return max(found, key=lambda r: (ensure_utc(r.calculated_at), r.record_id))

    def save_risk(self, assessment) -> RiskAssessment:
        with self._lock:
            saved = replace(assessment, assessment_id=self._id())
            self._risks.append(saved)
            return saved

    def risk_assessments(self, project_id=None, file_path=None) -> list[RiskAssessment]:
        with self._lock:
            found = [
                a
                for a in self._risks
                if (project_id is None or a.project_id == project_id)
                and (file_path is None or a.file_path == file_path)
            ]
        return sorted(found, key=lambda a: (ensure_utc(a.assessed_at), a.assessment_id), reverse=True)
