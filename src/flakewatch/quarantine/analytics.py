"""Quarantine effectiveness analytics over the audit trail."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Iterable, Optional

from ..models import (
    FlakyPattern,
    QuarantineAction,
    QuarantineEvent,
    TestIdentity,
    TriggeredBy,
    ensure_utc,
    utcnow,
)

Interval = tuple[datetime, datetime]


@dataclass
class QuarantineStats:
    total_quarantines: int = 0
    auto_quarantines: int = 0
    manual_quarantines: int = 0
    auto_unquarantines: int = 0
    manual_unquarantines: int = 0
    currently_quarantined: int = 0
    average_quarantine_days: float = 0.0
    longest_quarantine_days: float = 0.0
    premature_unquarantines: int = 0
    premature_unquarantine_rate: float = 0.0
    policy_violations: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


def quarantine_intervals(
    events: Iterable[QuarantineEvent], now: Optional[datetime] = None
) -> dict[TestIdentity, list[Interval]]:
    """Per identity, the (start, end) spans it spent quarantined.

    Repeated quarantine events inside a span do not restart it. A span
    still open is closed at ``now``.
    """
    now = ensure_utc(now or utcnow())
    by_identity: dict[TestIdentity, list[QuarantineEvent]] = defaultdict(list)
    for event in events:
        by_identity[event.identity].append(event)

    result: dict[TestIdentity, list[Interval]] = {}
    for identity, items in by_identity.items():
        items.sort(key=lambda e: (e.timestamp, e.event_id or 0))
        spans: list[Interval] = []
        start: Optional[datetime] = None
        for event in items:
            ts = ensure_utc(event.timestamp)
            if event.action is QuarantineAction.QUARANTINED:
                if start is None:
                    start = ts
            elif start is not None:
                spans.append((start, ts))
                start = None
        if start is not None:
            spans.append((start, max(start, now)))
        result[identity] = spans
    return result


def quarantine_stats(
    events: Iterable[QuarantineEvent],
    patterns: Iterable[FlakyPattern],
    now: Optional[datetime] = None,
) -> QuarantineStats:
    events = list(events)
    patterns = list(patterns)
    stats = QuarantineStats()

    for event in events:
        auto = event.triggered_by is TriggeredBy.AUTO
        if event.action is QuarantineAction.QUARANTINED:
            stats.total_quarantines += 1
            if auto:
                stats.auto_quarantines += 1
            else:
                stats.manual_quarantines += 1
        elif auto:
            stats.auto_unquarantines += 1
        else:
            stats.manual_unquarantines += 1
        if event.policy_violation:
            stats.policy_violations += 1

    stats.currently_quarantined = sum(1 for p in patterns if p.is_quarantined)
    stats.premature_unquarantines = sum(p.premature_unquarantines for p in patterns)
    attempts = stats.auto_unquarantines + stats.premature_unquarantines
    if attempts:
        stats.premature_unquarantine_rate = stats.premature_unquarantines / attempts

    durations = [
        (end - start).total_seconds() / 86400
        for spans in quarantine_intervals(events, now).values()
        for start, end in spans
    ]
    if durations:
        stats.average_quarantine_days = sum(durations) / len(durations)
        stats.longest_quarantine_days = max(durations)
    return stats
