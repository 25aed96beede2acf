"""Tests for quarantine effectiveness analytics."""

from datetime import timedelta

import pytest

from flakewatch.models import (
    FlakyPattern,
    QuarantineAction,
    QuarantineEvent,
    TestIdentity,
    TriggeredBy,
)
from flakewatch.quarantine import quarantine_intervals, quarantine_stats


def event(identity, action, ts, by=TriggeredBy.AUTO, violation=False):
    return QuarantineEvent(identity, action, by, "reason", ts, 1.0, policy_violation=violation)


class TestIntervals:
    def test_closed_and_open_spans(self, identity, t0):
        events = [
            event(identity, QuarantineAction.QUARANTINED, t0),
            event(identity, QuarantineAction.UNQUARANTINED, t0 + timedelta(days=2)),
            event(identity, QuarantineAction.QUARANTINED, t0 + timedelta(days=3)),
        ]
        spans = quarantine_intervals(events, now=t0 + timedelta(days=4))
        assert spans[identity] == [
            (t0, t0 + timedelta(days=2)),
            (t0 + timedelta(days=3), t0 + timedelta(days=4)),
        ]

    def test_repeated_quarantine_does_not_restart(self, identity, t0):
        events = [
            event(identity, QuarantineAction.QUARANTINED, t0),
            event(identity, QuarantineAction.QUARANTINED, t0 + timedelta(days=1), TriggeredBy.MANUAL),
            event(identity, QuarantineAction.UNQUARANTINED, t0 + timedelta(days=2)),
        ]
        assert quarantine_intervals(events)[identity] == [(t0, t0 + timedelta(days=2))]


class TestStats:
    def test_counts_and_durations(self, identity, t0):
        other = TestIdentity("web", "test_search")
        events = [
            event(identity, QuarantineAction.QUARANTINED, t0),
            event(identity, QuarantineAction.UNQUARANTINED, t0 + timedelta(days=2)),
            event(other, QuarantineAction.QUARANTINED, t0, TriggeredBy.MANUAL),
            event(other, QuarantineAction.UNQUARANTINED, t0 + timedelta(days=4), TriggeredBy.MANUAL, violation=True),
        ]
        patterns = [
            FlakyPattern(identity=identity, premature_unquarantines=1),
            FlakyPattern(identity=other, is_quarantined=True),
        ]
        stats = quarantine_stats(events, patterns, now=t0 + timedelta(days=5))
        assert stats.total_quarantines == 2
        assert stats.auto_quarantines == 1
        assert stats.manual_quarantines == 1
        assert stats.auto_unquarantines == 1
        assert stats.manual_unquarantines == 1
        assert stats.policy_violations == 1
        assert stats.currently_quarantined == 1
        assert stats.premature_unquarantine_rate == pytest.approx(0.5)
        assert stats.average_quarantine_days == pytest.approx(3.0)
        assert stats.longest_quarantine_days == pytest.approx(4.0)

    def test_empty(self):
        stats = quarantine_stats([], [])
        assert stats.total_quarantines == 0
        assert stats.to_dict()["average_quarantine_days"] == 0.0
