"""Tests for daily trend recomputation."""

from datetime import timedelta

import pytest

from flakewatch.config import ClassifierConfig, EngineConfig
from flakewatch.exceptions import ErrorCode
from flakewatch.impact import ImpactScope, ImpactStatus, TrendJob, TrendPoint, TrendResult, is_flaky_day
from flakewatch.storage import MemorySampleStore


class FailingDayStore(MemorySampleStore):
    """Raises on reads of chosen days, ``failures`` times per day."""

    def __init__(self, days, failures):
        super().__init__()
        self.days = set(days)
        self.failures = failures
        self.calls = {}

    def project_outcomes(self, project_id, since=None, until=None):
        day = since.date() if since else None
        if day in self.days:
            self.calls[day] = self.calls.get(day, 0) + 1
            if self.calls[day] <= self.failures:
                raise RuntimeError("timeout")
        return super().project_outcomes(project_id, since, until)


class CancellingStore(MemorySampleStore):
    """Cancels the attached job while the first day is being computed."""

    job = None

    def project_outcomes(self, project_id, since=None, until=None):
        self.job.cancel()
        return super().project_outcomes(project_id, since, until)


def seed(store, runs, identity, t0):
    store.append_outcomes(runs(identity, "PFPF"))
    store.append_outcomes(runs(identity, "PPPP", start=t0 + timedelta(days=2)))


class TestFlakyDay:
    def test_rules(self, identity, runs):
        config = ClassifierConfig()
        assert is_flaky_day(runs(identity, "PFPF"), config)
        assert not is_flaky_day(runs(identity, "PF"), config)
        assert not is_flaky_day(runs(identity, "FFFF"), config)
        assert not is_flaky_day(runs(identity, "PPPP"), config)
        assert not is_flaky_day(runs(identity, "PPPPPPPPPPPPPPPPPPPF"), config)


class TestTrendJob:
    def test_recomputes_each_day(self, memory_store, runs, identity, t0, config):
        seed(memory_store, runs, identity, t0)
        result = TrendJob(memory_store, config).run("web", days=3, end=t0 + timedelta(days=2))
        assert [p.flaky_tests for p in result.points] == [1, 0, 0]
        assert [p.status for p in result.points] == [ImpactStatus.OK, ImpactStatus.NO_DATA, ImpactStatus.NO_DATA]
        assert result.points[0].failure_count == 2
        assert result.direction == "decreasing"
        assert len(memory_store.impact_records("web", scope=ImpactScope.PROJECT)) == 3
        assert len(memory_store.impact_records("web", scope=ImpactScope.TEST)) == 1

    def test_rerun_is_idempotent(self, memory_store, runs, identity, t0, config):
        seed(memory_store, runs, identity, t0)
        job = TrendJob(memory_store, config)
        first = job.run("web", days=3, end=t0 + timedelta(days=2))
        second = job.run("web", days=3, end=t0 + timedelta(days=2))
        assert [p.to_dict() for p in first.points] == [p.to_dict() for p in second.points]
        assert len(memory_store.impact_records("web")) == 4

    def test_transient_failure_is_retried(self, runs, identity, t0, config):
        store = FailingDayStore([t0.date()], failures=1)
        seed(store, runs, identity, t0)
        result = TrendJob(store, config).run("web", days=3, end=t0 + timedelta(days=2))
        assert result.failed_days == []
        assert len(result.points) == 3

    def test_failed_day_does_not_stop_the_job(self, runs, identity, t0):
        store = FailingDayStore([(t0 + timedelta(days=1)).date()], failures=10)
        seed(store, runs, identity, t0)
        config = EngineConfig(cache_enabled=False, max_day_retries=1)
        result = TrendJob(store, config).run("web", days=3, end=t0 + timedelta(days=2))
        assert [d.date() for d in result.failed_days] == [(t0 + timedelta(days=1)).date()]
        assert len(result.points) == 2
        assert [i.code for i in result.issues] == [ErrorCode.FW301]
        assert store.calls[(t0 + timedelta(days=1)).date()] == 2
        days = {r.period_start.date() for r in store.impact_records("web", scope=ImpactScope.PROJECT)}
        assert (t0 + timedelta(days=1)).date() not in days

    def test_cancel_before_start(self, memory_store, config, t0):
        job = TrendJob(memory_store, config)
        job.cancel()
        result = job.run("web", days=5, end=t0)
        assert result.cancelled
        assert result.points == []
        assert result.issues[0].code is ErrorCode.FW302
        assert memory_store.impact_records("web") == []

    def test_cancel_midway_keeps_finished_days(self, runs, identity, t0, config):
        store = CancellingStore()
        seed(store, runs, identity, t0)
        job = TrendJob(store, config)
        store.job = job
        result = job.run("web", days=3, end=t0 + timedelta(days=2))
        assert result.cancelled
        assert len(result.points) == 1
        assert len(store.impact_records("web", scope=ImpactScope.PROJECT)) == 1

    def test_engine_entry_point(self, engine, memory_store, runs, identity, t0):
        seed(memory_store, runs, identity, t0)
        result = engine.recompute_trend("web", days=3, end=t0 + timedelta(days=2))
        assert len(result.points) == 3


class TestDirection:
    def point(self, cost):
        return TrendPoint(day=None, flaky_tests=0, failure_count=0, estimated_cost_impact=cost,
                          velocity_reduction=0.0, status=ImpactStatus.OK)

    @pytest.mark.parametrize(
        "costs, expected",
        [
            ([], "stable"),
            ([5.0], "stable"),
            ([0.0, 0.0], "stable"),
            ([0.0, 10.0], "increasing"),
            ([100.0, 102.0], "stable"),
            ([100.0, 100.0, 200.0, 200.0], "increasing"),
            ([200.0, 200.0, 100.0, 100.0], "decreasing"),
        ],
    )
    def test_direction(self, costs, expected):
        result = TrendResult("web", points=[self.point(c) for c in costs])
        assert result.direction == expected
