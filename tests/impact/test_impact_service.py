"""Tests for impact estimation against a store."""

from datetime import timedelta

import pytest

from flakewatch.config import EngineConfig, TeamConfiguration
from flakewatch.engine import FlakewatchEngine
from flakewatch.exceptions import ErrorCode
from flakewatch.impact import ImpactEstimator, ImpactRecord, ImpactScope, ImpactStatus, ProjectImpact
from flakewatch.models import TestIdentity
from flakewatch.storage import MemorySampleStore


class BrokenProjectStore(MemorySampleStore):
    """Fails every outcome read for one project once ``broken`` is set."""

    def __init__(self):
        super().__init__()
        self.broken = None

    def outcomes(self, identity, since=None, until=None):
        if identity.project_id == self.broken:
            raise RuntimeError("disk on fire")
        return super().outcomes(identity, since, until)


@pytest.fixture
def period(t0):
    return t0 - timedelta(days=1), t0 + timedelta(days=1)


class TestEstimateImpact:
    def test_single_test(self, engine, runs, identity, memory_store, period):
        engine.ingest(runs(identity, "PPFPPFPPFP", duration=60.0))
        record = engine.estimate_impact(identity, period=period)
        assert isinstance(record, ImpactRecord)
        assert record.scope is ImpactScope.TEST
        assert record.total_time_wasted == pytest.approx(63)
        assert record.record_id is not None
        assert memory_store.latest_impact("web", identity) == record

    def test_untracked_test_is_no_data(self, engine, runs, identity, memory_store, period):
        memory_store.append_outcomes(runs(identity, "PPFPPFPPFP", duration=60.0))
        record = engine.estimate_impact(identity, period=period)
        assert record.status is ImpactStatus.NO_DATA
        assert record.estimated_cost_impact == 0

    def test_project(self, engine, runs, identity, memory_store, period):
        clean = TestIdentity("web", "test_clean")
        engine.ingest(runs(identity, "PPFPPFPPFP", duration=60.0) + runs(clean, "PPPP"))
        result = engine.estimate_impact("web", period=period)
        assert isinstance(result, ProjectImpact)
        assert result.total.status is ImpactStatus.OK
        assert result.total.test_count == 1
        assert [t.identity for t in result.tests] == [identity]
        assert result.top_tests() == result.tests
        assert len(memory_store.impact_records("web")) == 2

    def test_only_flaky_tests_are_billed(self, engine, runs, identity, period):
        stable = TestIdentity("web", "test_stable")
        broken = TestIdentity("web", "test_broken")
        engine.ingest(
            runs(identity, "PPFPPFPPFP", duration=60.0)
            + runs(stable, "P" * 19 + "F", duration=60.0)
            + runs(broken, "F" * 10, duration=60.0)
        )
        result = engine.estimate_impact("web", period=period)
        assert result.total.test_count == 1
        assert result.total.failure_count == 3
        assert [t.identity for t in result.tests] == [identity]

    def test_project_without_flaky_tests_costs_nothing(self, engine, runs, period):
        engine.ingest(
            runs(TestIdentity("web", "test_stable"), "P" * 19 + "F")
            + runs(TestIdentity("web", "test_broken"), "F" * 10)
        )
        result = engine.estimate_impact("web", period=period)
        assert result.total.status is ImpactStatus.NO_DATA
        assert result.total.test_count == 0
        assert result.total.estimated_cost_impact == 0
        assert result.total.recommendations == ()

    def test_pattern_rate_drives_heuristics(self, engine, runs, identity, memory_store, t0):
        """Failure count comes from the period, rate and confidence from the pattern."""
        engine.ingest(runs(identity, "PPFPPFPPFP", duration=60.0))
        pattern = memory_store.get_pattern(identity)
        day_two = (t0 + timedelta(hours=6), t0 + timedelta(days=1))
        record = engine.estimate_impact(identity, period=day_two)
        assert record.failure_rate == pattern.failure_rate
        assert record.failure_count == 1

    def test_recompute_replaces_records(self, engine, runs, identity, memory_store, period):
        engine.ingest(runs(identity, "PPFPPFPPFP", duration=60.0))
        engine.estimate_impact("web", period=period)
        engine.estimate_impact("web", period=period)
        assert len(memory_store.impact_records("web")) == 2

    def test_explicit_team_config(self, engine, runs, identity, period):
        engine.ingest(runs(identity, "PPFPPFPPFP", duration=60.0))
        team = TeamConfiguration(average_developer_salary=52000, ci_cost_per_minute=1.0)
        record = engine.estimate_impact(identity, team_config=team, period=period)
        assert record.developer_cost == pytest.approx(1.05 * 25)
        assert record.infrastructure_cost == pytest.approx(180)

    def test_project_team_override(self, memory_store, runs, identity, period):
        config = EngineConfig(cache_enabled=False, projects={"web": {"team": {"ci_cost_per_minute": 0.0}}})
        FlakewatchEngine(memory_store, config).ingest(runs(identity, "PPFPPFPPFP", duration=60.0))
        record = ImpactEstimator(memory_store, config).estimate_impact(identity, period=period)
        assert record.status is ImpactStatus.OK
        assert record.infrastructure_cost == 0

    def test_unknown_project_is_no_data(self, engine, period):
        result = engine.estimate_impact("nothing", period=period)
        assert result.total.status is ImpactStatus.NO_DATA
        assert result.tests == []


class TestManyProjects:
    def test_failing_project_is_isolated(self, runs, config, notifier, period):
        store = BrokenProjectStore()
        good = TestIdentity("web", "test_a")
        bad = TestIdentity("api", "test_b")
        FlakewatchEngine(store, config, notifier).ingest(runs(good, "PPFPPFPPFP") + runs(bad, "PPFPPFPPFP"))
        store.broken = "api"

        results, issues = ImpactEstimator(store, config).estimate_projects(period=period)
        assert results["web"].total.status is ImpactStatus.OK
        assert results["api"].status is ImpactStatus.ERROR
        assert "disk on fire" in results["api"].error
        assert [i.code for i in issues] == [ErrorCode.FW300]
        assert store.latest_impact("api").status is ImpactStatus.ERROR

    def test_engine_runs_all_known_projects(self, engine, runs, memory_store, period):
        memory_store.append_outcomes(runs(TestIdentity("web", "a"), "PF") + runs(TestIdentity("api", "b"), "PF"))
        results, issues = engine.estimate_all_projects(period=period)
        assert sorted(results) == ["api", "web"]
        assert issues == []


class TestQuarantineSavings:
    def test_failures_during_quarantine_are_counted(self, engine, runs, identity, t0):
        engine.ingest(runs(identity, "FPPFPPFPPP", duration=60.0))
        engine.ingest(runs(identity, "FF", start=t0 + timedelta(hours=10), duration=60.0))
        period = (t0, t0 + timedelta(days=1))
        result = engine.estimate_impact("web", period=period)
        savings = result.quarantine_savings
        assert savings.failures_absorbed == 2
        assert savings.ci_minutes_avoided == pytest.approx(2.0)
        assert savings.developer_hours_avoided == pytest.approx(0.5)
        expected = 0.5 * 120000 / 2080 + 2.0 * 0.5
        assert savings.cost_avoided == pytest.approx(expected)

    def test_nothing_quarantined(self, engine, runs, identity, t0):
        engine.ingest(runs(identity, "PPPP"))
        result = engine.estimate_impact("web", period=(t0, t0 + timedelta(days=1)))
        assert result.quarantine_savings.failures_absorbed == 0
        assert result.quarantine_savings.cost_avoided == 0
