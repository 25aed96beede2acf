"""Tests for the flakiness risk scorer."""

import pytest

from flakewatch.config import RiskConfig
from flakewatch.risk import (
    FailureCategory,
    MetadataFeatures,
    RiskLevel,
    StaticFeatures,
    score_risk,
    summarize,
)
from flakewatch.risk.scorer import normalize, notify_high_risk, risk_confidence, risk_level, should_alert

HIGH = StaticFeatures(
    timing_sensitivity=0.4,
    hardcoded_delays=5,
    race_condition_patterns=3,
    external_service_count=10,
    http_call_count=10,
    database_query_count=10,
    lines_of_code=200,
)

WORST = StaticFeatures(
    timing_sensitivity=1.0,
    hardcoded_delays=9,
    race_condition_patterns=9,
    external_service_count=20,
    http_call_count=20,
    database_query_count=20,
    shared_state_usage=9,
    test_isolation_score=0.0,
    lines_of_code=400,
)

META = MetadataFeatures(test_count=4)


class TestScore:
    def test_empty_features_score_low(self):
        assessment = score_risk(StaticFeatures(), MetadataFeatures())
        assert assessment.score == 0.0
        assert assessment.level is RiskLevel.LOW
        assert assessment.confidence == pytest.approx(0.5)
        assert assessment.categories == (FailureCategory.UNKNOWN,)
        assert assessment.days_to_flaky is None

    def test_high_risk(self):
        assessment = score_risk(HIGH, META, "tests/test_api.py", "web")
        # 0.70 from the signals plus small size and test-count terms
        assert assessment.score == pytest.approx(0.712)
        assert assessment.level is RiskLevel.HIGH
        assert assessment.days_to_flaky == 9
        assert assessment.project_id == "web"

    def test_score_is_clipped(self):
        assessment = score_risk(WORST, META)
        assert assessment.score == 1.0
        assert assessment.level is RiskLevel.CRITICAL
        assert assessment.days_to_flaky == 0

    def test_isolation_lowers_score(self):
        isolated = score_risk(StaticFeatures(hardcoded_delays=5, test_isolation_score=1.0), META)
        shared = score_risk(StaticFeatures(hardcoded_delays=5, test_isolation_score=0.0), META)
        assert shared.score > isolated.score

    def test_e2e_framework_adds_weight(self):
        base = score_risk(HIGH, META)
        e2e = score_risk(HIGH, MetadataFeatures(test_count=4, test_framework="Playwright"))
        assert e2e.score == pytest.approx(base.score + 0.10)
        assert e2e.contributions["e2e_framework"] == 0.10

    def test_contributions_sum_to_raw_score(self):
        assessment = score_risk(HIGH, META)
        assert sum(assessment.contributions.values()) == pytest.approx(assessment.score)

    def test_categories(self):
        categories = score_risk(WORST, META).categories
        assert FailureCategory.TIMING_DEPENDENT in categories
        assert FailureCategory.EXTERNAL_SERVICE in categories
        assert FailureCategory.RACE_CONDITION in categories
        assert FailureCategory.ENVIRONMENT_DEPENDENT in categories
        assert FailureCategory.DATA_DEPENDENT in categories
        assert FailureCategory.NETWORK_DEPENDENT in categories
        assert FailureCategory.RESOURCE_LEAK not in categories

    def test_to_dict(self):
        data = score_risk(HIGH, META, "tests/test_api.py").to_dict()
        assert data["level"] == "high"
        assert data["static"]["hardcoded_delays"] == 5
        assert StaticFeatures.from_dict(dict(data["static"], unknown=1)) == HIGH


class TestHelpers:
    def test_normalize(self):
        assert normalize(None, 10) == 0.0
        assert normalize(5, 10) == 0.5
        assert normalize(50, 10) == 1.0
        assert normalize(-3, 10) == 0.0
        assert normalize(1.7, None) == 1.0

    @pytest.mark.parametrize(
        "score, level",
        [(0.0, RiskLevel.LOW), (0.4, RiskLevel.MEDIUM), (0.6, RiskLevel.HIGH), (0.8, RiskLevel.CRITICAL)],
    )
    def test_levels(self, score, level):
        assert risk_level(score) is level

    def test_custom_thresholds(self):
        config = RiskConfig(medium_threshold=0.1, high_threshold=0.2, critical_threshold=0.3)
        assert risk_level(0.25, config) is RiskLevel.HIGH

    def test_confidence(self):
        typical = StaticFeatures(lines_of_code=200)
        assert risk_confidence(typical, META) == pytest.approx(0.8)
        known = MetadataFeatures(test_count=4, file_age=30, modification_frequency=2, author_count=3)
        assert risk_confidence(typical, known) == pytest.approx(0.95)
        assert risk_confidence(StaticFeatures(lines_of_code=5000), MetadataFeatures()) == pytest.approx(0.5)


class TestAlerts:
    def test_alert_threshold(self):
        high = score_risk(HIGH, META)
        low = score_risk(StaticFeatures(), META)
        assert should_alert(high)
        assert not should_alert(low)
        assert should_alert(low, RiskConfig(alert_level="low"))

    def test_notify_high_risk(self, notifier):
        assessments = [score_risk(HIGH, META, "a.py"), score_risk(StaticFeatures(), META, "b.py")]
        alerts = notify_high_risk(assessments, notifier)
        assert [a.file_path for a in alerts] == ["a.py"]
        assert notifier.risk_alerts == alerts

    def test_summary(self):
        assessments = [score_risk(HIGH, META), score_risk(WORST, META), score_risk(StaticFeatures(), META)]
        summary = summarize(assessments)
        assert summary.total_files == 3
        assert summary.high_risk_files == 2
        assert summary.average_risk_score == pytest.approx((0.712 + 1.0 + 0.0) / 3)
        assert summary.risk_distribution == {"low": 1, "medium": 0, "high": 1, "critical": 1}

    def test_empty_summary(self):
        assert summarize([]).to_dict()["total_files"] == 0


class TestEngineRisk:
    def test_score_persists_and_alerts(self, engine, memory_store, notifier):
        assessment = engine.score_risk(HIGH, META, "tests/test_api.py", "web")
        assert assessment.assessment_id is not None
        assert memory_store.risk_assessments("web") == [assessment]
        assert len(notifier.risk_alerts) == 1

    def test_score_files(self, engine, tmp_path, notifier):
        good = tmp_path / "test_ok.py"
        good.write_text("def test_ok():\n    assert 1 + 1 == 2\n")
        helper = tmp_path / "conf.py"
        helper.write_text("X = 1\n")
        report = engine.score_files([good, helper, tmp_path / "test_gone.py"], project_id="web")
        assert len(report.assessments) == 2
        assert report.summary.total_files == 2
        codes = sorted(i.code.value for i in report.issues)
        assert codes == ["FW401", "FW401"]
        assert notifier.risk_alerts == []
