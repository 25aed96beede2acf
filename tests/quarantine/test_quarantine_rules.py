"""Tests for auto-quarantine rules and policy validation."""

from datetime import timedelta

import pytest

from flakewatch.classification import classify
from flakewatch.config import QuarantinePolicy
from flakewatch.exceptions import InvalidConfigError
from flakewatch.models import TestIdentity
from flakewatch.quarantine import auto_quarantine_reason, is_critical_path, validate_policy
from flakewatch.quarantine import rules


class TestRules:
    """Each rule in isolation."""

    def test_high_failure_rate(self, identity, runs):
        result = classify(identity, runs(identity, "FPPFPPFPPP"))
        assert rules.high_failure_rate(identity, result, QuarantinePolicy())

    def test_high_rate_needs_confidence(self, identity, runs):
        result = classify(identity, runs(identity, "FPF"))
        assert result.confidence < 0.7
        assert rules.high_failure_rate(identity, result, QuarantinePolicy()) is None

    def test_consecutive_failures(self, identity, runs):
        result = classify(identity, runs(identity, "PPPPPPPFFF"))
        policy = QuarantinePolicy(consecutive_failure_threshold=3)
        assert rules.consecutive_failures(identity, result, policy) == "3 consecutive failures"
        assert rules.consecutive_failures(identity, result, QuarantinePolicy()) is None

    def test_critical_path_by_suite(self, runs):
        identity = TestIdentity("web", "test_pay", "checkout")
        result = classify(identity, runs(identity, "FPPPPPPPPP"))
        policy = QuarantinePolicy(critical_suites=["checkout"])
        assert rules.critical_path(identity, result, policy)
        assert rules.critical_path(identity, result, QuarantinePolicy()) is None

    def test_rapid_degradation(self, identity, runs, t0):
        history = runs(identity, "P" * 20, start=t0 - timedelta(days=20)) + runs(identity, "FPFP", start=t0)
        result = classify(identity, history)
        assert result.recent_failure_rate == pytest.approx(0.5)
        assert rules.rapid_degradation(identity, result, QuarantinePolicy())
        disabled = QuarantinePolicy(rapid_degradation_enabled=False)
        assert rules.rapid_degradation(identity, result, disabled) is None

    def test_only_flaky_results_are_eligible(self, identity, runs):
        result = classify(identity, runs(identity, "FFFFFFFFFF"))
        assert auto_quarantine_reason(identity, result, QuarantinePolicy()) is None

    def test_first_rule_wins(self, identity, runs):
        result = classify(identity, runs(identity, "PPPPPFFFFF"))
        reason = auto_quarantine_reason(identity, result, QuarantinePolicy())
        assert reason.startswith("Failure rate")


class TestCriticalPath:
    def test_explicit_test_name(self):
        identity = TestIdentity("web", "test_pay")
        assert is_critical_path(identity, QuarantinePolicy(critical_tests=["test_pay"]))
        assert is_critical_path(identity, QuarantinePolicy(critical_tests=["web::test_pay"]))

    def test_keywords(self):
        assert is_critical_path(TestIdentity("web", "test_smoke_home"), QuarantinePolicy())
        assert is_critical_path(TestIdentity("web", "test_home", "e2e"), QuarantinePolicy())

    def test_keywords_can_be_disabled(self):
        policy = QuarantinePolicy(detect_high_impact_keywords=False)
        assert not is_critical_path(TestIdentity("web", "test_smoke_home"), policy)


class TestPolicyValidation:
    def test_defaults_are_valid(self):
        result = validate_policy(QuarantinePolicy())
        assert result.is_valid
        assert result.warnings == []

    def test_partial_dict_errors_are_collected(self):
        result = validate_policy({"auto_quarantine_threshold": 1.5, "stability_window_runs": 0})
        assert not result.is_valid
        assert len(result.errors) == 2

    def test_unknown_field(self):
        result = validate_policy({"quarantine_everything": True})
        assert result.errors == ["Unknown policy field 'quarantine_everything'"]

    def test_risky_values_warn(self):
        result = validate_policy({"auto_quarantine_threshold": 0.05, "stability_window_runs": 2})
        assert result.is_valid
        assert len(result.warnings) == 3

    def test_constructor_rejects_impossible_values(self):
        with pytest.raises(InvalidConfigError):
            QuarantinePolicy(auto_quarantine_threshold=2.0)
        with pytest.raises(InvalidConfigError):
            QuarantinePolicy(stability_mode="weeks")
