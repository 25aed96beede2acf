"""Pre-emptive flakiness risk scoring.

``score = clamp01(sum(weight * normalized))`` over a fixed, signed set of
weights. Each feature is normalized into [0, 1] by dividing by its cap;
ratio features are already in range and have no cap. These weights are
tuned independently of the classifier's signals.
"""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, Optional

import numpy as np

from ..config import RiskConfig
from ..logging_config import get_logger
from ..notifications import Notifier, deliver
from .features import MetadataFeatures, StaticFeatures
from .models import FailureCategory, ProjectRiskSummary, RiskAlert, RiskAssessment, RiskLevel

logger = get_logger(__name__)

# feature -> (weight, cap); cap None means the value is already a ratio.
STATIC_WEIGHTS: dict[str, tuple[float, Optional[float]]] = {
    "timing_sensitivity": (0.25, None),
    "hardcoded_delays": (0.20, 5),
    "race_condition_patterns": (0.18, 3),
    "external_service_count": (0.15, 10),
    "http_call_count": (0.12, 10),
    "database_query_count": (0.10, 10),
    "test_isolation_score": (-0.15, None),
    "shared_state_usage": (0.12, 5),
    "cyclomatic_complexity": (0.08, 20),
    "nesting_depth": (0.06, 8),
    "cognitive_complexity": (0.05, 15),
    "file_system_count": (0.08, 10),
    "resource_leak_risk": (0.10, None),
    "async_await_count": (0.05, 10),
    "promise_chain_count": (0.04, 5),
    "timeout_count": (0.08, 5),
    "setup_teardown_complexity": (0.06, 5),
    "lines_of_code": (0.02, 1000),
}

METADATA_WEIGHTS: dict[str, tuple[float, Optional[float]]] = {
    "file_size": (0.03, 5000),
    "test_count": (0.04, 20),
    "modification_frequency": (0.06, 10),
}

E2E_WEIGHT = 0.10

BASE_CONFIDENCE = 0.8
OPTIONAL_FEATURE_BONUS = 0.05
TYPICAL_LOC = (50, 2000)
SIZE_PENALTY = 0.1
NO_TESTS_PENALTY = 0.2


def normalize(value: Optional[float], cap: Optional[float]) -> float:
    if value is None:
        return 0.0
    if cap is None:
        return float(np.clip(value, 0.0, 1.0))
    return float(min(max(value, 0) / cap, 1.0))


def feature_contributions(static: StaticFeatures, metadata: MetadataFeatures) -> dict[str, float]:
    """Signed weighted contribution of every scored feature."""
    contributions = {
        name: weight * normalize(getattr(static, name), cap)
        for name, (weight, cap) in STATIC_WEIGHTS.items()
    }
    for name, (weight, cap) in METADATA_WEIGHTS.items():
        contributions[name] = weight * normalize(getattr(metadata, name), cap)
    contributions["e2e_framework"] = E2E_WEIGHT if metadata.is_e2e else 0.0
    return contributions


def risk_level(score: float, config: Optional[RiskConfig] = None) -> RiskLevel:
    config = config or RiskConfig()
    if score >= config.critical_threshold:
        return RiskLevel.CRITICAL
    if score >= config.high_threshold:
        return RiskLevel.HIGH
    if score >= config.medium_threshold:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def risk_confidence(static: StaticFeatures, metadata: MetadataFeatures) -> float:
    """Confidence grows with known optional metadata and drops outside the
    typical file size range or when no tests were found."""
    confidence = BASE_CONFIDENCE
    for optional in (metadata.file_age, metadata.modification_frequency, metadata.author_count):
        if optional is not None:
            confidence += OPTIONAL_FEATURE_BONUS
    low, high = TYPICAL_LOC
    if static.lines_of_code < low:
        confidence -= SIZE_PENALTY
    if static.lines_of_code > high:
        confidence -= SIZE_PENALTY
    if metadata.test_count == 0:
        confidence -= NO_TESTS_PENALTY
    return float(np.clip(confidence, 0.3, 1.0))


def failure_categories(static: StaticFeatures) -> tuple[FailureCategory, ...]:
    categories = []
    if static.timing_sensitivity > 0.1 or static.hardcoded_delays > 0:
        categories.append(FailureCategory.TIMING_DEPENDENT)
    if static.external_service_count > 2:
        categories.append(FailureCategory.EXTERNAL_SERVICE)
    if static.resource_leak_risk > 0.1:
        categories.append(FailureCategory.RESOURCE_LEAK)
    if static.race_condition_patterns > 1:
        categories.append(FailureCategory.RACE_CONDITION)
    if static.shared_state_usage > 2 or static.test_isolation_score < 0.8:
        categories.append(FailureCategory.ENVIRONMENT_DEPENDENT)
    if static.database_query_count > 3:
        categories.append(FailureCategory.DATA_DEPENDENT)
    if static.http_call_count > 2:
        categories.append(FailureCategory.NETWORK_DEPENDENT)
    return tuple(categories) or (FailureCategory.UNKNOWN,)


def score_risk(
    static: StaticFeatures,
    metadata: MetadataFeatures,
    file_path: str = "<memory>",
    project_id: Optional[str] = None,
    config: Optional[RiskConfig] = None,
    assessed_at: Optional[datetime] = None,
) -> RiskAssessment:
    """Score the likelihood that a test file will become flaky.

    Needs no execution history and never raises for missing signal: an
    empty feature vector scores low with reduced confidence.
    """
    config = config or RiskConfig()
    contributions = feature_contributions(static, metadata)
    score = float(np.clip(sum(contributions.values()), 0.0, 1.0))
    level = risk_level(score, config)

    days_to_flaky = None
    if score >= config.high_threshold:
        days_to_flaky = round(config.days_to_flaky_horizon * (1 - score))

    extra = {"assessed_at": assessed_at} if assessed_at else {}
    assessment = RiskAssessment(
        file_path=file_path,
        project_id=project_id,
        score=score,
        level=level,
        confidence=risk_confidence(static, metadata),
        categories=failure_categories(static),
        static=static,
        metadata=metadata,
        days_to_flaky=days_to_flaky,
        contributions=contributions,
        **extra,
    )
    logger.debug(f"{file_path}: risk {score:.3f} ({level.value})")
    return assessment


def should_alert(assessment: RiskAssessment, config: Optional[RiskConfig] = None) -> bool:
    config = config or RiskConfig()
    return assessment.level.rank >= RiskLevel(config.alert_level).rank


def alert_for(assessment: RiskAssessment) -> RiskAlert:
    return RiskAlert(
        file_path=assessment.file_path,
        project_id=assessment.project_id,
        score=assessment.score,
        level=assessment.level,
        categories=assessment.categories,
        days_to_flaky=assessment.days_to_flaky,
    )


def notify_high_risk(
    assessments: Iterable[RiskAssessment],
    notifier: Notifier,
    config: Optional[RiskConfig] = None,
) -> list[RiskAlert]:
    """Send an alert for every assessment at or above the alert level."""
    alerts = [alert_for(a) for a in assessments if should_alert(a, config)]
    for alert in alerts:
        deliver(notifier, "risk_alert", alert)
    return alerts


def summarize(
    assessments: Iterable[RiskAssessment], config: Optional[RiskConfig] = None
) -> ProjectRiskSummary:
    config = config or RiskConfig()
    assessments = list(assessments)
    summary = ProjectRiskSummary(total_files=len(assessments))
    if not assessments:
        return summary
    summary.average_risk_score = float(np.mean([a.score for a in assessments]))
    summary.high_risk_files = sum(1 for a in assessments if a.score >= config.high_threshold)
    for a in assessments:
        summary.risk_distribution[a.level.value] += 1
    return summary
