"""Pre-emptive flakiness risk: static features and scoring."""

from .extractor import ExtractedFeatures, extract_features, extract_file, is_test_file
from .features import MetadataFeatures, StaticFeatures
from .models import FailureCategory, ProjectRiskSummary, RiskAlert, RiskAssessment, RiskLevel
from .scorer import notify_high_risk, risk_level, score_risk, summarize

__all__ = [
    "ExtractedFeatures",
    "extract_features",
    "extract_file",
    "is_test_file",
    "StaticFeatures",
    "MetadataFeatures",
    "FailureCategory",
    "ProjectRiskSummary",
    "RiskAlert",
    "RiskAssessment",
    "RiskLevel",
    "notify_high_risk",
    "risk_level",
    "score_risk",
    "summarize",
]
