"""Risk assessment types."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from ..models import utcnow
from .features import MetadataFeatures, StaticFeatures


class RiskLevel(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _RANKS[self]


_RANKS = {RiskLevel.LOW: 0, RiskLevel.MEDIUM: 1, RiskLevel.HIGH: 2, RiskLevel.CRITICAL: 3}


class FailureCategory(Enum):
    TIMING_DEPENDENT = "timing_dependent"
    EXTERNAL_SERVICE = "external_service"
    RESOURCE_LEAK = "resource_leak"
    RACE_CONDITION = "race_condition"
    ENVIRONMENT_DEPENDENT = "environment_dependent"
    DATA_DEPENDENT = "data_dependent"
    NETWORK_DEPENDENT = "network_dependent"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class RiskAssessment:
    """Predicted flakiness of one test file, before any failure exists."""

    file_path: str
    score: float
    level: RiskLevel
    confidence: float
    categories: tuple[FailureCategory, ...]
    static: StaticFeatures
    metadata: MetadataFeatures
    project_id: Optional[str] = None
    days_to_flaky: Optional[int] = None
    contributions: dict[str, float] = field(default_factory=dict)
    assessed_at: datetime = field(default_factory=utcnow)
    assessment_id: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "file_path": self.file_path,
            "project_id": self.project_id,
            "score": self.score,
            "level": self.level.value,
            "confidence": self.confidence,
            "categories": [c.value for c in self.categories],
            "days_to_flaky": self.days_to_flaky,
            "contributions": dict(self.contributions),
            "static": self.static.to_dict(),
            "metadata": self.metadata.to_dict(),
            "assessed_at": self.assessed_at.isoformat(),
        }


@dataclass(frozen=True)
class RiskAlert:
    """Sent to the notifier for assessments at or above the alert level."""

    file_path: str
    project_id: Optional[str]
    score: float
    level: RiskLevel
    categories: tuple[FailureCategory, ...]
    days_to_flaky: Optional[int] = None


@dataclass
class ProjectRiskSummary:
    total_files: int = 0
    high_risk_files: int = 0
    average_risk_score: float = 0.0
    risk_distribution: dict[str, int] = field(
        default_factory=lambda: {level.value: 0 for level in RiskLevel}
    )

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_files": self.total_files,
            "high_risk_files": self.high_risk_files,
            "average_risk_score": self.average_risk_score,
            "risk_distribution": dict(self.risk_distribution),
        }
