"""
Flakewatch - Flaky Test Classification & Quarantine Lifecycle Engine

Classifies tests from their pass/fail history, quarantines and restores
flaky tests under a configurable policy, estimates what flakiness costs
a team, and scores test files for flakiness risk before they ever fail.
"""

__version__ = "0.1.0"

from .classification import ClassificationResult, classify
from .config import EngineConfig, TeamConfiguration, load_config
from .engine import BatchResult, FlakewatchEngine
from .models import Classification, LifecycleState, OutcomeRecord, OutcomeStatus, TestIdentity
from .quarantine import evaluate_quarantine
from .risk import score_risk

__all__ = [
    "FlakewatchEngine",  # Main entry point
    "BatchResult",
    "EngineConfig",
    "TeamConfiguration",
    "load_config",
    "TestIdentity",
    "OutcomeRecord",
    "OutcomeStatus",
    "Classification",
    "LifecycleState",
    "ClassificationResult",
    "classify",
    "evaluate_quarantine",
    "score_risk",
]
