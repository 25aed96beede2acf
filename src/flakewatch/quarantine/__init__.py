"""Quarantine lifecycle: rules, state machine, manager, analytics."""

from .analytics import QuarantineStats, quarantine_intervals, quarantine_stats
from .lifecycle import Transition, evaluate_quarantine, manual_transition
from .manager import QuarantineManager
from .policy import PolicyValidation, validate_policy
from .rules import auto_quarantine_reason, is_critical_path

__all__ = [
    "QuarantineManager",
    "QuarantineStats",
    "PolicyValidation",
    "Transition",
    "auto_quarantine_reason",
    "evaluate_quarantine",
    "is_critical_path",
    "manual_transition",
    "quarantine_intervals",
    "quarantine_stats",
    "validate_policy",
]
