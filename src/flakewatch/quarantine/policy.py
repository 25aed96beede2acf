"""Quarantine policy validation.

``QuarantinePolicy`` rejects impossible values at construction time.
``validate_policy`` is the softer check used before a policy is saved: it
collects every error at once and adds warnings for legal but risky values.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Mapping, Union

from ..config import QuarantinePolicy

_UNIT_FIELDS = {
    "min_confidence_for_flagging": "Minimum confidence for flagging",
    "auto_quarantine_threshold": "Failure rate threshold",
    "auto_quarantine_confidence": "Confidence threshold",
    "critical_path_threshold": "Critical path threshold",
    "rapid_degradation_confidence": "Rapid degradation confidence",
}

_COUNT_FIELDS = {
    "consecutive_failure_threshold": "Consecutive failures",
    "stability_window_runs": "Stability window runs",
    "stability_window_days": "Stability window days",
    "rapid_degradation_min_runs": "Rapid degradation minimum runs",
}


@dataclass
class PolicyValidation:
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


def validate_policy(policy: Union[QuarantinePolicy, Mapping[str, Any]]) -> PolicyValidation:
    """Check a policy (or a partial dict of policy fields)."""
    values = asdict(QuarantinePolicy())
    if isinstance(policy, QuarantinePolicy):
        values.update(asdict(policy))
    else:
        unknown = set(policy) - set(values)
        values.update(policy)
        result = PolicyValidation(errors=[f"Unknown policy field '{k}'" for k in sorted(unknown)])
        return _check(values, result)
    return _check(values, PolicyValidation())


def _check(values: dict, result: PolicyValidation) -> PolicyValidation:
    for name, label in _UNIT_FIELDS.items():
        if not 0.0 <= values[name] <= 1.0:
            result.errors.append(f"{label} must be between 0 and 1")
    for name, label in _COUNT_FIELDS.items():
        if values[name] < 1:
            result.errors.append(f"{label} must be at least 1")
    if values["stability_mode"] not in ("runs", "days"):
        result.errors.append("Stability mode must be 'runs' or 'days'")
    if values["rapid_degradation_factor"] < 1.0:
        result.errors.append("Rapid degradation factor must be at least 1.0")

    if values["auto_quarantine_threshold"] < 0.1:
        result.warnings.append("Very low failure rate threshold may cause excessive quarantining")
    if values["auto_quarantine_threshold"] > 0.8:
        result.warnings.append("High failure rate threshold may not catch flaky tests early enough")
    if values["auto_quarantine_confidence"] < 0.5:
        result.warnings.append("Low confidence threshold may result in false positives")
    if values["stability_window_days"] > 30:
        result.warnings.append("Long stability period may keep good tests quarantined too long")
    if values["stability_window_runs"] < 3:
        result.warnings.append("Short stability window may release unstable tests")
    if values["critical_path_threshold"] > values["auto_quarantine_threshold"]:
        result.warnings.append(
            "Critical path threshold is above the general threshold and never fires first"
        )
    return result
