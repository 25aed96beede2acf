"""Flaky classification: record validation, classifier, secondary signals."""

from .classifier import ClassificationResult, apply_classification, classify, is_inactive
from .validation import partition_valid, validate_record

__all__ = [
    "ClassificationResult",
    "apply_classification",
    "classify",
    "is_inactive",
    "partition_valid",
    "validate_record",
]
