"""Quarantine lifecycle exceptions: policy violations and write races."""

from typing import Optional

from .base import FlakewatchError


class LifecycleError(FlakewatchError):
    """Base class for quarantine lifecycle errors."""

    pass


class PolicyViolationError(LifecycleError):
    """A manual action contradicts the current classification.

    The action is still applied; this is raised only by strict callers
    and otherwise logged at warning level.
    """

    def __init__(self, identity_key: str, reason: str):
        super().__init__(
            f"Policy violation for {identity_key}",
            details={"identity": identity_key, "reason": reason},
        )
        self.identity_key = identity_key
        self.reason = reason


class ConcurrentTransitionConflict(LifecycleError):
    """Two writers raced on the same identity.

    Raised by the store when the pattern version no longer matches the
    version the transition was computed from.
    """

    def __init__(
        self, identity_key: str, expected_version: int, actual_version: Optional[int] = None
    ):
        details = {"identity": identity_key, "expected_version": str(expected_version)}
        if actual_version is not None:
            details["actual_version"] = str(actual_version)
        super().__init__(f"Concurrent transition conflict on {identity_key}", details=details)
        self.identity_key = identity_key
        self.expected_version = expected_version
        self.actual_version = actual_version
