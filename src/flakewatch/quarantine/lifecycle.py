"""Quarantine lifecycle state machine.

States::

    STABLE ──flag──> FLAKY ──auto rule──> QUARANTINED ──stability window──> RECOVERING_STABLE
      ^                │                      ^                                  │
      └────cleared─────┘                      └────────any failure───────────────┤
      ^                                                                          │
      └──────────────────────confirmation window (auto-unquarantine)─────────────┘

Evaluation is a pure function of the current pattern, the latest
classification, the runs observed so far and the policy. It performs at
most one quarantine-flag change per call, so it emits at most one
QuarantineEvent. Pure state changes (flagged, cleared, recovering) only
produce notifications.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Optional, Sequence

from ..classification import ClassificationResult
from ..config import QuarantinePolicy
from ..models import (
    Classification,
    FlakyPattern,
    LifecycleNotification,
    LifecycleState,
    OutcomeRecord,
    OutcomeStatus,
    QuarantineAction,
    QuarantineEvent,
    TestIdentity,
    TriggeredBy,
    ensure_utc,
    utcnow,
)
from .rules import auto_quarantine_reason


@dataclass
class Transition:
    """Result of one lifecycle evaluation.

    ``pattern`` is the pattern to persist; ``event`` is set only when the
    quarantined flag changed (or a manual action was recorded).
    """

    identity: TestIdentity
    previous_state: LifecycleState
    new_state: LifecycleState
    pattern: FlakyPattern
    event: Optional[QuarantineEvent] = None
    notifications: list[LifecycleNotification] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return self.previous_state is not self.new_state or self.event is not None


class _Builder:
    """Accumulates state changes for a single evaluation."""

    def __init__(self, pattern: FlakyPattern, now: datetime):
        self.start = pattern.state
        self.pattern = pattern
        self.now = now
        self.event: Optional[QuarantineEvent] = None
        self.notifications: list[LifecycleNotification] = []

    @property
    def state(self) -> LifecycleState:
        return self.pattern.state

    def move(self, to: LifecycleState, action: str, reason: str, **changes) -> None:
        notification = LifecycleNotification(
            identity=self.pattern.identity,
            action=action,
            reason=reason,
            confidence=self.pattern.confidence,
            from_state=self.pattern.state,
            to_state=to,
            timestamp=self.now,
        )
        self.pattern = replace(self.pattern, state=to, **changes)
        self.notifications.append(notification)

    def record(
        self,
        action: QuarantineAction,
        triggered_by: TriggeredBy,
        reason: str,
        policy_violation: bool = False,
    ) -> None:
        self.event = QuarantineEvent(
            identity=self.pattern.identity,
            action=action,
            triggered_by=triggered_by,
            reason=reason,
            timestamp=self.now,
            confidence=self.pattern.confidence,
            policy_violation=policy_violation,
        )

    def build(self) -> Transition:
        return Transition(
            identity=self.pattern.identity,
            previous_state=self.start,
            new_state=self.pattern.state,
            pattern=self.pattern,
            event=self.event,
            notifications=self.notifications,
        )


def evaluate_quarantine(
    identity: TestIdentity,
    current_pattern: FlakyPattern,
    policy: QuarantinePolicy,
    result: ClassificationResult,
    runs: Sequence[OutcomeRecord] = (),
    now: Optional[datetime] = None,
) -> Transition:
    """Advance the lifecycle of one identity by one evaluation cycle.

    Args:
        identity: The test being evaluated
        current_pattern: Pattern with statistics already refreshed from
            ``result``
        policy: Quarantine policy for the identity's project
        result: Latest classification
        runs: Outcome history reaching back at least to the quarantine
            time; used to measure stability since quarantine/recovery
        now: Evaluation time (defaults to the classification window end)

    Returns:
        Transition with the new state and at most one QuarantineEvent.
    """
    now = ensure_utc(now or result.window_end or utcnow())
    runs = sorted(
        (r for r in runs if r.status is not None and r.status is not OutcomeStatus.SKIPPED),
        key=lambda r: r.timestamp,
    )
    b = _Builder(current_pattern, now)

    if b.state is LifecycleState.STABLE:
        if result.is_active and result.confidence >= policy.min_confidence_for_flagging:
            b.move(
                LifecycleState.FLAKY,
                "flagged",
                f"Classified flaky at {result.failure_rate:.1%} (confidence {result.confidence:.2f})",
            )

    if b.state is LifecycleState.FLAKY:
        if result.classification is Classification.STABLE:
            b.move(LifecycleState.STABLE, "cleared", "Failure rate back below the flaky band")
        else:
            reason = auto_quarantine_reason(identity, result, policy)
            if reason:
                b.move(
                    LifecycleState.QUARANTINED,
                    "quarantined",
                    reason,
                    is_quarantined=True,
                    quarantined_at=now,
                    recovery_started_at=None,
                )
                b.record(QuarantineAction.QUARANTINED, TriggeredBy.AUTO, reason)
                return b.build()

    if b.state is LifecycleState.QUARANTINED:
        reason = _stability_reached(b.pattern, runs, policy, now)
        if reason:
            b.move(LifecycleState.RECOVERING_STABLE, "recovering", reason, recovery_started_at=now)

    if b.state is LifecycleState.RECOVERING_STABLE:
        started = b.pattern.recovery_started_at or now
        failed = [r for r in runs if r.is_failure and ensure_utc(r.timestamp) > started]
        if failed:
            reason = f"Failure during recovery window at {failed[0].timestamp.isoformat()}"
            b.move(
                LifecycleState.QUARANTINED,
                "requarantined",
                reason,
                is_quarantined=True,
                quarantined_at=now,
                recovery_started_at=None,
                premature_unquarantines=b.pattern.premature_unquarantines + 1,
            )
            b.record(QuarantineAction.QUARANTINED, TriggeredBy.AUTO, reason)
        elif _recovery_confirmed(started, runs, policy, now):
            reason = _window_text(policy) + " without failures"
            b.move(
                LifecycleState.STABLE,
                "unquarantined",
                reason,
                is_quarantined=False,
                quarantined_at=None,
                recovery_started_at=None,
                unquarantined_at=now,
            )
            b.record(QuarantineAction.UNQUARANTINED, TriggeredBy.AUTO, reason)

    return b.build()


def manual_transition(
    pattern: FlakyPattern,
    action: QuarantineAction,
    reason: str,
    now: Optional[datetime] = None,
    policy_violation: bool = False,
) -> Transition:
    """Apply an operator action. Always records a manual event."""
    b = _Builder(pattern, ensure_utc(now or utcnow()))
    if action is QuarantineAction.QUARANTINED:
        b.move(
            LifecycleState.QUARANTINED,
            "quarantined",
            reason,
            is_quarantined=True,
            quarantined_at=b.now,
            recovery_started_at=None,
        )
    else:
        b.move(
            LifecycleState.STABLE,
            "unquarantined",
            reason,
            is_quarantined=False,
            quarantined_at=None,
            recovery_started_at=None,
            unquarantined_at=b.now,
        )
    b.record(action, TriggeredBy.MANUAL, reason, policy_violation=policy_violation)
    return b.build()


def _window_text(policy: QuarantinePolicy) -> str:
    if policy.stability_mode == "runs":
        return f"{policy.stability_window_runs} consecutive passing runs"
    return f"{policy.stability_window_days} days"


def _stability_reached(
    pattern: FlakyPattern,
    runs: Sequence[OutcomeRecord],
    policy: QuarantinePolicy,
    now: datetime,
) -> Optional[str]:
    """Reason string when the quarantined test has been clean long enough."""
    since = ensure_utc(pattern.quarantined_at) if pattern.quarantined_at else None
    observed = [r for r in runs if since is None or ensure_utc(r.timestamp) > since]

    if policy.stability_mode == "runs":
        streak = 0
        for r in reversed(observed):
            if r.is_failure:
                break
            streak += 1
        if streak >= policy.stability_window_runs:
            return f"{streak} consecutive passing runs since quarantine"
        return None

    # Days mode: the clock restarts at the last failure after quarantine.
    failures = [r for r in observed if r.is_failure]
    reference = ensure_utc(failures[-1].timestamp) if failures else since
    if reference is None:
        return None
    passes = [r for r in observed if ensure_utc(r.timestamp) > reference]
    if passes and now - reference >= timedelta(days=policy.stability_window_days):
        return f"No failures for {policy.stability_window_days} days"
    return None


def _recovery_confirmed(
    started: datetime,
    runs: Sequence[OutcomeRecord],
    policy: QuarantinePolicy,
    now: datetime,
) -> bool:
    if policy.stability_mode == "runs":
        seen = sum(1 for r in runs if ensure_utc(r.timestamp) > started)
        return seen >= policy.recovery_confirmation_runs
    return now - started >= timedelta(days=policy.recovery_confirmation_days)
