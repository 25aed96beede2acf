"""Quarantine lifecycle manager: serialized, retried, persisted transitions.

The manager owns one lock per identity so that at most one transition is
open per identity inside a process. Across processes the store's version
check catches races; a conflicting write is retried with fresh state and
never dropped.
"""

from __future__ import annotations

import threading
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Callable, Optional

from ..classification import ClassificationResult, apply_classification, classify, is_inactive
from ..config import EngineConfig
from ..exceptions import ConcurrentTransitionConflict, PolicyViolationError
from ..logging_config import get_logger, identity_context
from ..models import (
    Classification,
    FlakyPattern,
    OutcomeRecord,
    QuarantineAction,
    TestIdentity,
    ensure_utc,
    utcnow,
)
from ..notifications import Notifier, NullNotifier, deliver
from ..storage.adapter import SampleStore
from .lifecycle import Transition, evaluate_quarantine, manual_transition

logger = get_logger(__name__)


class QuarantineManager:
    """Runs lifecycle evaluations and manual actions against a store."""

    def __init__(
        self,
        store: SampleStore,
        config: Optional[EngineConfig] = None,
        notifier: Optional[Notifier] = None,
    ):
        self.store = store
        self.config = config or EngineConfig()
        self.notifier = notifier or NullNotifier()
        self._locks: dict[TestIdentity, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def lock_for(self, identity: TestIdentity) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(identity)
            if lock is None:
                lock = self._locks[identity] = threading.Lock()
            return lock

    # ── automatic evaluation ─────────────────────────────────────────

    def process(
        self, identity: TestIdentity, now: Optional[datetime] = None
    ) -> Optional[Transition]:
        """Reclassify one identity and advance its lifecycle.

        Returns None when the identity has no pattern and does not need one.
        """
        return self._serialized(identity, lambda: self._process_once(identity, now))

    def _process_once(
        self, identity: TestIdentity, now: Optional[datetime]
    ) -> Optional[Transition]:
        existing = self.store.get_pattern(identity)
        result, runs = self._classify(identity, existing, now)

        pattern = apply_classification(existing, result, now=now)
        if pattern is None:
            return None

        transition = evaluate_quarantine(
            identity,
            pattern,
            self.config.policy_for(identity.project_id),
            result,
            runs=runs,
            now=now or result.window_end,
        )
        return self._commit(existing, transition)

    def classify(
        self, identity: TestIdentity, now: Optional[datetime] = None
    ) -> ClassificationResult:
        """Classify from stored history without changing any state."""
        result, _ = self._classify(identity, self.store.get_pattern(identity), now)
        return result

    # ── manual actions ───────────────────────────────────────────────

    def manual_quarantine(
        self, identity: TestIdentity, reason: str, now: Optional[datetime] = None
    ) -> Transition:
        """Quarantine regardless of thresholds. Always records an event."""

        def attempt() -> Transition:
            existing, pattern, _ = self._fresh_pattern(identity)
            transition = manual_transition(pattern, QuarantineAction.QUARANTINED, reason, now=now)
            return self._commit(existing, transition)

        return self._serialized(identity, attempt)

    def manual_unquarantine(
        self, identity: TestIdentity, reason: str, now: Optional[datetime] = None
    ) -> Transition:
        """Restore a test. Permitted even if it is still failing, but then
        logged as a policy violation and flagged on the event."""

        def attempt() -> Transition:
            existing, pattern, result = self._fresh_pattern(identity)
            violation = result.classification in (Classification.FLAKY, Classification.BROKEN)
            if violation:
                error = PolicyViolationError(
                    identity.key,
                    f"manual unquarantine while {result.classification.value} "
                    f"(failure rate {result.failure_rate:.1%})",
                )
                logger.warning(str(error), extra=identity_context(identity))
            transition = manual_transition(
                pattern, QuarantineAction.UNQUARANTINED, reason, now=now, policy_violation=violation
            )
            return self._commit(existing, transition)

        return self._serialized(identity, attempt)

    # ── maintenance ──────────────────────────────────────────────────

    def deactivate_inactive(
        self, project_id: Optional[str] = None, now: Optional[datetime] = None
    ) -> list[FlakyPattern]:
        """Deactivate active patterns with no runs for ``inactivity_days``."""
        now = ensure_utc(now or utcnow())
        deactivated = []
        for pattern in self.store.patterns(project_id=project_id, active_only=True):
            if not is_inactive(pattern, now, self.config.classifier):
                continue

            def attempt(identity: TestIdentity = pattern.identity) -> Optional[FlakyPattern]:
                current = self.store.get_pattern(identity)
                if current is None or not current.is_active:
                    return None
                return self.store.save_pattern(
                    replace(current, is_active=False, updated_at=now),
                    expected_version=current.version,
                )

            saved = self._serialized(pattern.identity, attempt)
            if saved is not None:
                logger.info(
                    f"{pattern.identity.key}: deactivated after inactivity",
                    extra=identity_context(pattern.identity),
                )
                deactivated.append(saved)
        return deactivated

    # ── internals ────────────────────────────────────────────────────

    def _serialized(self, identity: TestIdentity, fn: Callable):
        retries = self.config.max_transition_retries
        with self.lock_for(identity):
            for attempt in range(retries + 1):
                try:
                    return fn()
                except ConcurrentTransitionConflict as e:
                    if attempt >= retries:
                        logger.error(
                            f"Giving up on {identity.key} after {attempt + 1} attempts: {e}",
                            extra=identity_context(identity),
                        )
                        raise
                    logger.info(f"Retrying {identity.key} with fresh state: {e}")

    def _classify(
        self,
        identity: TestIdentity,
        existing: Optional[FlakyPattern],
        now: Optional[datetime],
    ) -> tuple[ClassificationResult, list[OutcomeRecord]]:
        end = ensure_utc(now) if now else self.store.latest_timestamp(identity)
        if end is None:
            return classify(identity, [], self.config.classifier, now=now), []

        since = end - timedelta(days=self.config.classifier.window_days)
        if existing is not None:
            for mark in (existing.quarantined_at, existing.recovery_started_at):
                if mark is not None:
                    since = min(since, ensure_utc(mark))

        runs = self.store.outcomes(identity, since=since, until=end)
        result = classify(
            identity,
            runs,
            self.config.classifier,
            now=end,
            since=existing.unquarantined_at if existing else None,
        )
        return result, runs

    def _fresh_pattern(
        self, identity: TestIdentity
    ) -> tuple[Optional[FlakyPattern], FlakyPattern, ClassificationResult]:
        existing = self.store.get_pattern(identity)
        result, _ = self._classify(identity, existing, None)
        base = existing or FlakyPattern(identity=identity)
        pattern = apply_classification(base, result) or base
        return existing, pattern, result

    def _commit(self, existing: Optional[FlakyPattern], transition: Transition) -> Transition:
        if existing is not None and transition.event is None and transition.pattern == existing:
            return transition
        expected = existing.version if existing else 0
        saved = self.store.save_pattern(transition.pattern, expected_version=expected, event=transition.event)
        transition.pattern = saved

        if transition.event is not None:
            logger.info(
                f"{transition.identity.key}: {transition.event.action.value} "
                f"({transition.event.triggered_by.value}) {transition.event.reason}",
                extra=identity_context(transition.identity),
            )
        for notification in transition.notifications:
            deliver(self.notifier, "lifecycle", notification)
        return transition
