"""Tests for notification delivery."""

import logging

from flakewatch.models import LifecycleNotification, LifecycleState, TestIdentity
from flakewatch.notifications import (
    CollectingNotifier,
    LoggingNotifier,
    Notifier,
    NullNotifier,
    deliver,
)


def notification():
    return LifecycleNotification(
        identity=TestIdentity("web", "test_a"),
        action="quarantined",
        reason="failure rate 0.30 exceeds threshold",
        confidence=1.0,
        from_state=LifecycleState.FLAKY,
        to_state=LifecycleState.QUARANTINED,
    )


class Broken(Notifier):
    def lifecycle(self, notification):
        raise ConnectionError("webhook down")

    def risk_alert(self, alert):
        raise ConnectionError("webhook down")


class TestDeliver:
    def test_collecting(self):
        notifier = CollectingNotifier()
        deliver(notifier, "lifecycle", notification())
        assert len(notifier.lifecycle_events) == 1
        assert notifier.lifecycle_events[0].action == "quarantined"

    def test_failure_is_logged_not_raised(self, caplog):
        with caplog.at_level(logging.WARNING, logger="flakewatch.notifications"):
            deliver(Broken(), "lifecycle", notification())
        assert "webhook down" in caplog.text

    def test_null_notifier(self):
        deliver(NullNotifier(), "risk_alert", object())


class TestLoggingNotifier:
    def test_lifecycle_is_logged(self, caplog):
        with caplog.at_level(logging.INFO, logger="flakewatch.notifications"):
            LoggingNotifier().lifecycle(notification())
        assert "web::test_a: quarantined (flaky -> quarantined)" in caplog.text
