"""Notification collaborator interface.

The engine hands lifecycle transitions and high-risk alerts to a
``Notifier``. Delivery and retries belong to the notifier; a notifier
that raises is logged and otherwise ignored.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from typing import Any

from .logging_config import get_logger
from .models import LifecycleNotification

logger = get_logger(__name__)


class Notifier(ABC):
    @abstractmethod
    def lifecycle(self, notification: LifecycleNotification) -> None:
        ...

    @abstractmethod
    def risk_alert(self, alert: Any) -> None:
        ...


class NullNotifier(Notifier):
    def lifecycle(self, notification: LifecycleNotification) -> None:
        pass

    def risk_alert(self, alert: Any) -> None:
        pass


class LoggingNotifier(Notifier):
    """Writes every notification to the ``flakewatch.notifications`` logger."""

    def lifecycle(self, notification: LifecycleNotification) -> None:
        logger.info(
            f"{notification.identity.key}: {notification.action} "
            f"({notification.from_state.value} -> {notification.to_state.value}) "
            f"{notification.reason} [confidence={notification.confidence:.2f}]"
        )

    def risk_alert(self, alert: Any) -> None:
        logger.warning(f"High flakiness risk: {alert.file_path} ({alert.level.value}, {alert.score:.2f})")


class CollectingNotifier(Notifier):
    """Keeps notifications in memory. Thread-safe."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.lifecycle_events: list[LifecycleNotification] = []
        self.risk_alerts: list[Any] = []

    def lifecycle(self, notification: LifecycleNotification) -> None:
        with self._lock:
            self.lifecycle_events.append(notification)

    def risk_alert(self, alert: Any) -> None:
        with self._lock:
            self.risk_alerts.append(alert)


def deliver(notifier: Notifier, method: str, payload: Any) -> None:
    """Call ``notifier.<method>(payload)``, logging instead of raising."""
    try:
        getattr(notifier, method)(payload)
    except Exception as e:
        logger.warning(f"Notifier {type(notifier).__name__}.{method} failed: {e}")
