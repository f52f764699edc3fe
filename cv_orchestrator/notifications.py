"""User-facing notifications (toasts) emitted at tracker transitions."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Iterable, Protocol

from cv_orchestrator.log import get_logger

log = get_logger(__name__)


class Severity(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


_LEVELS: dict[Severity, int] = {
    Severity.INFO: logging.INFO,
    Severity.SUCCESS: logging.INFO,
    Severity.WARNING: logging.WARNING,
    Severity.ERROR: logging.ERROR,
}


@dataclass(frozen=True)
class Notification:
    message: str
    severity: Severity
    source: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class NotificationSink(Protocol):
    def notify(self, notification: Notification) -> None: ...


class LogSink:
    def __init__(self, logger: logging.Logger | None = None) -> None:
        self.logger = logger or log

    def notify(self, notification: Notification) -> None:
        self.logger.log(
            _LEVELS[notification.severity],
            "[%s] %s",
            notification.source,
            notification.message,
        )


class CollectingSink:
    """Keeps every notification in arrival order."""

    def __init__(self) -> None:
        self.items: list[Notification] = []

    def notify(self, notification: Notification) -> None:
        self.items.append(notification)

    def of(self, source: str) -> list[Notification]:
        return [n for n in self.items if n.source == source]

    def clear(self) -> None:
        self.items.clear()


class FanoutSink:
    def __init__(self, sinks: Iterable[NotificationSink]) -> None:
        self.sinks = list(sinks)

    def notify(self, notification: Notification) -> None:
        for sink in self.sinks:
            deliver(sink, notification)


def deliver(sink: NotificationSink, notification: Notification | None) -> None:
    """Hand a notification to a sink; a broken sink never reaches the trackers."""
    if notification is None:
        return
    try:
        sink.notify(notification)
    except Exception as exc:
        log.error("Notification sink %s failed: %s", type(sink).__name__, exc)
