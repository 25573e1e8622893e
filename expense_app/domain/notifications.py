"""User-facing notifications.

Services report outcomes through a Notifier so hosts can route them to
whatever surface they own (toasts, push, email digests).
"""
from __future__ import annotations

from typing import Protocol

from expense_app.observability.tracing import log_event


class Notifier(Protocol):
    def success(self, message: str) -> None:
        ...

    def error(self, message: str) -> None:
        ...

    def warning(self, message: str) -> None:
        ...


class LoggingNotifier:
    """Default notifier: records notifications as structured events."""

    def success(self, message: str) -> None:
        log_event("notify.success", component="notifications", message=message)

    def error(self, message: str) -> None:
        log_event("notify.error", level="warning", component="notifications", message=message)

    def warning(self, message: str) -> None:
        log_event("notify.warning", level="warning", component="notifications", message=message)


class NoopNotifier:
    def success(self, message: str) -> None:
        return None

    def error(self, message: str) -> None:
        return None

    def warning(self, message: str) -> None:
        return None
