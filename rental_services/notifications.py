"""
rental_services.notifications -- Outbound notifications to property managers.

Delivery (email, push) is an external collaborator.  Services depend on the
``Notifier`` protocol; the default implementation only logs.  Notifications
are fire-and-forget: callers log a failed send and carry on, and nothing is
retried.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol
from uuid import UUID

from rental_kernel.logging_config import get_logger

logger = get_logger("services.notifications")


class NotificationKind(str, Enum):
    LISTING_EXPIRED = "LISTING_EXPIRED"
    LISTING_AUTO_REMOVED = "LISTING_AUTO_REMOVED"
    LISTING_REMOVAL_PENDING = "LISTING_REMOVAL_PENDING"
    LISTING_DECISION_REQUIRED = "LISTING_DECISION_REQUIRED"


@dataclass(frozen=True)
class Notification:
    kind: NotificationKind
    recipient_id: UUID | None
    subject: str
    body: str
    unit_id: UUID | None = None
    data: dict[str, Any] = field(default_factory=dict)


class Notifier(Protocol):
    def send(self, notification: Notification) -> None:
        ...


class LoggingNotifier:
    """Writes each notification to the structured log."""

    def send(self, notification: Notification) -> None:
        logger.info(
            "notification_sent",
            extra={
                "kind": notification.kind.value,
                "recipient_id": str(notification.recipient_id) if notification.recipient_id else None,
                "unit_id": str(notification.unit_id) if notification.unit_id else None,
                "subject": notification.subject,
            },
        )


class RecordingNotifier:
    """Keeps notifications in memory; used by tests and dry runs."""

    def __init__(self) -> None:
        self.sent: list[Notification] = []

    def send(self, notification: Notification) -> None:
        self.sent.append(notification)

    def of_kind(self, kind: NotificationKind) -> list[Notification]:
        return [n for n in self.sent if n.kind == kind]


def send_safely(notifier: Notifier, notification: Notification) -> bool:
    """Send without letting a delivery failure reach the caller.

    Returns False (and logs ``notification_failed``) when the notifier raised.
    """
    try:
        notifier.send(notification)
    except Exception:  # noqa: BLE001
        logger.warning(
            "notification_failed",
            extra={
                "kind": notification.kind.value,
                "unit_id": str(notification.unit_id) if notification.unit_id else None,
            },
            exc_info=True,
        )
        return False
    return True
