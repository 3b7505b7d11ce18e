"""Notifier implementations and fire-and-forget delivery."""

from uuid import uuid4

from rental_services.notifications import (
    LoggingNotifier,
    Notification,
    NotificationKind,
    RecordingNotifier,
    send_safely,
)


def _notification(kind=NotificationKind.LISTING_EXPIRED):
    return Notification(
        kind=kind,
        recipient_id=uuid4(),
        subject="Listing expired",
        body="Unit A1 is no longer advertised.",
        unit_id=uuid4(),
    )


class _FailingNotifier:
    def send(self, notification):
        raise ConnectionError("smtp unreachable")


class TestNotifiers:

    def test_recording_notifier_filters_by_kind(self):
        notifier = RecordingNotifier()
        notifier.send(_notification())
        notifier.send(_notification(NotificationKind.LISTING_AUTO_REMOVED))
        assert len(notifier.of_kind(NotificationKind.LISTING_EXPIRED)) == 1

    def test_logging_notifier(self, captured_logs):
        LoggingNotifier().send(_notification())
        record = next(r for r in captured_logs() if r["message"] == "notification_sent")
        assert record["kind"] == "LISTING_EXPIRED"


class TestSendSafely:

    def test_success(self):
        notifier = RecordingNotifier()
        assert send_safely(notifier, _notification())
        assert len(notifier.sent) == 1

    def test_failure_is_logged_not_raised(self, captured_logs):
        assert not send_safely(_FailingNotifier(), _notification())
        record = next(r for r in captured_logs() if r["message"] == "notification_failed")
        assert record["exc_type"] == "ConnectionError"
