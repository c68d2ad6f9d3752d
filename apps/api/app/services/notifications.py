from __future__ import annotations

import logging
from typing import Any, Protocol

logger = logging.getLogger(__name__)

SUBJECTS: dict[str, str] = {
    "ITEM_SOLD": "An item from your estate has sold",
    "ORDER_PAID": "Your Kept House order is confirmed",
    "ORDER_NEEDS_REFUND": "An order needs a refund",
    "DEPOSIT_PAID": "Deposit received",
    "FINANCE_UPDATED": "Your estate sale finances were updated",
    "BID_ACCEPTED": "Your bid was accepted",
}


class NotificationSink(Protocol):
    def send(self, event_type: str, subject: str, payload: dict[str, Any]) -> None: ...


class LoggingNotificationSink:
    """Writes notifications to the log; stands in for the outbound mailer."""

    def send(self, event_type: str, subject: str, payload: dict[str, Any]) -> None:
        logger.info("notification %s: %s", event_type, subject)


_default_sink: NotificationSink = LoggingNotificationSink()


def get_notification_sink() -> NotificationSink:
    return _default_sink


def deliver_event_notification(
    event_type: str,
    payload: dict[str, Any] | None = None,
    sink: NotificationSink | None = None,
    raise_errors: bool = False,
) -> bool:
    """Send the notification for a domain event.

    Returns False for event types without a notification. Sink failures are
    logged and reported as False unless ``raise_errors`` is set, in which case
    they propagate so a worker task can retry.
    """
    subject = SUBJECTS.get(event_type)
    if subject is None:
        return False
    target = sink or get_notification_sink()
    try:
        target.send(event_type, subject, payload or {})
    except Exception:
        if raise_errors:
            raise
        logger.exception("notification delivery failed for %s", event_type)
        return False
    return True
