from __future__ import annotations

import logging
import uuid
from typing import Any

from sqlalchemy.orm import Session

from ..models import Event
from ..settings import settings
from .notifications import deliver_event_notification

logger = logging.getLogger(__name__)

ITEM_SOLD = "ITEM_SOLD"
ORDER_PAID = "ORDER_PAID"
DEPOSIT_PAID = "DEPOSIT_PAID"
FINANCE_UPDATED = "FINANCE_UPDATED"
BID_ACCEPTED = "BID_ACCEPTED"
ORDER_NEEDS_REFUND = "ORDER_NEEDS_REFUND"


def _dispatch(event: Event) -> None:
    payload = {"job_id": event.job_id, **(event.payload_json or {})}
    if settings.event_dispatch_mode == "inline":
        deliver_event_notification(event.type, payload)
        return
    try:
        from kepthouse_worker.main import app as worker_app  # type: ignore

        worker_app.send_task("worker.notify.dispatch", args=[event.type, payload], retry=False)
    except Exception:
        # Event writes stay non-blocking when the broker is unavailable.
        logger.warning("event %s not dispatched to worker", event.type, exc_info=True)


def write_event(
    db: Session,
    source: str,
    channel: str,
    event_type: str,
    payload_json: dict[str, Any] | None = None,
    job_id: uuid.UUID | str | None = None,
    actor_id: uuid.UUID | str | None = None,
) -> Event:
    event = Event(
        source=source,
        channel=channel,
        type=event_type,
        payload_json=payload_json or {},
        job_id=str(job_id) if job_id is not None else None,
        actor_id=str(actor_id) if actor_id is not None else None,
    )
    db.add(event)
    db.flush()
    _dispatch(event)
    return event
