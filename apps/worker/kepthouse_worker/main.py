import logging
import os
from datetime import datetime, timedelta, timezone
from typing import Any

from celery import Celery
from sqlalchemy import select

from app.db import SessionLocal
from app.models import Order, OrderPaymentStatus
from app.services.notifications import deliver_event_notification

logger = logging.getLogger(__name__)

broker_url = os.getenv("REDIS_URL", "redis://localhost:6379/0")
app = Celery("kepthouse-worker", broker=broker_url, backend=broker_url)

PENDING_ORDER_TTL_HOURS = int(os.getenv("PENDING_ORDER_TTL_HOURS", "24"))


def _now() -> datetime:
    return datetime.now(timezone.utc)


@app.task(name="worker.health.ping")
def ping() -> str:
    return "pong"


@app.task(
    name="worker.notify.dispatch",
    bind=True,
    autoretry_for=(Exception,),
    max_retries=3,
    retry_backoff=True,
)
def notify_dispatch(self: Celery, event_type: str, payload: dict[str, Any] | None = None) -> bool:
    return deliver_event_notification(event_type, payload or {}, raise_errors=True)


@app.task(name="worker.orders.expire_pending_tick")
def expire_pending_orders_tick() -> int:
    """Fails checkout orders whose payment session was abandoned."""
    cutoff = _now() - timedelta(hours=PENDING_ORDER_TTL_HOURS)
    expired = 0
    with SessionLocal() as db:
        rows = db.scalars(
            select(Order).where(Order.payment_status == OrderPaymentStatus.PENDING, Order.created_at < cutoff)
        ).all()
        for order in rows:
            order.payment_status = OrderPaymentStatus.FAILED
            expired += 1
        if expired:
            db.commit()
    if expired:
        logger.info("expired %s pending order(s)", expired)
    return expired


app.conf.beat_schedule = {
    "expire-pending-orders": {
        "task": "worker.orders.expire_pending_tick",
        "schedule": 3600.0,
    },
}
