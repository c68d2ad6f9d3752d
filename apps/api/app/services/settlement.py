from __future__ import annotations

import logging
import uuid
from collections import OrderedDict
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from packages.ledger import to_cents, utcnow

from ..models import Job, Order, OrderPaymentStatus
from .cart import clear_cart
from .disposition import lock_item_document, mark_sold, release_sold
from .events import ITEM_SOLD, ORDER_NEEDS_REFUND, ORDER_PAID, write_event
from .finance import post_refund_for_job_id, post_revenue_for_job_id
from .jobs import confirm_deposit

logger = logging.getLogger(__name__)

SESSION_COMPLETED = "checkout.session.completed"
SESSION_EXPIRED = "checkout.session.expired"
SESSION_PAYMENT_FAILED = "checkout.session.async_payment_failed"
CHARGE_REFUNDED = "charge.refunded"


def _event_object(event: dict[str, Any]) -> dict[str, Any]:
    data = event.get("data") or {}
    obj = data.get("object") if isinstance(data, dict) else None
    return obj if isinstance(obj, dict) else {}


def _metadata(obj: dict[str, Any]) -> dict[str, Any]:
    metadata = obj.get("metadata")
    return metadata if isinstance(metadata, dict) else {}


def _parse_uuid(value: Any) -> uuid.UUID | None:
    if not value:
        return None
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


def _lock_order(db: Session, order_id: uuid.UUID) -> Order | None:
    return db.scalar(select(Order).where(Order.id == order_id).with_for_update())


def order_label(order: Order, item_count: int) -> str:
    suffix = "s" if item_count > 1 else ""
    return f"Online Sale - Order #{str(order.id)[-8:].upper()} - {item_count} item{suffix}"


def revenue_by_job(order: Order) -> OrderedDict[uuid.UUID, tuple[float, int]]:
    """Order snapshot totals grouped per job, in first-seen order."""
    grouped: OrderedDict[uuid.UUID, tuple[float, int]] = OrderedDict()
    for snapshot in order.items_json or []:
        job_id = _parse_uuid(snapshot.get("job_id")) or order.job_id
        total, count = grouped.get(job_id, (0.0, 0))
        grouped[job_id] = (to_cents(total + float(snapshot.get("subtotal") or 0.0)), count + 1)
    return grouped


def _sold_indices_by_doc(order: Order) -> OrderedDict[uuid.UUID, list[int]]:
    grouped: OrderedDict[uuid.UUID, list[int]] = OrderedDict()
    for snapshot in order.items_json or []:
        doc_id = _parse_uuid(snapshot.get("item_doc_id"))
        if doc_id is None:
            logger.error("order %s has a snapshot without item_doc_id", order.id)
            continue
        grouped.setdefault(doc_id, []).extend(int(index) for index in snapshot.get("photo_indices") or [])
    return grouped


def _already_sold(db: Session, order: Order) -> dict[uuid.UUID, list[int]]:
    """Snapshot indices that another settlement already marked sold."""
    taken: dict[uuid.UUID, list[int]] = {}
    for doc_id, indices in _sold_indices_by_doc(order).items():
        doc = lock_item_document(db, doc_id)
        if doc is None:
            continue
        overlap = sorted(set(indices) & set(doc.sold_photo_indices or []))
        if overlap:
            taken[doc_id] = overlap
    return taken


def _flag_for_refund(db: Session, order: Order, payment_ref: str | None, taken: dict[uuid.UUID, list[int]]) -> None:
    order.payment_status = OrderPaymentStatus.NEEDS_REFUND
    order.stripe_payment_intent_id = payment_ref or order.stripe_payment_intent_id
    order.paid_at = utcnow()
    conflicts = {str(doc_id): indices for doc_id, indices in taken.items()}
    logger.warning("order %s paid for items already sold %s; flagged for refund", order.id, conflicts)
    db.flush()
    write_event(
        db=db,
        source="stripe",
        channel="marketplace",
        event_type=ORDER_NEEDS_REFUND,
        job_id=order.job_id,
        payload_json={"order_id": str(order.id), "total": order.total_amount, "conflicts": conflicts},
    )


def settle_order(db: Session, order: Order, payment_ref: str | None) -> str:
    if order.payment_status in (OrderPaymentStatus.PAID, OrderPaymentStatus.NEEDS_REFUND):
        logger.info("order %s already settled; redelivery ignored", order.id)
        return "duplicate"

    taken = _already_sold(db, order)
    if taken:
        _flag_for_refund(db, order, payment_ref, taken)
        return "order_conflict"

    for doc_id, indices in _sold_indices_by_doc(order).items():
        doc = mark_sold(db, doc_id, indices)
        if doc is not None:
            write_event(
                db=db,
                source="stripe",
                channel="marketplace",
                event_type=ITEM_SOLD,
                job_id=doc.job_id,
                payload_json={"item_doc_id": str(doc_id), "photo_indices": indices, "order_id": str(order.id)},
            )

    order.payment_status = OrderPaymentStatus.PAID
    order.stripe_payment_intent_id = payment_ref or order.stripe_payment_intent_id
    order.paid_at = utcnow()
    clear_cart(db, order.user_id)

    external_ref = order.stripe_payment_intent_id or order.stripe_session_id or f"order:{order.id}"
    for job_id, (total, count) in revenue_by_job(order).items():
        post_revenue_for_job_id(db, job_id, total, order_label(order, count), external_ref=external_ref)

    db.flush()
    write_event(
        db=db,
        source="stripe",
        channel="marketplace",
        event_type=ORDER_PAID,
        job_id=order.job_id,
        payload_json={"order_id": str(order.id), "total": order.total_amount, "email": order.customer_email},
    )
    return "order_paid"


def _held_by_other_orders(db: Session, order: Order) -> dict[uuid.UUID, set[int]]:
    held: dict[uuid.UUID, set[int]] = {}
    rows = db.scalars(
        select(Order).where(Order.payment_status == OrderPaymentStatus.PAID, Order.id != order.id)
    ).all()
    for other in rows:
        for doc_id, indices in _sold_indices_by_doc(other).items():
            held.setdefault(doc_id, set()).update(indices)
    return held


def refund_order(db: Session, order: Order, refund_ref: str | None) -> bool:
    if order.payment_status == OrderPaymentStatus.NEEDS_REFUND:
        # Nothing was recognised for a conflicting order.
        order.payment_status = OrderPaymentStatus.REFUNDED
        db.flush()
        return True
    if order.payment_status != OrderPaymentStatus.PAID:
        logger.info("refund for order %s in state %s ignored", order.id, order.payment_status.value)
        return False

    held = _held_by_other_orders(db, order)
    for doc_id, indices in _sold_indices_by_doc(order).items():
        releasable = [index for index in indices if index not in held.get(doc_id, set())]
        if len(releasable) < len(indices):
            logger.warning("order %s refund keeps indices held by another paid order on %s", order.id, doc_id)
        if releasable:
            release_sold(db, doc_id, releasable)

    order.payment_status = OrderPaymentStatus.REFUNDED
    ref = refund_ref or order.stripe_payment_intent_id or str(order.id)
    for job_id, (total, count) in revenue_by_job(order).items():
        post_refund_for_job_id(
            db,
            job_id,
            total,
            f"Refund - Order #{str(order.id)[-8:].upper()} - {count} item{'s' if count > 1 else ''}",
            external_ref=f"refund:{ref}",
        )
    db.flush()
    return True


def _handle_completed(db: Session, obj: dict[str, Any]) -> str:
    metadata = _metadata(obj)
    if metadata.get("kind") == "deposit":
        job_id = _parse_uuid(metadata.get("job_id"))
        job = db.scalar(select(Job).where(Job.id == job_id).with_for_update()) if job_id else None
        if job is None:
            logger.error("deposit payment for unknown job %s", metadata.get("job_id"))
            return "ignored"
        changed = confirm_deposit(db, job, payment_ref=obj.get("payment_intent") or obj.get("id"))
        return "deposit_confirmed" if changed else "duplicate"

    order_id = _parse_uuid(metadata.get("order_id"))
    order = _lock_order(db, order_id) if order_id else None
    if order is None:
        logger.warning("checkout completion for unknown order %s", metadata.get("order_id"))
        return "ignored"
    return settle_order(db, order, obj.get("payment_intent"))


def _handle_failed(db: Session, obj: dict[str, Any]) -> str:
    order_id = _parse_uuid(_metadata(obj).get("order_id"))
    order = _lock_order(db, order_id) if order_id else None
    if order is None or order.payment_status != OrderPaymentStatus.PENDING:
        return "ignored"
    order.payment_status = OrderPaymentStatus.FAILED
    db.flush()
    return "order_failed"


def _handle_refunded(db: Session, obj: dict[str, Any]) -> str:
    order_id = _parse_uuid(_metadata(obj).get("order_id"))
    order = _lock_order(db, order_id) if order_id else None
    if order is None and obj.get("payment_intent"):
        order = db.scalar(
            select(Order).where(Order.stripe_payment_intent_id == obj["payment_intent"]).with_for_update()
        )
    if order is None:
        return "ignored"
    return "order_refunded" if refund_order(db, order, obj.get("id")) else "ignored"


def handle_payment_event(db: Session, event: dict[str, Any]) -> str:
    """Apply a verified payment-provider event. Returns a short outcome tag."""
    event_type = event.get("type")
    obj = _event_object(event)
    if event_type == SESSION_COMPLETED:
        outcome = _handle_completed(db, obj)
    elif event_type in (SESSION_EXPIRED, SESSION_PAYMENT_FAILED):
        outcome = _handle_failed(db, obj)
    elif event_type == CHARGE_REFUNDED:
        outcome = _handle_refunded(db, obj)
    else:
        outcome = "ignored"
    logger.info("payment event %s handled: %s", event_type, outcome)
    return outcome
