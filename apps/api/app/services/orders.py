from __future__ import annotations

import uuid
from typing import Any

from fastapi import HTTPException, status
from sqlalchemy import desc, select
from sqlalchemy.orm import Session

from ..models import FulfillmentStatus, Order, OrderPaymentStatus


def get_order(db: Session, order_id: uuid.UUID, user_id: uuid.UUID | None = None) -> Order:
    stmt = select(Order).where(Order.id == order_id)
    if user_id is not None:
        stmt = stmt.where(Order.user_id == user_id)
    order = db.scalar(stmt)
    if order is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="order not found")
    return order


def list_orders(
    db: Session,
    user_id: uuid.UUID | None = None,
    job_id: uuid.UUID | None = None,
    payment_status: OrderPaymentStatus | None = None,
) -> list[Order]:
    stmt = select(Order)
    if user_id is not None:
        stmt = stmt.where(Order.user_id == user_id)
    if job_id is not None:
        stmt = stmt.where(Order.job_id == job_id)
    if payment_status is not None:
        stmt = stmt.where(Order.payment_status == payment_status)
    return list(db.scalars(stmt.order_by(desc(Order.created_at))).all())


def save_delivery_details(db: Session, order: Order, details: dict[str, Any]) -> Order:
    order.delivery_details_json = {**(order.delivery_details_json or {}), **details}
    db.flush()
    return order


def update_fulfillment(db: Session, order: Order, fulfillment_status: FulfillmentStatus) -> Order:
    if order.payment_status != OrderPaymentStatus.PAID:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"order is {order.payment_status.value}",
        )
    order.fulfillment_status = fulfillment_status
    db.flush()
    return order
