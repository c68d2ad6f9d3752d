from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..db import get_db
from ..models import Order, OrderPaymentStatus, Role
from ..schemas import DeliveryDetailsRequest, FulfillmentUpdateRequest, OrderResponse
from ..services.audit import write_audit_log
from ..services.orders import get_order, list_orders, save_delivery_details, update_fulfillment
from ..tenancy import RequestContext, get_request_context, require_role

router = APIRouter(prefix="/orders", tags=["orders"])


def _serialize_order(row: Order) -> OrderResponse:
    return OrderResponse(
        id=row.id,
        user_id=row.user_id,
        job_id=row.job_id,
        items=list(row.items_json or []),
        currency=row.currency,
        subtotal=row.subtotal,
        delivery_fee=row.delivery_fee,
        tax_amount=row.tax_amount,
        total_amount=row.total_amount,
        payment_status=row.payment_status,
        fulfillment_status=row.fulfillment_status,
        stripe_session_id=row.stripe_session_id,
        customer_email=row.customer_email,
        delivery_details_json=row.delivery_details_json or {},
        shipping_details_json=row.shipping_details_json,
        paid_at=row.paid_at,
        created_at=row.created_at,
    )


@router.get("", response_model=list[OrderResponse])
def list_my_orders_endpoint(
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
) -> list[OrderResponse]:
    return [_serialize_order(row) for row in list_orders(db, user_id=context.current_user_id)]


@router.get("/admin", response_model=list[OrderResponse])
def list_orders_admin_endpoint(
    job_id: uuid.UUID | None = Query(default=None),
    payment_status: OrderPaymentStatus | None = Query(default=None),
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
) -> list[OrderResponse]:
    require_role(context, Role.AGENT)
    return [_serialize_order(row) for row in list_orders(db, job_id=job_id, payment_status=payment_status)]


@router.get("/{order_id}", response_model=OrderResponse)
def get_order_endpoint(
    order_id: uuid.UUID,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
) -> OrderResponse:
    owner = None if context.is_agent else context.current_user_id
    return _serialize_order(get_order(db, order_id, user_id=owner))


@router.put("/{order_id}/delivery", response_model=OrderResponse)
def save_delivery_endpoint(
    order_id: uuid.UUID,
    payload: DeliveryDetailsRequest,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
) -> OrderResponse:
    order = get_order(db, order_id, user_id=context.current_user_id)
    save_delivery_details(db, order, payload.model_dump(mode="json"))
    db.commit()
    db.refresh(order)
    return _serialize_order(order)


@router.patch("/{order_id}/fulfillment", response_model=OrderResponse)
def update_fulfillment_endpoint(
    order_id: uuid.UUID,
    payload: FulfillmentUpdateRequest,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
) -> OrderResponse:
    require_role(context, Role.AGENT)
    order = get_order(db, order_id)
    update_fulfillment(db, order, payload.fulfillment_status)
    write_audit_log(
        db, context, "order.fulfillment_updated", "order", str(order.id), {"status": payload.fulfillment_status.value}
    )
    db.commit()
    db.refresh(order)
    return _serialize_order(order)
