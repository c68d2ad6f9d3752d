from __future__ import annotations

import logging
import uuid
from typing import Any

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from packages.ledger import to_cents

from ..models import Job, Order, OrderPaymentStatus
from ..settings import settings
from .cart import get_cart
from .job_cache import JobWindowCache
from .marketplace import Listing, get_listing
from .payments import PaymentGateway, line_item
from .rate_limit import enforce_user_rate_limit
from .shipping import Address, ShippingError, ShippingService, parse_property_address

logger = logging.getLogger(__name__)

DELIVERY_PICKUP = "pickup"
DELIVERY_SHIPPING = "shipping"


def expand_cart(db: Session, cache: JobWindowCache, user_id: uuid.UUID) -> list[Listing]:
    """Cart entries as live listings; any entry that can no longer be bought fails the checkout."""
    cart = get_cart(db, user_id)
    entries = list(cart.items_json or []) if cart is not None else []
    if not entries:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="cart is empty")
    listings: list[Listing] = []
    for entry in entries:
        listing_id = str(entry.get("listing_id"))
        try:
            listings.append(get_listing(db, cache, listing_id))
        except HTTPException as exc:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"item unavailable: {listing_id}",
            ) from exc
    return listings


def _origin_for(db: Session, listings: list[Listing]) -> Address:
    job = db.get(Job, listings[0].job_id)
    if job is None or not job.property_address:
        return Address(address="", city="", state="", zip_code=settings.shipping_origin_zip)
    origin = parse_property_address(job.property_address)
    if not origin.zip_code:
        origin = Address(origin.address, origin.city, origin.state, settings.shipping_origin_zip)
    return origin


def calculate_totals(
    db: Session,
    listings: list[Listing],
    delivery_method: str = DELIVERY_PICKUP,
    destination: Address | None = None,
    shipping: ShippingService | None = None,
) -> dict[str, Any]:
    subtotal = to_cents(sum(listing.price for listing in listings))
    delivery_fee = 0.0
    quote: dict[str, Any] | None = None
    origin = _origin_for(db, listings)

    if delivery_method == DELIVERY_SHIPPING:
        if shipping is None or destination is None:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="shipping address required")
        try:
            shipping_quote = shipping.quote(origin, destination, len(listings))
        except ShippingError as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
        delivery_fee = shipping_quote.rate
        quote = shipping_quote.as_dict()
    elif delivery_method != DELIVERY_PICKUP:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="unknown delivery method")

    tax = to_cents((subtotal + delivery_fee) * settings.tax_rate)
    return {
        "subtotal": subtotal,
        "delivery_fee": delivery_fee,
        "tax_rate": settings.tax_rate,
        "tax_amount": tax,
        "total": to_cents(subtotal + delivery_fee + tax),
        "delivery_method": delivery_method,
        "item_count": len(listings),
        "shipping_quote": quote,
        "pickup_address": origin.address if delivery_method == DELIVERY_PICKUP else None,
    }


def _snapshot(listing: Listing) -> dict[str, Any]:
    return {
        "composite_id": listing.id,
        "item_doc_id": str(listing.item_id),
        "job_id": str(listing.job_id),
        "item_number": listing.item_number,
        "photo_indices": list(listing.photo_indices),
        "title": listing.title,
        "photo": listing.photo,
        "photos": list(listing.photos),
        "unit_price": listing.price,
        "quantity": 1,
        "subtotal": listing.price,
    }


def create_checkout_session(
    db: Session,
    cache: JobWindowCache,
    gateway: PaymentGateway,
    user_id: uuid.UUID,
    delivery_method: str = DELIVERY_PICKUP,
    destination: Address | None = None,
    shipping: ShippingService | None = None,
    customer_email: str | None = None,
) -> tuple[Order, str]:
    enforce_user_rate_limit(user_id, "checkout", settings.checkout_rate_limit_per_minute)
    listings = expand_cart(db, cache, user_id)
    totals = calculate_totals(db, listings, delivery_method, destination, shipping)

    order = Order(
        user_id=user_id,
        job_id=listings[0].job_id,
        items_json=[_snapshot(listing) for listing in listings],
        currency=settings.currency,
        subtotal=totals["subtotal"],
        delivery_fee=totals["delivery_fee"],
        tax_amount=totals["tax_amount"],
        total_amount=totals["total"],
        payment_status=OrderPaymentStatus.PENDING,
        customer_email=customer_email,
        delivery_details_json={"method": delivery_method},
        shipping_details_json=totals["shipping_quote"],
    )
    db.add(order)
    db.flush()

    items = [line_item(listing.title or "Estate item", listing.price, image=listing.photo) for listing in listings]
    if totals["delivery_fee"] > 0:
        items.append(line_item("Shipping", totals["delivery_fee"]))
    if totals["tax_amount"] > 0:
        items.append(line_item("Sales tax", totals["tax_amount"]))

    session = gateway.create_checkout_session(
        reference_id=str(order.id),
        line_items=items,
        metadata={"order_id": str(order.id), "user_id": str(user_id)},
        customer_email=customer_email,
        **settings.checkout_urls(str(order.id)),
    )
    order.stripe_session_id = session["id"]
    db.flush()
    logger.info("checkout session %s opened for order %s", session["id"], order.id)
    return order, session["url"]


def create_deposit_checkout(db: Session, gateway: PaymentGateway, job: Job) -> dict[str, str]:
    if job.deposit_paid_at is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="deposit already paid")
    if (job.deposit_amount or 0.0) <= 0:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="job has no deposit amount")
    urls = settings.checkout_urls(str(job.id))
    return gateway.create_checkout_session(
        reference_id=f"deposit-{job.id}",
        line_items=[line_item(f"Deposit - {job.property_address}", job.deposit_amount)],
        metadata={"kind": "deposit", "job_id": str(job.id)},
        success_url=urls["success_url"],
        cancel_url=urls["cancel_url"],
        customer_email=job.contact_email,
    )
