from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..db import get_db
from ..schemas import (
    CartAddRequest,
    CartItemResponse,
    CartMutationResponse,
    CartResponse,
    CheckoutRequest,
    CheckoutSessionResponse,
    CheckoutTotalsResponse,
    ShippingQuoteResponse,
)
from ..services.cart import add_to_cart, clear_cart, remove_from_cart, view_cart
from ..services.checkout import DELIVERY_SHIPPING, calculate_totals, create_checkout_session, expand_cart
from ..services.job_cache import JobWindowCache, get_job_cache
from ..services.payments import get_payment_gateway
from ..services.shipping import Address, ShippingService, get_shipping_service
from ..tenancy import RequestContext, get_request_context
from .marketplace import serialize_listing

router = APIRouter(prefix="/cart", tags=["cart"])
checkout_router = APIRouter(prefix="/checkout", tags=["checkout"])


def _destination(payload: CheckoutRequest) -> Address | None:
    if payload.shipping_address is None:
        return None
    return Address(
        address=payload.shipping_address.address,
        city=payload.shipping_address.city,
        state=payload.shipping_address.state,
        zip_code=payload.shipping_address.zip_code,
    )


def _shipping_for(payload: CheckoutRequest) -> ShippingService | None:
    return get_shipping_service() if payload.delivery_method == DELIVERY_SHIPPING else None


@router.get("", response_model=CartResponse)
def view_cart_endpoint(
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
    cache: JobWindowCache = Depends(get_job_cache),
) -> CartResponse:
    cart = view_cart(db, cache, context.current_user_id)
    db.commit()
    return CartResponse(
        items=[
            CartItemResponse(listing=serialize_listing(row["listing"]), added_at=row["added_at"])
            for row in cart["items"]
        ],
        total=cart["total"],
        count=cart["count"],
        removed=cart["removed"],
    )


@router.post("/items", response_model=CartMutationResponse, status_code=201)
def add_to_cart_endpoint(
    payload: CartAddRequest,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
    cache: JobWindowCache = Depends(get_job_cache),
) -> CartMutationResponse:
    listing, count = add_to_cart(db, cache, context.current_user_id, payload.listing_id)
    db.commit()
    return CartMutationResponse(listing_id=listing.id, count=count)


@router.delete("/items/{listing_id}", response_model=CartMutationResponse)
def remove_from_cart_endpoint(
    listing_id: str,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
) -> CartMutationResponse:
    count = remove_from_cart(db, context.current_user_id, listing_id)
    db.commit()
    return CartMutationResponse(listing_id=listing_id, count=count)


@router.delete("", response_model=CartMutationResponse)
def clear_cart_endpoint(
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
) -> CartMutationResponse:
    clear_cart(db, context.current_user_id)
    db.commit()
    return CartMutationResponse(listing_id="*", count=0)


@checkout_router.post("/totals", response_model=CheckoutTotalsResponse)
def checkout_totals_endpoint(
    payload: CheckoutRequest,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
    cache: JobWindowCache = Depends(get_job_cache),
) -> CheckoutTotalsResponse:
    listings = expand_cart(db, cache, context.current_user_id)
    totals = calculate_totals(db, listings, payload.delivery_method, _destination(payload), _shipping_for(payload))
    quote = totals.pop("shipping_quote")
    return CheckoutTotalsResponse(**totals, shipping_quote=ShippingQuoteResponse(**quote) if quote else None)


@checkout_router.post("/session", response_model=CheckoutSessionResponse, status_code=201)
def checkout_session_endpoint(
    payload: CheckoutRequest,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
    cache: JobWindowCache = Depends(get_job_cache),
) -> CheckoutSessionResponse:
    order, url = create_checkout_session(
        db,
        cache,
        get_payment_gateway(),
        context.current_user_id,
        delivery_method=payload.delivery_method,
        destination=_destination(payload),
        shipping=_shipping_for(payload),
        customer_email=payload.customer_email,
    )
    db.commit()
    return CheckoutSessionResponse(session_id=order.stripe_session_id or "", url=url, order_id=order.id)
