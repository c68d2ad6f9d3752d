from __future__ import annotations

import uuid
from typing import Any

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from packages.ledger import to_cents, utcnow

from ..models import Cart
from .job_cache import JobWindowCache
from .marketplace import Listing, get_listing


def get_cart(db: Session, user_id: uuid.UUID, for_update: bool = False) -> Cart | None:
    stmt = select(Cart).where(Cart.user_id == user_id)
    if for_update:
        stmt = stmt.with_for_update()
    return db.scalar(stmt)


def get_or_create_cart(db: Session, user_id: uuid.UUID) -> Cart:
    cart = get_cart(db, user_id, for_update=True)
    if cart is None:
        cart = Cart(user_id=user_id, items_json=[])
        db.add(cart)
        db.flush()
    return cart


def cart_listing_ids(cart: Cart | None) -> list[str]:
    if cart is None:
        return []
    return [str(entry.get("listing_id")) for entry in (cart.items_json or []) if entry.get("listing_id")]


def add_to_cart(db: Session, cache: JobWindowCache, user_id: uuid.UUID, listing_id: str) -> tuple[Listing, int]:
    try:
        listing = get_listing(db, cache, listing_id)
    except HTTPException as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="item not found or unavailable") from exc
    cart = get_or_create_cart(db, user_id)
    if listing.id in cart_listing_ids(cart):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="item already in cart")
    cart.items_json = [*(cart.items_json or []), {"listing_id": listing.id, "added_at": utcnow().isoformat()}]
    db.flush()
    return listing, len(cart.items_json)


def view_cart(db: Session, cache: JobWindowCache, user_id: uuid.UUID) -> dict[str, Any]:
    """Current cart contents; entries that stopped being purchasable are dropped."""
    cart = get_cart(db, user_id, for_update=True)
    if cart is None or not cart.items_json:
        return {"items": [], "total": 0.0, "count": 0, "removed": []}

    kept: list[dict[str, Any]] = []
    rows: list[dict[str, Any]] = []
    removed: list[str] = []
    for entry in cart.items_json:
        listing_id = str(entry.get("listing_id"))
        try:
            listing = get_listing(db, cache, listing_id)
        except HTTPException:
            removed.append(listing_id)
            continue
        kept.append(entry)
        rows.append({"listing": listing, "added_at": entry.get("added_at")})

    if removed:
        cart.items_json = kept
        db.flush()
    total = to_cents(sum(row["listing"].price for row in rows))
    return {"items": rows, "total": total, "count": len(rows), "removed": removed}


def remove_from_cart(db: Session, user_id: uuid.UUID, listing_id: str) -> int:
    cart = get_cart(db, user_id, for_update=True)
    if cart is None or listing_id not in cart_listing_ids(cart):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="item not in cart")
    cart.items_json = [entry for entry in cart.items_json if entry.get("listing_id") != listing_id]
    db.flush()
    return len(cart.items_json)


def clear_cart(db: Session, user_id: uuid.UUID) -> None:
    cart = get_cart(db, user_id, for_update=True)
    if cart is None:
        db.add(Cart(user_id=user_id, items_json=[]))
    else:
        cart.items_json = []
    db.flush()
