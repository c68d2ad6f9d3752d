from __future__ import annotations

import uuid
from typing import Any

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..db import get_db
from ..schemas import ListingPageResponse, ListingResponse
from ..services.job_cache import JobWindowCache, get_job_cache
from ..services.marketplace import Listing, get_listing, list_listings, related_listings, search_listings

router = APIRouter(prefix="/marketplace", tags=["marketplace"])


def serialize_listing(listing: Listing) -> ListingResponse:
    return ListingResponse(
        id=listing.id,
        item_id=listing.item_id,
        item_number=listing.item_number,
        job_id=listing.job_id,
        title=listing.title,
        description=listing.description,
        category=listing.category,
        price=listing.price,
        price_low=listing.price_low,
        price_high=listing.price_high,
        photo=listing.photo,
        photos=listing.photos,
        phase=listing.phase,
        created_at=listing.created_at,
    )


def _serialize_page(result: dict[str, Any]) -> ListingPageResponse:
    return ListingPageResponse(
        page=result["page"],
        limit=result["limit"],
        total=result["total"],
        count=result["count"],
        items=[serialize_listing(listing) for listing in result["items"]],
        query=result.get("query"),
    )


@router.get("/items", response_model=ListingPageResponse)
def list_listings_endpoint(
    q: str | None = Query(default=None, max_length=200),
    category: str | None = Query(default=None, max_length=100),
    job_id: uuid.UUID | None = Query(default=None),
    min_price: float | None = Query(default=None, ge=0),
    max_price: float | None = Query(default=None, ge=0),
    sort: str = Query(default="new"),
    page: int = Query(default=1),
    limit: int = Query(default=24),
    db: Session = Depends(get_db),
    cache: JobWindowCache = Depends(get_job_cache),
) -> ListingPageResponse:
    result = list_listings(
        db,
        cache,
        q=q,
        category=category,
        job_id=job_id,
        min_price=min_price,
        max_price=max_price,
        sort=sort,
        page=page,
        limit=limit,
    )
    return _serialize_page(result)


@router.get("/search", response_model=ListingPageResponse)
def search_listings_endpoint(
    q: str = Query(default="", max_length=200),
    category: str | None = Query(default=None, max_length=100),
    min_price: float | None = Query(default=None, ge=0),
    max_price: float | None = Query(default=None, ge=0),
    sort: str = Query(default="relevance"),
    page: int = Query(default=1),
    limit: int = Query(default=24),
    db: Session = Depends(get_db),
    cache: JobWindowCache = Depends(get_job_cache),
) -> ListingPageResponse:
    result = search_listings(
        db,
        cache,
        q,
        category=category,
        min_price=min_price,
        max_price=max_price,
        sort=sort,
        page=page,
        limit=limit,
    )
    return _serialize_page(result)


@router.get("/items/{listing_id}", response_model=ListingResponse)
def get_listing_endpoint(
    listing_id: str,
    db: Session = Depends(get_db),
    cache: JobWindowCache = Depends(get_job_cache),
) -> ListingResponse:
    return serialize_listing(get_listing(db, cache, listing_id))


@router.get("/items/{listing_id}/related", response_model=list[ListingResponse])
def related_listings_endpoint(
    listing_id: str,
    db: Session = Depends(get_db),
    cache: JobWindowCache = Depends(get_job_cache),
) -> list[ListingResponse]:
    return [serialize_listing(listing) for listing in related_listings(db, cache, listing_id)]
