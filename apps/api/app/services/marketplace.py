from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from fastapi import HTTPException, status
from sqlalchemy import desc, select
from sqlalchemy.orm import Session

from packages.ledger import JobWindow, SalePhase, SaleStatus, is_available, resolve_price, sale_status, utcnow

from ..models import ApprovedItem, ItemDocument, ItemStatus, Job, JobStatus
from .job_cache import JobWindowCache

logger = logging.getLogger(__name__)

WINDOWS_CACHE_KEY = "job_windows"
DEFAULT_LIMIT = 24
MAX_LIMIT = 48
RELATED_LIMIT = 12
LIST_SORTS = ("new", "price_asc", "price_desc")
SEARCH_SORTS = ("relevance", *LIST_SORTS)
CLOSED_JOB_STATUSES = (JobStatus.CANCELLED, JobStatus.COMPLETED)


@dataclass
class Listing:
    id: str
    item_id: uuid.UUID
    item_number: int
    job_id: uuid.UUID
    photo_indices: list[int]
    title: str
    description: str
    category: str
    price: float
    price_low: float | None
    price_high: float | None
    photo: str
    photos: list[str]
    phase: SalePhase | None
    created_at: datetime | None
    weight_lb: float | None = None
    relevance: int = field(default=0, compare=False)


def composite_id(item_id: uuid.UUID, item_number: int) -> str:
    return f"{item_id}_{item_number}"


def parse_composite_id(value: str) -> tuple[uuid.UUID, int | None]:
    doc_part, _, number_part = value.partition("_")
    try:
        doc_id = uuid.UUID(doc_part)
        item_number = int(number_part) if number_part else None
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="listing not found") from exc
    return doc_id, item_number


def load_job_windows(db: Session) -> dict[str, JobWindow]:
    jobs = db.scalars(
        select(Job).where(Job.deleted_at.is_(None), Job.status.not_in(CLOSED_JOB_STATUSES))
    ).all()
    return {
        str(job.id): JobWindow(
            job_id=str(job.id),
            is_online_sale_active=job.is_online_sale_active,
            online_sale_start_date=job.online_sale_start_date,
            online_sale_end_date=job.online_sale_end_date,
            estate_sale_date=job.estate_sale_date,
        )
        for job in jobs
    }


def visible_windows(
    db: Session,
    cache: JobWindowCache,
    now: datetime | None = None,
) -> dict[str, tuple[JobWindow, SaleStatus]]:
    """Jobs whose sale window currently exposes listings.

    Window snapshots come from the cache; the verdict itself is evaluated
    against ``now`` on every call.
    """
    current = now or utcnow()
    windows = cache.get(WINDOWS_CACHE_KEY, lambda: load_job_windows(db))
    visible: dict[str, tuple[JobWindow, SaleStatus]] = {}
    for job_id, window in windows.items():
        verdict = sale_status(window, current)
        if verdict.visible:
            visible[job_id] = (window, verdict)
    return visible


def _to_listing(
    doc: ItemDocument,
    item: ApprovedItem,
    window: JobWindow,
    verdict: SaleStatus,
    now: datetime,
) -> Listing | None:
    if not is_available(item, doc):
        return None
    all_photos = list(doc.photos or [])
    indices = list(item.photo_indices or [])
    photos = [all_photos[index] for index in indices if 0 <= index < len(all_photos)]
    if not photos:
        return None
    return Listing(
        id=composite_id(doc.id, item.item_number),
        item_id=doc.id,
        item_number=item.item_number,
        job_id=doc.job_id,
        photo_indices=indices,
        title=item.title or "",
        description=item.description or "",
        category=item.category or "Misc",
        price=resolve_price(item, window, now),
        price_low=item.price_low,
        price_high=item.price_high,
        photo=photos[0],
        photos=photos,
        phase=verdict.phase,
        created_at=doc.created_at,
        weight_lb=item.weight_lb,
    )


def _approved_rows(
    db: Session,
    job_ids: list[str],
    item_doc_id: uuid.UUID | None = None,
) -> list[tuple[ItemDocument, ApprovedItem]]:
    if not job_ids:
        return []
    stmt = (
        select(ItemDocument, ApprovedItem)
        .join(ApprovedItem, ApprovedItem.item_id == ItemDocument.id)
        .where(
            ItemDocument.job_id.in_([uuid.UUID(job_id) for job_id in job_ids]),
            ItemDocument.status == ItemStatus.APPROVED,
            ItemDocument.deleted_at.is_(None),
        )
    )
    if item_doc_id is not None:
        stmt = stmt.where(ItemDocument.id == item_doc_id)
    stmt = stmt.order_by(desc(ItemDocument.created_at), ApprovedItem.item_number.asc())
    return [(doc, item) for doc, item in db.execute(stmt).all()]


def _project(
    db: Session,
    cache: JobWindowCache,
    now: datetime,
    job_id: uuid.UUID | None = None,
    item_doc_id: uuid.UUID | None = None,
) -> list[Listing]:
    visible = visible_windows(db, cache, now)
    job_ids = list(visible)
    if job_id is not None:
        job_ids = [str(job_id)] if str(job_id) in visible else []
    listings: list[Listing] = []
    for doc, item in _approved_rows(db, job_ids, item_doc_id):
        window, verdict = visible[str(doc.job_id)]
        listing = _to_listing(doc, item, window, verdict, now)
        if listing is not None:
            listings.append(listing)
    return listings


def _filter(
    listings: list[Listing],
    category: str | None,
    min_price: float | None,
    max_price: float | None,
) -> list[Listing]:
    out = listings
    if category:
        wanted = category.strip().lower()
        out = [listing for listing in out if listing.category.lower() == wanted]
    if min_price is not None:
        out = [listing for listing in out if listing.price >= min_price]
    if max_price is not None:
        out = [listing for listing in out if listing.price <= max_price]
    return out


def _sort(listings: list[Listing], sort: str) -> list[Listing]:
    if sort == "price_asc":
        return sorted(listings, key=lambda listing: listing.price)
    if sort == "price_desc":
        return sorted(listings, key=lambda listing: listing.price, reverse=True)
    if sort == "relevance":
        return sorted(listings, key=lambda listing: listing.relevance, reverse=True)
    return sorted(listings, key=lambda listing: listing.created_at or datetime.min, reverse=True)


def _paginate(listings: list[Listing], page: int, limit: int) -> dict[str, Any]:
    page = max(1, page)
    limit = min(max(1, limit), MAX_LIMIT)
    start = (page - 1) * limit
    items = listings[start : start + limit]
    return {"page": page, "limit": limit, "total": len(listings), "count": len(items), "items": items}


def _matches(listing: Listing, needle: str) -> bool:
    return needle in listing.title.lower() or needle in listing.description.lower()


def relevance_score(listing: Listing, query: str) -> int:
    needle = query.lower()
    title = listing.title.lower()
    score = 0
    if title == needle:
        score += 100
    elif title.startswith(needle):
        score += 50
    elif needle in title:
        score += 25
    if needle in listing.description.lower():
        score += 10
    return score


def list_listings(
    db: Session,
    cache: JobWindowCache,
    q: str | None = None,
    category: str | None = None,
    job_id: uuid.UUID | None = None,
    min_price: float | None = None,
    max_price: float | None = None,
    sort: str = "new",
    page: int = 1,
    limit: int = DEFAULT_LIMIT,
    now: datetime | None = None,
) -> dict[str, Any]:
    current = now or utcnow()
    listings = _project(db, cache, current, job_id=job_id)
    listings = _filter(listings, category, min_price, max_price)
    if q and q.strip():
        needle = q.strip().lower()
        listings = [listing for listing in listings if _matches(listing, needle)]
    return _paginate(_sort(listings, sort if sort in LIST_SORTS else "new"), page, limit)


def search_listings(
    db: Session,
    cache: JobWindowCache,
    q: str,
    category: str | None = None,
    min_price: float | None = None,
    max_price: float | None = None,
    sort: str = "relevance",
    page: int = 1,
    limit: int = DEFAULT_LIMIT,
    now: datetime | None = None,
) -> dict[str, Any]:
    query = (q or "").strip()
    if not query:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="search query required")
    current = now or utcnow()
    needle = query.lower()
    matched: list[Listing] = []
    for listing in _filter(_project(db, cache, current), category, min_price, max_price):
        if not _matches(listing, needle):
            continue
        listing.relevance = relevance_score(listing, query)
        matched.append(listing)
    result = _paginate(_sort(matched, sort if sort in SEARCH_SORTS else "relevance"), page, limit)
    result["query"] = query
    return result


def get_listing(
    db: Session,
    cache: JobWindowCache,
    listing_id: str,
    now: datetime | None = None,
) -> Listing:
    """A specific item, or the first available item of a document when no number is given."""
    doc_id, item_number = parse_composite_id(listing_id)
    listings = _project(db, cache, now or utcnow(), item_doc_id=doc_id)
    if item_number is not None:
        listings = [listing for listing in listings if listing.item_number == item_number]
    if not listings:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="listing not found")
    return min(listings, key=lambda listing: listing.item_number)


def related_listings(
    db: Session,
    cache: JobWindowCache,
    listing_id: str,
    now: datetime | None = None,
) -> list[Listing]:
    current = now or utcnow()
    anchor = get_listing(db, cache, listing_id, current)
    same: list[Listing] = []
    other: list[Listing] = []
    for listing in _project(db, cache, current):
        if listing.item_id == anchor.item_id:
            continue
        (same if listing.category == anchor.category else other).append(listing)
    return [*same, *other][:RELATED_LIMIT]
