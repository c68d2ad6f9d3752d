from __future__ import annotations

import logging
import uuid
from typing import Any

from fastapi import HTTPException, status
from sqlalchemy import desc, select
from sqlalchemy.orm import Session

from packages.ledger import Disposition, effective_disposition, find_index_conflicts, utcnow

from ..models import ApprovedItem, ItemDocument, ItemStatus, Job, Role
from ..tenancy import RequestContext
from .disposition import approved_items_for
from .vision import CatalogingService, VisionError, normalize_suggestion

logger = logging.getLogger(__name__)

APPROVABLE_STATUSES = {ItemStatus.DRAFT, ItemStatus.NEEDS_REVIEW}


def create_item_document(
    db: Session,
    context: RequestContext,
    job: Job,
    title: str = "",
    description: str = "",
) -> ItemDocument:
    doc = ItemDocument(
        job_id=job.id,
        uploader_id=context.current_user_id,
        uploader_role=context.current_role,
        title=title,
        description=description,
        status=ItemStatus.DRAFT,
        photos=[],
        analyzed_photo_indices=[],
        ai_suggestions=[],
        reopen_history=[],
        sold_photo_indices=[],
        donated_photo_indices=[],
        hauled_photo_indices=[],
    )
    db.add(doc)
    db.flush()
    return doc


def attach_photos(db: Session, doc: ItemDocument, photo_urls: list[str]) -> ItemDocument:
    if not photo_urls:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="no photos supplied")
    doc.photos = [*(doc.photos or []), *photo_urls]
    if doc.status in {ItemStatus.DRAFT, ItemStatus.APPROVED}:
        doc.status = ItemStatus.NEEDS_REVIEW
    db.flush()
    return doc


def analyze_item(db: Session, doc: ItemDocument, service: CatalogingService) -> list[dict[str, Any]]:
    photos = list(doc.photos or [])
    if not photos:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="no photos to analyze")

    analyzed = set(doc.analyzed_photo_indices or [])
    pending = [(index, url) for index, url in enumerate(photos) if index not in analyzed]
    if not pending:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="all photos already analyzed")

    results: list[dict[str, Any]] = []
    for index, url in pending:
        try:
            suggestion = normalize_suggestion(service.analyze(url))
        except VisionError as exc:
            logger.warning("vision analysis skipped photo %s of %s: %s", index, doc.id, exc)
            continue
        results.append({"photo_index": index, "photo_url": url, **suggestion})
        analyzed.add(index)

    if not results:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="failed to analyze new photos")

    doc.ai_suggestions = [*(doc.ai_suggestions or []), *results]
    doc.analyzed_photo_indices = sorted(analyzed)
    db.flush()
    return results


def _validate_groups(doc: ItemDocument, groups: list[dict[str, Any]], taken: list[int]) -> None:
    photo_count = len(doc.photos or [])
    for group in groups:
        indices = group.get("photo_indices") or []
        if not indices:
            raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="photo group is empty")
        out_of_range = [index for index in indices if index < 0 or index >= photo_count]
        if out_of_range:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail=f"photo indices out of range: {out_of_range}",
            )
    conflicts = find_index_conflicts([group["photo_indices"] for group in groups], taken)
    if conflicts:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"photo indices already belong to another item: {conflicts}",
        )


def approve_item(db: Session, doc: ItemDocument, groups: list[dict[str, Any]]) -> list[ApprovedItem]:
    """Turn photo groups into approved items.

    From ``needs_review`` the groups are appended to the existing approved
    items; from ``draft`` they replace any approved item that is still
    available. Item numbers keep increasing so listing ids stay stable.
    """
    if not groups:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="no items to approve")
    if doc.status not in APPROVABLE_STATUSES:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"item cannot be approved from status {doc.status.value}",
        )

    existing = approved_items_for(db, doc.id)
    next_number = max((item.item_number for item in existing), default=0) + 1
    if doc.status == ItemStatus.DRAFT:
        kept = []
        for item in existing:
            if effective_disposition(item, doc.sold_photo_indices) == Disposition.AVAILABLE:
                db.delete(item)
            else:
                kept.append(item)
        existing = kept

    taken = [index for item in existing for index in (item.photo_indices or [])]
    _validate_groups(doc, groups, taken)

    created: list[ApprovedItem] = []
    for offset, group in enumerate(groups):
        item = ApprovedItem(
            item_id=doc.id,
            item_number=next_number + offset,
            photo_indices=sorted({int(index) for index in group["photo_indices"]}),
            title=group.get("title") or "",
            description=group.get("description") or "",
            category=group.get("category") or "Misc",
            price=group.get("price"),
            price_low=group.get("price_low"),
            price_high=group.get("price_high"),
            estate_sale_price=group.get("estate_sale_price"),
            weight_lb=group.get("weight_lb"),
        )
        db.add(item)
        created.append(item)

    doc.status = ItemStatus.APPROVED
    db.flush()
    return created


def update_approved_item(db: Session, doc: ItemDocument, item_number: int, changes: dict[str, Any]) -> ApprovedItem:
    item = db.scalar(
        select(ApprovedItem).where(ApprovedItem.item_id == doc.id, ApprovedItem.item_number == item_number)
    )
    if item is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="approved item not found")
    for key, value in changes.items():
        setattr(item, key, value)
    db.flush()
    return item


def reopen_item(db: Session, doc: ItemDocument, reason: str, actor_id: uuid.UUID) -> ItemDocument:
    if not reason.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="reason required")
    doc.status = ItemStatus.NEEDS_REVIEW
    doc.reopen_history = [
        *(doc.reopen_history or []),
        {"reopened_by": str(actor_id), "reason": reason, "reopened_at": utcnow().isoformat()},
    ]
    db.flush()
    return doc


def list_item_documents(
    db: Session,
    job_id: uuid.UUID,
    item_status: ItemStatus | None = None,
    uploader_role: Role | None = None,
) -> list[ItemDocument]:
    stmt = select(ItemDocument).where(ItemDocument.job_id == job_id, ItemDocument.deleted_at.is_(None))
    if item_status is not None:
        stmt = stmt.where(ItemDocument.status == item_status)
    if uploader_role is not None:
        stmt = stmt.where(ItemDocument.uploader_role == uploader_role)
    return list(db.scalars(stmt.order_by(desc(ItemDocument.created_at))).all())
