from __future__ import annotations

import logging
import uuid
from collections import Counter
from dataclasses import dataclass, field
from typing import Any

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from packages.ledger import Disposition, effective_disposition, release_indices, union_indices, utcnow

from ..models import ApprovedItem, ItemDisposition, ItemDocument, ItemStatus

logger = logging.getLogger(__name__)


@dataclass
class DispositionResult:
    updated: int = 0
    updated_item_numbers: list[int] = field(default_factory=list)
    skipped: list[int] = field(default_factory=list)
    unmatched: list[int] = field(default_factory=list)


def lock_item_document(db: Session, item_doc_id: uuid.UUID) -> ItemDocument | None:
    return db.scalar(
        select(ItemDocument).where(ItemDocument.id == item_doc_id, ItemDocument.deleted_at.is_(None)).with_for_update()
    )


def get_item_document(db: Session, item_doc_id: uuid.UUID, for_update: bool = False) -> ItemDocument:
    if for_update:
        doc = lock_item_document(db, item_doc_id)
    else:
        doc = db.scalar(select(ItemDocument).where(ItemDocument.id == item_doc_id, ItemDocument.deleted_at.is_(None)))
    if doc is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="item not found")
    return doc


def approved_items_for(db: Session, item_doc_id: uuid.UUID) -> list[ApprovedItem]:
    return list(
        db.scalars(
            select(ApprovedItem).where(ApprovedItem.item_id == item_doc_id).order_by(ApprovedItem.item_number.asc())
        ).all()
    )


def _all_sold(doc: ItemDocument, approved: list[ApprovedItem]) -> bool:
    if not approved:
        return False
    sold = doc.sold_photo_indices or []
    return all(effective_disposition(item, sold) == Disposition.SOLD for item in approved)


def mark_sold(db: Session, item_doc_id: uuid.UUID, photo_indices: list[int]) -> ItemDocument | None:
    """Union the indices into the sold set. Posts no revenue."""
    doc = lock_item_document(db, item_doc_id)
    if doc is None:
        logger.error("mark_sold on missing item document %s", item_doc_id)
        return None

    current = list(doc.sold_photo_indices or [])
    merged = union_indices(current, photo_indices)
    if merged != sorted(current):
        doc.sold_photo_indices = merged
        if doc.sold_at is None:
            doc.sold_at = utcnow()

    if doc.status != ItemStatus.SOLD and _all_sold(doc, approved_items_for(db, doc.id)):
        doc.status = ItemStatus.SOLD
    db.flush()
    return doc


def release_sold(db: Session, item_doc_id: uuid.UUID, photo_indices: list[int]) -> ItemDocument | None:
    doc = lock_item_document(db, item_doc_id)
    if doc is None:
        logger.error("release_sold on missing item document %s", item_doc_id)
        return None
    doc.sold_photo_indices = release_indices(doc.sold_photo_indices, photo_indices)
    if doc.status == ItemStatus.SOLD:
        doc.status = ItemStatus.APPROVED
    db.flush()
    return doc


def _mark_disposed(
    db: Session,
    item_doc_id: uuid.UUID,
    item_numbers: list[int],
    actor_id: uuid.UUID | None,
    disposition: ItemDisposition,
) -> DispositionResult:
    doc = get_item_document(db, item_doc_id, for_update=True)
    wanted = {int(number) for number in item_numbers}
    result = DispositionResult()

    sold = doc.sold_photo_indices or []
    now = utcnow()
    added: list[int] = []
    matched: set[int] = set()
    for item in approved_items_for(db, doc.id):
        if item.item_number not in wanted:
            continue
        matched.add(item.item_number)
        if effective_disposition(item, sold) != Disposition.AVAILABLE:
            result.skipped.append(item.item_number)
            continue
        item.disposition = disposition
        item.disposition_at = now
        item.disposition_by = actor_id
        added.extend(item.photo_indices or [])
        result.updated_item_numbers.append(item.item_number)

    result.unmatched = sorted(wanted - matched)
    result.updated = len(result.updated_item_numbers)
    if result.updated == 0:
        return result

    if disposition == ItemDisposition.DONATED:
        doc.donated_photo_indices = union_indices(doc.donated_photo_indices, added)
        if doc.donated_at is None:
            doc.donated_at = now
    else:
        doc.hauled_photo_indices = union_indices(doc.hauled_photo_indices, added)
        if doc.hauled_at is None:
            doc.hauled_at = now
    db.flush()
    logger.info("marked %s item(s) %s on %s", result.updated, disposition.value, doc.id)
    return result


def mark_donated(
    db: Session, item_doc_id: uuid.UUID, item_numbers: list[int], actor_id: uuid.UUID | None = None
) -> DispositionResult:
    return _mark_disposed(db, item_doc_id, item_numbers, actor_id, ItemDisposition.DONATED)


def mark_hauled(
    db: Session, item_doc_id: uuid.UUID, item_numbers: list[int], actor_id: uuid.UUID | None = None
) -> DispositionResult:
    return _mark_disposed(db, item_doc_id, item_numbers, actor_id, ItemDisposition.HAULED)


def job_item_summary(
    db: Session,
    job_id: uuid.UUID,
    disposition: Disposition | None = None,
) -> dict[str, Any]:
    docs = db.scalars(
        select(ItemDocument).where(ItemDocument.job_id == job_id, ItemDocument.deleted_at.is_(None))
    ).all()
    counts: Counter[str] = Counter({value.value: 0 for value in Disposition})
    rows: list[dict[str, Any]] = []
    for doc in docs:
        for item in approved_items_for(db, doc.id):
            state = effective_disposition(item, doc.sold_photo_indices)
            counts[state.value] += 1
            if disposition is not None and state != disposition:
                continue
            rows.append(
                {
                    "item_doc_id": doc.id,
                    "item_number": item.item_number,
                    "composite_id": f"{doc.id}_{item.item_number}",
                    "title": item.title,
                    "photo_indices": list(item.photo_indices or []),
                    "disposition": state,
                    "disposition_at": item.disposition_at,
                }
            )
    return {"counts": {"total": sum(counts.values()), **dict(counts)}, "items": rows}
