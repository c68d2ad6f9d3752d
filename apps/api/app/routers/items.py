from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from packages.ledger import Disposition, effective_disposition

from ..db import get_db
from ..models import ApprovedItem, ItemDocument, ItemStatus, Role
from ..schemas import (
    AnalysisResponse,
    ApprovedItemResponse,
    ApprovedItemUpdateRequest,
    ApproveRequest,
    DispositionRequest,
    DispositionResultResponse,
    ItemDocumentCreateRequest,
    ItemDocumentResponse,
    ItemSummaryCounts,
    ItemSummaryResponse,
    ItemSummaryRow,
    PhotoAttachRequest,
    ReopenRequest,
)
from ..services.audit import write_audit_log
from ..services.catalog import (
    analyze_item,
    approve_item,
    attach_photos,
    create_item_document,
    list_item_documents,
    reopen_item,
    update_approved_item,
)
from ..services.disposition import (
    DispositionResult,
    approved_items_for,
    get_item_document,
    job_item_summary,
    mark_donated,
    mark_hauled,
)
from ..services.jobs import get_job
from ..services.marketplace import composite_id
from ..services.vision import VisionError, get_vision_service
from ..tenancy import RequestContext, get_request_context, require_job_access, require_role

router = APIRouter(prefix="/items", tags=["items"])
job_items_router = APIRouter(prefix="/jobs/{job_id}/items", tags=["items"])


def _serialize_approved(doc: ItemDocument, row: ApprovedItem) -> ApprovedItemResponse:
    return ApprovedItemResponse(
        item_number=row.item_number,
        composite_id=composite_id(doc.id, row.item_number),
        photo_indices=list(row.photo_indices or []),
        title=row.title,
        description=row.description,
        category=row.category,
        price=row.price,
        price_low=row.price_low,
        price_high=row.price_high,
        estate_sale_price=row.estate_sale_price,
        weight_lb=row.weight_lb,
        disposition=effective_disposition(row, doc.sold_photo_indices),
        disposition_at=row.disposition_at,
    )


def _serialize_document(db: Session, doc: ItemDocument) -> ItemDocumentResponse:
    return ItemDocumentResponse(
        id=doc.id,
        job_id=doc.job_id,
        uploader_id=doc.uploader_id,
        uploader_role=doc.uploader_role,
        title=doc.title,
        description=doc.description,
        status=doc.status,
        photos=list(doc.photos or []),
        analyzed_photo_indices=list(doc.analyzed_photo_indices or []),
        ai_suggestions=list(doc.ai_suggestions or []),
        reopen_history=list(doc.reopen_history or []),
        sold_photo_indices=list(doc.sold_photo_indices or []),
        donated_photo_indices=list(doc.donated_photo_indices or []),
        hauled_photo_indices=list(doc.hauled_photo_indices or []),
        approved_items=[_serialize_approved(doc, row) for row in approved_items_for(db, doc.id)],
        sold_at=doc.sold_at,
        created_at=doc.created_at,
    )


def _serialize_result(doc_id: uuid.UUID, disposition: Disposition, result: DispositionResult) -> DispositionResultResponse:
    return DispositionResultResponse(
        item_id=doc_id,
        disposition=disposition,
        updated=result.updated,
        updated_item_numbers=result.updated_item_numbers,
        skipped=result.skipped,
        unmatched=result.unmatched,
    )


def _document_with_access(
    db: Session, context: RequestContext, item_id: uuid.UUID, for_update: bool = False
) -> ItemDocument:
    doc = get_item_document(db, item_id, for_update=for_update)
    require_job_access(context, get_job(db, doc.job_id))
    return doc


@job_items_router.post("", response_model=ItemDocumentResponse, status_code=201)
def create_item_endpoint(
    job_id: uuid.UUID,
    payload: ItemDocumentCreateRequest,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
) -> ItemDocumentResponse:
    job = get_job(db, job_id)
    require_job_access(context, job)
    doc = create_item_document(db, context, job, payload.title, payload.description)
    db.commit()
    db.refresh(doc)
    return _serialize_document(db, doc)


@job_items_router.get("", response_model=list[ItemDocumentResponse])
def list_items_endpoint(
    job_id: uuid.UUID,
    item_status: ItemStatus | None = Query(default=None, alias="status"),
    uploader_role: Role | None = Query(default=None),
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
) -> list[ItemDocumentResponse]:
    require_job_access(context, get_job(db, job_id))
    return [_serialize_document(db, doc) for doc in list_item_documents(db, job_id, item_status, uploader_role)]


@job_items_router.get("/summary", response_model=ItemSummaryResponse)
def item_summary_endpoint(
    job_id: uuid.UUID,
    disposition: Disposition | None = Query(default=None),
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
) -> ItemSummaryResponse:
    require_job_access(context, get_job(db, job_id))
    summary = job_item_summary(db, job_id, disposition)
    return ItemSummaryResponse(
        job_id=job_id,
        counts=ItemSummaryCounts(**summary["counts"]),
        items=[ItemSummaryRow(**row) for row in summary["items"]],
    )


@router.get("/{item_id}", response_model=ItemDocumentResponse)
def get_item_endpoint(
    item_id: uuid.UUID,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
) -> ItemDocumentResponse:
    return _serialize_document(db, _document_with_access(db, context, item_id))


@router.post("/{item_id}/photos", response_model=ItemDocumentResponse)
def attach_photos_endpoint(
    item_id: uuid.UUID,
    payload: PhotoAttachRequest,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
) -> ItemDocumentResponse:
    doc = _document_with_access(db, context, item_id, for_update=True)
    attach_photos(db, doc, payload.photo_urls)
    db.commit()
    db.refresh(doc)
    return _serialize_document(db, doc)


@router.post("/{item_id}/analyze", response_model=AnalysisResponse)
def analyze_item_endpoint(
    item_id: uuid.UUID,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
) -> AnalysisResponse:
    doc = _document_with_access(db, context, item_id, for_update=True)
    try:
        service = get_vision_service()
    except VisionError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    results = analyze_item(db, doc, service)
    db.commit()
    return AnalysisResponse(item_id=doc.id, analyzed=len(results), suggestions=results)


@router.post("/{item_id}/approve", response_model=ItemDocumentResponse)
def approve_item_endpoint(
    item_id: uuid.UUID,
    payload: ApproveRequest,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
) -> ItemDocumentResponse:
    require_role(context, Role.AGENT)
    doc = get_item_document(db, item_id, for_update=True)
    created = approve_item(db, doc, [group.model_dump() for group in payload.items])
    write_audit_log(
        db,
        context,
        "item.approved",
        "item_document",
        str(doc.id),
        {"item_numbers": [row.item_number for row in created]},
    )
    db.commit()
    db.refresh(doc)
    return _serialize_document(db, doc)


@router.post("/{item_id}/reopen", response_model=ItemDocumentResponse)
def reopen_item_endpoint(
    item_id: uuid.UUID,
    payload: ReopenRequest,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
) -> ItemDocumentResponse:
    require_role(context, Role.AGENT)
    doc = get_item_document(db, item_id, for_update=True)
    reopen_item(db, doc, payload.reason, context.current_user_id)
    write_audit_log(db, context, "item.reopened", "item_document", str(doc.id), {"reason": payload.reason})
    db.commit()
    db.refresh(doc)
    return _serialize_document(db, doc)


@router.patch("/{item_id}/approved/{item_number}", response_model=ApprovedItemResponse)
def update_approved_item_endpoint(
    item_id: uuid.UUID,
    item_number: int,
    payload: ApprovedItemUpdateRequest,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
) -> ApprovedItemResponse:
    require_role(context, Role.AGENT)
    doc = get_item_document(db, item_id)
    row = update_approved_item(db, doc, item_number, payload.model_dump(exclude_unset=True))
    db.commit()
    db.refresh(row)
    return _serialize_approved(doc, row)


def _dispose(
    db: Session,
    context: RequestContext,
    item_id: uuid.UUID,
    item_numbers: list[int],
    disposition: Disposition,
) -> DispositionResultResponse:
    require_role(context, Role.AGENT)
    mark = mark_donated if disposition == Disposition.DONATED else mark_hauled
    result = mark(db, item_id, item_numbers, context.current_user_id)
    if result.updated == 0 and not result.skipped:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="no matching items")
    write_audit_log(
        db,
        context,
        f"item.{disposition.value}",
        "item_document",
        str(item_id),
        {"updated": result.updated_item_numbers, "skipped": result.skipped},
    )
    db.commit()
    return _serialize_result(item_id, disposition, result)


@router.post("/{item_id}/donated", response_model=DispositionResultResponse)
def mark_donated_endpoint(
    item_id: uuid.UUID,
    payload: DispositionRequest,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
) -> DispositionResultResponse:
    return _dispose(db, context, item_id, payload.item_numbers, Disposition.DONATED)


@router.post("/{item_id}/hauled", response_model=DispositionResultResponse)
def mark_hauled_endpoint(
    item_id: uuid.UUID,
    payload: DispositionRequest,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
) -> DispositionResultResponse:
    return _dispose(db, context, item_id, payload.item_numbers, Disposition.HAULED)
