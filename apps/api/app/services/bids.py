from __future__ import annotations

import logging
import uuid
from typing import Any

from fastapi import HTTPException, status
from sqlalchemy import desc, or_, select, true
from sqlalchemy.orm import Session

from packages.ledger import is_available, utcnow

from ..models import (
    ApprovedItem,
    Bid,
    BidStatus,
    BidType,
    ItemDocument,
    Job,
    JobStage,
    JobStatus,
    PaymentMethod,
    Vendor,
    VendorServiceType,
)
from .events import BID_ACCEPTED, write_event
from .finance import post_expense
from .jobs import get_job
from .vendors import get_vendor

logger = logging.getLogger(__name__)


def bid_type_for_stage(stage: JobStage) -> BidType:
    return BidType.DONATION if stage == JobStage.DONATIONS else BidType.HAULING


def _same_track(bid_type: BidType | None) -> Any:
    # Legacy bids without a type collide with both tracks.
    if bid_type is None:
        return true()
    return or_(Bid.bid_type == bid_type, Bid.bid_type.is_(None))


def get_bid(db: Session, bid_id: uuid.UUID) -> Bid:
    bid = db.scalar(select(Bid).where(Bid.id == bid_id))
    if bid is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="bid not found")
    return bid


def _lock_bid_with_job(db: Session, bid_id: uuid.UUID) -> tuple[Bid, Job]:
    bid = get_bid(db, bid_id)
    job = get_job(db, bid.job_id, for_update=True)
    # Re-read under the job lock; a concurrent request may have moved the bid.
    db.refresh(bid)
    return bid, job


def _validate_payment_method(
    payment_method: PaymentMethod,
    cash_app_handle: str | None,
    bank_details: dict[str, Any] | None,
) -> None:
    if payment_method == PaymentMethod.CASHAPP and not (cash_app_handle or "").strip():
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="cash_app_handle is required for cashapp payments"
        )
    if payment_method == PaymentMethod.BANK and not bank_details:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="bank_details are required for bank payments"
        )


def submit_bid(
    db: Session,
    job_id: uuid.UUID,
    vendor_id: uuid.UUID,
    amount: float,
    timeline_days: int,
    payment_method: PaymentMethod,
    cash_app_handle: str | None = None,
    bank_details: dict[str, Any] | None = None,
    notes: str | None = None,
) -> Bid:
    job = get_job(db, job_id)
    vendor = get_vendor(db, vendor_id)
    if not vendor.active:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="vendor is not active")
    _validate_payment_method(payment_method, cash_app_handle, bank_details)

    bid_type = bid_type_for_stage(job.stage)
    pending = db.scalar(
        select(Bid.id).where(
            Bid.job_id == job.id,
            Bid.vendor_id == vendor.id,
            Bid.bid_type == bid_type,
            Bid.status == BidStatus.SUBMITTED,
        )
    )
    if pending is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"vendor already has a pending {bid_type.value} bid for this job",
        )

    bid = Bid(
        job_id=job.id,
        vendor_id=vendor.id,
        amount=amount,
        timeline_days=timeline_days,
        notes=notes,
        status=BidStatus.SUBMITTED,
        bid_type=bid_type,
        payment_method=payment_method,
        cash_app_handle=cash_app_handle if payment_method == PaymentMethod.CASHAPP else None,
        bank_details_json=bank_details if payment_method == PaymentMethod.BANK else None,
    )
    db.add(bid)
    db.flush()
    logger.info("bid %s submitted by vendor %s for job %s (%s)", bid.id, vendor.id, job.id, bid_type.value)
    return bid


def accept_bid(db: Session, bid_id: uuid.UUID) -> Bid:
    """Accept a submitted bid and reject its competitors on the same track.

    The job row lock serializes concurrent accepts so a track never ends up
    with two accepted bids.
    """
    bid, job = _lock_bid_with_job(db, bid_id)
    if bid.status != BidStatus.SUBMITTED:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=f"bid is {bid.status.value}, not submitted")

    accepted = db.scalar(
        select(Bid.id).where(
            Bid.job_id == job.id,
            Bid.id != bid.id,
            Bid.status == BidStatus.ACCEPTED,
            _same_track(bid.bid_type),
        )
    )
    if accepted is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="job already has an accepted bid for this work type")

    bid.status = BidStatus.ACCEPTED
    competitors = db.scalars(
        select(Bid).where(
            Bid.job_id == job.id,
            Bid.id != bid.id,
            Bid.status == BidStatus.SUBMITTED,
            _same_track(bid.bid_type),
        )
    ).all()
    for other in competitors:
        other.status = BidStatus.REJECTED
    db.flush()

    write_event(
        db=db,
        source="api",
        channel="bids",
        event_type=BID_ACCEPTED,
        job_id=job.id,
        payload_json={
            "bid_id": str(bid.id),
            "vendor_id": str(bid.vendor_id),
            "bid_type": bid.bid_type.value if bid.bid_type else None,
            "amount": bid.amount,
            "rejected": [str(other.id) for other in competitors],
        },
    )
    return bid


def reject_bid(db: Session, bid_id: uuid.UUID) -> Bid:
    bid, _ = _lock_bid_with_job(db, bid_id)
    if bid.status != BidStatus.SUBMITTED:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=f"bid is {bid.status.value}, not submitted")
    bid.status = BidStatus.REJECTED
    db.flush()
    return bid


def complete_work(db: Session, bid_id: uuid.UUID) -> Bid:
    bid, _ = _lock_bid_with_job(db, bid_id)
    if bid.status != BidStatus.ACCEPTED:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=f"bid is {bid.status.value}, not accepted")
    if bid.work_completed:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="work already marked as completed")
    bid.work_completed = True
    bid.work_completed_at = utcnow()
    db.flush()
    return bid


def attach_receipt(db: Session, bid_id: uuid.UUID, receipt_url: str) -> Bid:
    bid = get_bid(db, bid_id)
    if not bid.work_completed:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="work must be completed before uploading a receipt")
    bid.receipt_url = receipt_url
    db.flush()
    return bid


def vendor_payment_label(vendor: Vendor) -> str:
    if vendor.service_type in {VendorServiceType.HAULING, VendorServiceType.BOTH}:
        return f"Hauling - {vendor.name}"
    return f"Donation - {vendor.name}"


def mark_vendor_paid(db: Session, bid_id: uuid.UUID, paid_amount: float | None = None) -> Bid:
    bid, job = _lock_bid_with_job(db, bid_id)
    if bid.status != BidStatus.ACCEPTED:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=f"bid is {bid.status.value}, not accepted")
    if bid.is_paid:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="bid has already been marked as paid")

    amount = paid_amount if paid_amount is not None else bid.amount
    vendor = get_vendor(db, bid.vendor_id)
    bid.is_paid = True
    bid.paid_at = utcnow()
    bid.paid_amount = amount
    post_expense(db, job, amount, vendor_payment_label(vendor), external_ref=f"bid:{bid.id}")
    db.flush()
    return bid


def list_job_bids(
    db: Session,
    job_id: uuid.UUID,
    bid_status: BidStatus | None = None,
    bid_type: BidType | None = None,
) -> dict[str, list[Bid]]:
    get_job(db, job_id)
    stmt = select(Bid).where(Bid.job_id == job_id)
    if bid_status is not None:
        stmt = stmt.where(Bid.status == bid_status)
    if bid_type is not None:
        stmt = stmt.where(Bid.bid_type == bid_type)
    bids = list(db.scalars(stmt.order_by(desc(Bid.created_at))).all())
    return {
        "donation": [bid for bid in bids if bid.bid_type == BidType.DONATION],
        "hauling": [bid for bid in bids if bid.bid_type == BidType.HAULING],
        "legacy": [bid for bid in bids if bid.bid_type is None],
    }


def list_vendor_bids(db: Session, vendor_id: uuid.UUID, bid_status: BidStatus | None = None) -> list[Bid]:
    stmt = select(Bid).where(Bid.vendor_id == vendor_id)
    if bid_status is not None:
        stmt = stmt.where(Bid.status == bid_status)
    return list(db.scalars(stmt.order_by(desc(Bid.created_at))).all())


def _available_item_counts(db: Session, job_ids: list[uuid.UUID]) -> dict[uuid.UUID, int]:
    counts: dict[uuid.UUID, int] = {job_id: 0 for job_id in job_ids}
    if not job_ids:
        return counts
    rows = db.execute(
        select(ApprovedItem, ItemDocument)
        .join(ItemDocument, ApprovedItem.item_id == ItemDocument.id)
        .where(ItemDocument.job_id.in_(job_ids), ItemDocument.deleted_at.is_(None))
    ).all()
    for item, doc in rows:
        if is_available(item, doc):
            counts[doc.job_id] += 1
    return counts


def list_opportunities(
    db: Session,
    vendor_id: uuid.UUID | None = None,
    stage: JobStage | None = None,
) -> list[dict[str, Any]]:
    """Active jobs still open for bidding on their current work track."""
    vendor = get_vendor(db, vendor_id) if vendor_id is not None else None
    if stage is not None:
        stages = [stage]
    elif vendor is not None and vendor.service_type == VendorServiceType.HAULING:
        stages = [JobStage.HAULING]
    elif vendor is not None and vendor.service_type == VendorServiceType.DONATION:
        stages = [JobStage.DONATIONS]
    else:
        stages = [JobStage.HAULING, JobStage.DONATIONS]

    jobs = db.scalars(
        select(Job)
        .where(Job.stage.in_(stages), Job.status == JobStatus.ACTIVE, Job.deleted_at.is_(None))
        .order_by(desc(Job.created_at))
    ).all()

    taken: dict[BidType, set[uuid.UUID]] = {BidType.DONATION: set(), BidType.HAULING: set()}
    for job_id, bid_type in db.execute(select(Bid.job_id, Bid.bid_type).where(Bid.status == BidStatus.ACCEPTED)).all():
        for track in ([bid_type] if bid_type is not None else list(BidType)):
            taken[track].add(job_id)

    open_jobs = [job for job in jobs if job.id not in taken[bid_type_for_stage(job.stage)]]

    own_status: dict[BidType, dict[uuid.UUID, BidStatus]] = {BidType.DONATION: {}, BidType.HAULING: {}}
    if vendor is not None:
        for bid in list_vendor_bids(db, vendor.id):
            for track in ([bid.bid_type] if bid.bid_type is not None else list(BidType)):
                own_status[track].setdefault(bid.job_id, bid.status)

    counts = _available_item_counts(db, [job.id for job in open_jobs])
    return [
        {
            "job_id": job.id,
            "property_address": job.property_address,
            "contract_signor": job.contract_signor,
            "stage": job.stage,
            "status": job.status,
            "bid_type": bid_type_for_stage(job.stage),
            "available_items_count": counts.get(job.id, 0),
            "vendor_bid_status": own_status[bid_type_for_stage(job.stage)].get(job.id) if vendor is not None else None,
            "created_at": job.created_at,
        }
        for job in open_jobs
    ]
