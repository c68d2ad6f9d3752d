from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..db import get_db
from ..models import Bid, BidStatus, BidType, JobStage, Role, Vendor, VendorType
from ..schemas import (
    BidCreateRequest,
    BidResponse,
    JobBidsResponse,
    OpportunityResponse,
    ReceiptRequest,
    VendorCreateRequest,
    VendorPaymentRequest,
    VendorResponse,
    VendorUpdateRequest,
)
from ..services.audit import write_audit_log
from ..services.bids import (
    accept_bid,
    attach_receipt,
    complete_work,
    list_job_bids,
    list_opportunities,
    list_vendor_bids,
    mark_vendor_paid,
    reject_bid,
    submit_bid,
)
from ..services.vendors import create_vendor, deactivate_vendor, get_vendor, list_vendors, update_vendor
from ..tenancy import RequestContext, get_request_context, require_role

router = APIRouter(prefix="/vendors", tags=["vendors"])
bids_router = APIRouter(prefix="/bids", tags=["bids"])
job_bids_router = APIRouter(prefix="/jobs/{job_id}/bids", tags=["bids"])


def _serialize_vendor(row: Vendor) -> VendorResponse:
    return VendorResponse(
        id=row.id,
        name=row.name,
        company_name=row.company_name,
        type=row.type,
        service_type=row.service_type,
        email=row.email,
        phone=row.phone,
        service_area=row.service_area,
        notes=row.notes,
        active=row.active,
        created_at=row.created_at,
    )


def _serialize_bid(row: Bid) -> BidResponse:
    return BidResponse(
        id=row.id,
        job_id=row.job_id,
        vendor_id=row.vendor_id,
        amount=row.amount,
        timeline_days=row.timeline_days,
        notes=row.notes,
        status=row.status,
        bid_type=row.bid_type,
        payment_method=row.payment_method,
        work_completed=row.work_completed,
        work_completed_at=row.work_completed_at,
        is_paid=row.is_paid,
        paid_at=row.paid_at,
        paid_amount=row.paid_amount,
        receipt_url=row.receipt_url,
        created_at=row.created_at,
    )


@router.get("", response_model=list[VendorResponse])
def list_vendors_endpoint(
    vendor_type: VendorType | None = Query(default=None, alias="type"),
    active: bool | None = Query(default=None),
    search: str | None = Query(default=None, max_length=200),
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
) -> list[VendorResponse]:
    require_role(context, Role.AGENT)
    return [_serialize_vendor(row) for row in list_vendors(db, vendor_type, active, search)]


@router.post("", response_model=VendorResponse, status_code=201)
def create_vendor_endpoint(
    payload: VendorCreateRequest,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
) -> VendorResponse:
    require_role(context, Role.AGENT)
    vendor = create_vendor(db, payload.model_dump())
    write_audit_log(db, context, "vendor.created", "vendor", str(vendor.id), {"name": vendor.name})
    db.commit()
    db.refresh(vendor)
    return _serialize_vendor(vendor)


@router.get("/opportunities", response_model=list[OpportunityResponse])
def opportunities_endpoint(
    vendor_id: uuid.UUID | None = Query(default=None),
    stage: JobStage | None = Query(default=None),
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
) -> list[OpportunityResponse]:
    require_role(context, Role.AGENT, Role.VENDOR)
    return [OpportunityResponse(**row) for row in list_opportunities(db, vendor_id=vendor_id, stage=stage)]


@router.get("/{vendor_id}", response_model=VendorResponse)
def get_vendor_endpoint(
    vendor_id: uuid.UUID,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
) -> VendorResponse:
    require_role(context, Role.AGENT, Role.VENDOR)
    return _serialize_vendor(get_vendor(db, vendor_id))


@router.patch("/{vendor_id}", response_model=VendorResponse)
def update_vendor_endpoint(
    vendor_id: uuid.UUID,
    payload: VendorUpdateRequest,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
) -> VendorResponse:
    require_role(context, Role.AGENT)
    vendor = update_vendor(db, get_vendor(db, vendor_id), payload.model_dump(exclude_unset=True))
    db.commit()
    db.refresh(vendor)
    return _serialize_vendor(vendor)


@router.delete("/{vendor_id}", response_model=VendorResponse)
def deactivate_vendor_endpoint(
    vendor_id: uuid.UUID,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
) -> VendorResponse:
    require_role(context, Role.AGENT)
    vendor = deactivate_vendor(db, get_vendor(db, vendor_id))
    write_audit_log(db, context, "vendor.deactivated", "vendor", str(vendor.id))
    db.commit()
    db.refresh(vendor)
    return _serialize_vendor(vendor)


@router.get("/{vendor_id}/bids", response_model=list[BidResponse])
def list_vendor_bids_endpoint(
    vendor_id: uuid.UUID,
    bid_status: BidStatus | None = Query(default=None, alias="status"),
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
) -> list[BidResponse]:
    require_role(context, Role.AGENT, Role.VENDOR)
    get_vendor(db, vendor_id)
    return [_serialize_bid(row) for row in list_vendor_bids(db, vendor_id, bid_status)]


@router.post("/{vendor_id}/bids", response_model=BidResponse, status_code=201)
def submit_bid_endpoint(
    vendor_id: uuid.UUID,
    payload: BidCreateRequest,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
) -> BidResponse:
    require_role(context, Role.AGENT, Role.VENDOR)
    bid = submit_bid(
        db,
        job_id=payload.job_id,
        vendor_id=vendor_id,
        amount=payload.amount,
        timeline_days=payload.timeline_days,
        payment_method=payload.payment_method,
        cash_app_handle=payload.cash_app_handle,
        bank_details=payload.bank_details,
        notes=payload.notes,
    )
    db.commit()
    db.refresh(bid)
    return _serialize_bid(bid)


@job_bids_router.get("", response_model=JobBidsResponse)
def list_job_bids_endpoint(
    job_id: uuid.UUID,
    bid_status: BidStatus | None = Query(default=None, alias="status"),
    bid_type: BidType | None = Query(default=None),
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
) -> JobBidsResponse:
    require_role(context, Role.AGENT)
    grouped = list_job_bids(db, job_id, bid_status, bid_type)
    return JobBidsResponse(
        job_id=job_id,
        donation=[_serialize_bid(row) for row in grouped["donation"]],
        hauling=[_serialize_bid(row) for row in grouped["hauling"]],
        legacy=[_serialize_bid(row) for row in grouped["legacy"]],
    )


@bids_router.post("/{bid_id}/accept", response_model=BidResponse)
def accept_bid_endpoint(
    bid_id: uuid.UUID,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
) -> BidResponse:
    require_role(context, Role.AGENT)
    bid = accept_bid(db, bid_id)
    write_audit_log(db, context, "bid.accepted", "bid", str(bid.id), {"job_id": str(bid.job_id)})
    db.commit()
    db.refresh(bid)
    return _serialize_bid(bid)


@bids_router.post("/{bid_id}/reject", response_model=BidResponse)
def reject_bid_endpoint(
    bid_id: uuid.UUID,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
) -> BidResponse:
    require_role(context, Role.AGENT)
    bid = reject_bid(db, bid_id)
    write_audit_log(db, context, "bid.rejected", "bid", str(bid.id), {"job_id": str(bid.job_id)})
    db.commit()
    db.refresh(bid)
    return _serialize_bid(bid)


@bids_router.post("/{bid_id}/complete", response_model=BidResponse)
def complete_work_endpoint(
    bid_id: uuid.UUID,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
) -> BidResponse:
    require_role(context, Role.AGENT, Role.VENDOR)
    bid = complete_work(db, bid_id)
    db.commit()
    db.refresh(bid)
    return _serialize_bid(bid)


@bids_router.post("/{bid_id}/receipt", response_model=BidResponse)
def attach_receipt_endpoint(
    bid_id: uuid.UUID,
    payload: ReceiptRequest,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
) -> BidResponse:
    require_role(context, Role.AGENT, Role.VENDOR)
    bid = attach_receipt(db, bid_id, payload.receipt_url)
    db.commit()
    db.refresh(bid)
    return _serialize_bid(bid)


@bids_router.post("/{bid_id}/pay", response_model=BidResponse)
def mark_paid_endpoint(
    bid_id: uuid.UUID,
    payload: VendorPaymentRequest,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
) -> BidResponse:
    require_role(context, Role.AGENT)
    bid = mark_vendor_paid(db, bid_id, payload.paid_amount)
    write_audit_log(
        db, context, "bid.paid", "bid", str(bid.id), {"job_id": str(bid.job_id), "paid_amount": bid.paid_amount}
    )
    db.commit()
    db.refresh(bid)
    return _serialize_bid(bid)
