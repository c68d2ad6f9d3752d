from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..db import get_db
from ..models import Job, JobStage, JobStageNote, Role
from ..schemas import (
    CheckoutSessionResponse,
    DailySaleRequest,
    FinanceEntryResponse,
    FinanceSummaryResponse,
    JobCreateRequest,
    JobListResponse,
    JobResponse,
    JobSettingsUpdateRequest,
    JobStageUpdateRequest,
    StageNoteRequest,
    StageNoteResponse,
)
from ..services.audit import write_audit_log
from ..services.checkout import create_deposit_checkout
from ..services.finance import finance_snapshot, post_revenue
from ..services.job_cache import JobWindowCache, get_job_cache
from ..services.jobs import (
    add_stage_note,
    create_job,
    get_job,
    list_jobs,
    list_stage_notes,
    update_job_settings,
    update_stage,
)
from ..services.payments import get_payment_gateway
from ..tenancy import RequestContext, get_request_context, require_job_access, require_role

router = APIRouter(prefix="/jobs", tags=["jobs"])


def _serialize_job(row: Job) -> JobResponse:
    return JobResponse(
        id=row.id,
        client_id=row.client_id,
        account_manager_id=row.account_manager_id,
        contract_signor=row.contract_signor,
        property_address=row.property_address,
        contact_phone=row.contact_phone,
        contact_email=row.contact_email,
        desired_completion_date=row.desired_completion_date,
        services_json=row.services_json or {},
        scope_notes=row.scope_notes,
        status=row.status,
        stage=row.stage,
        service_fee=row.service_fee,
        deposit_amount=row.deposit_amount,
        deposit_paid_at=row.deposit_paid_at,
        is_online_sale_active=row.is_online_sale_active,
        online_sale_start_date=row.online_sale_start_date,
        online_sale_end_date=row.online_sale_end_date,
        estate_sale_date=row.estate_sale_date,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _serialize_note(row: JobStageNote) -> StageNoteResponse:
    return StageNoteResponse(
        id=row.id,
        job_id=row.job_id,
        stage=row.stage,
        note=row.note,
        author_id=row.author_id,
        created_at=row.created_at,
    )


def _serialize_finance(db: Session, job: Job) -> FinanceSummaryResponse:
    snapshot = finance_snapshot(db, job)
    return FinanceSummaryResponse(
        job_id=job.id,
        gross=snapshot["gross"],
        fees=snapshot["fees"],
        hauling_cost=snapshot["hauling_cost"],
        service_fee=job.service_fee,
        deposit_paid=job.deposit_amount if job.deposit_paid_at is not None else 0.0,
        net=snapshot["net"],
        daily=[FinanceEntryResponse(**entry) for entry in snapshot["daily"]],
    )


@router.post("", response_model=JobResponse, status_code=201)
def create_job_endpoint(
    payload: JobCreateRequest,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
) -> JobResponse:
    require_role(context, Role.AGENT, Role.CLIENT)
    job = create_job(db, context, payload.model_dump())
    write_audit_log(db, context, "job.created", "job", str(job.id), {"client_id": str(job.client_id)})
    db.commit()
    db.refresh(job)
    return _serialize_job(job)


@router.get("", response_model=JobListResponse)
def list_jobs_endpoint(
    stage: JobStage | None = Query(default=None),
    q: str | None = Query(default=None, max_length=200),
    limit: int = Query(default=20, ge=1, le=100),
    cursor: uuid.UUID | None = Query(default=None),
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
) -> JobListResponse:
    require_role(context, Role.AGENT, Role.CLIENT)
    rows, next_cursor = list_jobs(db, context, stage=stage, q=q, limit=limit, cursor=cursor)
    return JobListResponse(items=[_serialize_job(row) for row in rows], next_cursor=next_cursor)


@router.get("/{job_id}", response_model=JobResponse)
def get_job_endpoint(
    job_id: uuid.UUID,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
) -> JobResponse:
    job = get_job(db, job_id)
    require_job_access(context, job)
    return _serialize_job(job)


@router.patch("/{job_id}/stage", response_model=JobResponse)
def update_stage_endpoint(
    job_id: uuid.UUID,
    payload: JobStageUpdateRequest,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
) -> JobResponse:
    require_role(context, Role.AGENT)
    job = get_job(db, job_id, for_update=True)
    previous = job.stage
    update_stage(db, job, payload.stage)
    write_audit_log(db, context, "job.stage_updated", "job", str(job.id), {"from": previous.value, "to": job.stage.value})
    db.commit()
    db.refresh(job)
    return _serialize_job(job)


@router.patch("/{job_id}/settings", response_model=JobResponse)
def update_settings_endpoint(
    job_id: uuid.UUID,
    payload: JobSettingsUpdateRequest,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
    cache: JobWindowCache = Depends(get_job_cache),
) -> JobResponse:
    require_role(context, Role.AGENT)
    job = get_job(db, job_id, for_update=True)
    changes = payload.model_dump(exclude_unset=True)
    window_changed = update_job_settings(db, job, changes)
    write_audit_log(
        db,
        context,
        "job.settings_updated",
        "job",
        str(job.id),
        {"fields": sorted(changes), "window_changed": window_changed},
    )
    db.commit()
    cache.clear()
    db.refresh(job)
    return _serialize_job(job)


@router.get("/{job_id}/stage-notes", response_model=list[StageNoteResponse])
def list_stage_notes_endpoint(
    job_id: uuid.UUID,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
) -> list[StageNoteResponse]:
    job = get_job(db, job_id)
    require_job_access(context, job)
    return [_serialize_note(row) for row in list_stage_notes(db, job.id)]


@router.post("/{job_id}/stage-notes", response_model=StageNoteResponse, status_code=201)
def add_stage_note_endpoint(
    job_id: uuid.UUID,
    payload: StageNoteRequest,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
) -> StageNoteResponse:
    require_role(context, Role.AGENT)
    job = get_job(db, job_id)
    row = add_stage_note(db, job, payload.stage, payload.note, context.current_user_id)
    db.commit()
    db.refresh(row)
    return _serialize_note(row)


@router.get("/{job_id}/finance", response_model=FinanceSummaryResponse)
def finance_endpoint(
    job_id: uuid.UUID,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
) -> FinanceSummaryResponse:
    job = get_job(db, job_id)
    require_job_access(context, job)
    return _serialize_finance(db, job)


@router.post("/{job_id}/finance/daily", response_model=FinanceSummaryResponse, status_code=201)
def add_daily_sales_endpoint(
    job_id: uuid.UUID,
    payload: DailySaleRequest,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
) -> FinanceSummaryResponse:
    require_role(context, Role.AGENT)
    job = get_job(db, job_id, for_update=True)
    entry = post_revenue(db, job, payload.amount, payload.label, external_ref=payload.external_ref)
    write_audit_log(
        db,
        context,
        "finance.daily_sales_added",
        "job",
        str(job.id),
        {"amount": payload.amount, "label": payload.label, "duplicate": entry is None},
    )
    db.commit()
    db.refresh(job)
    return _serialize_finance(db, job)


@router.post("/{job_id}/deposit/checkout", response_model=CheckoutSessionResponse)
def deposit_checkout_endpoint(
    job_id: uuid.UUID,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
) -> CheckoutSessionResponse:
    job = get_job(db, job_id)
    require_job_access(context, job)
    session = create_deposit_checkout(db, get_payment_gateway(), job)
    return CheckoutSessionResponse(session_id=session["id"], url=session["url"])
