from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Any

from fastapi import HTTPException, status
from sqlalchemy import and_, desc, or_, select
from sqlalchemy.orm import Session

from packages.ledger import utcnow

from ..models import Job, JobStage, JobStageNote, JobStatus, Role
from ..tenancy import RequestContext
from .events import DEPOSIT_PAID, write_event
from .finance import recompute_net

logger = logging.getLogger(__name__)

WINDOW_FIELDS = ("is_online_sale_active", "online_sale_start_date", "online_sale_end_date", "estate_sale_date")
FEE_FIELDS = ("service_fee", "deposit_amount")


def get_job(db: Session, job_id: uuid.UUID, for_update: bool = False) -> Job:
    stmt = select(Job).where(Job.id == job_id, Job.deleted_at.is_(None))
    if for_update:
        stmt = stmt.with_for_update()
    job = db.scalar(stmt)
    if job is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="job not found")
    return job


def create_job(db: Session, context: RequestContext, payload: dict[str, Any]) -> Job:
    client_id = payload.pop("client_id", None)
    if context.current_role == Role.AGENT:
        if client_id is None:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST, detail="client_id is required when creating as agent"
            )
        account_manager_id = context.current_user_id
    else:
        client_id = context.current_user_id
        account_manager_id = None

    job = Job(client_id=client_id, account_manager_id=account_manager_id, **payload)
    db.add(job)
    db.flush()
    recompute_net(job)
    return job


def list_jobs(
    db: Session,
    context: RequestContext,
    stage: JobStage | None = None,
    q: str | None = None,
    limit: int = 20,
    cursor: uuid.UUID | None = None,
) -> tuple[list[Job], uuid.UUID | None]:
    stmt = select(Job).where(Job.deleted_at.is_(None))
    if context.current_role != Role.AGENT:
        stmt = stmt.where(Job.client_id == context.current_user_id)
    if stage is not None:
        stmt = stmt.where(Job.stage == stage)
    if q:
        pattern = f"%{q.strip()}%"
        stmt = stmt.where(
            or_(
                Job.contract_signor.ilike(pattern),
                Job.property_address.ilike(pattern),
                Job.contact_email.ilike(pattern),
            )
        )
    if cursor is not None:
        anchor = db.scalar(select(Job).where(Job.id == cursor))
        if anchor is not None:
            stmt = stmt.where(
                or_(
                    Job.created_at < anchor.created_at,
                    and_(Job.created_at == anchor.created_at, Job.id < anchor.id),
                )
            )

    rows = list(db.scalars(stmt.order_by(desc(Job.created_at), desc(Job.id)).limit(limit + 1)).all())
    next_cursor = None
    if len(rows) > limit:
        rows = rows[:limit]
        next_cursor = rows[-1].id
    return rows, next_cursor


def update_stage(db: Session, job: Job, stage: JobStage) -> Job:
    job.stage = stage
    db.flush()
    return job


def add_stage_note(db: Session, job: Job, stage: JobStage, note: str, author_id: uuid.UUID | None) -> JobStageNote:
    row = JobStageNote(job_id=job.id, stage=stage, note=note, author_id=author_id)
    db.add(row)
    db.flush()
    return row


def list_stage_notes(db: Session, job_id: uuid.UUID) -> list[JobStageNote]:
    return list(
        db.scalars(select(JobStageNote).where(JobStageNote.job_id == job_id).order_by(JobStageNote.created_at.asc())).all()
    )


def update_job_settings(db: Session, job: Job, changes: dict[str, Any]) -> bool:
    """Apply sale-window, status and fee edits. Returns True when the window changed."""
    window_changed = False
    for field, value in changes.items():
        if field in WINDOW_FIELDS:
            window_changed = window_changed or getattr(job, field) != value
        setattr(job, field, value)
    if any(field in FEE_FIELDS for field in changes):
        recompute_net(job)
    db.flush()
    return window_changed


def confirm_deposit(
    db: Session,
    job: Job,
    payment_ref: str | None = None,
    paid_at: datetime | None = None,
) -> bool:
    if job.deposit_paid_at is not None:
        logger.info("deposit for job %s already confirmed", job.id)
        return False
    job.deposit_paid_at = paid_at or utcnow()
    job.deposit_payment_ref = payment_ref
    if job.status == JobStatus.AWAITING_DEPOSIT:
        job.status = JobStatus.ACTIVE
    recompute_net(job)
    db.flush()
    write_event(
        db=db,
        source="stripe",
        channel="payments",
        event_type=DEPOSIT_PAID,
        job_id=job.id,
        payload_json={"deposit_amount": job.deposit_amount, "payment_ref": payment_ref, "net": job.finance_net},
    )
    return True
