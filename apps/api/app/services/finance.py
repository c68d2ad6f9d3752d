from __future__ import annotations

import logging
import math
import uuid
from datetime import datetime
from typing import Any

from fastapi import HTTPException, status
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from packages.ledger import commission, to_cents, utcnow

from ..models import FinanceEntryKind, Job, JobFinanceEntry
from .events import FINANCE_UPDATED, write_event

logger = logging.getLogger(__name__)


def recompute_net(job: Job) -> float:
    """net = gross - fees - hauling_cost - service_fee + deposit (only once paid)."""
    deposit_paid = (job.deposit_amount or 0.0) if job.deposit_paid_at is not None else 0.0
    job.finance_net = to_cents(
        (job.finance_gross or 0.0)
        - (job.finance_fees or 0.0)
        - (job.finance_hauling_cost or 0.0)
        - (job.service_fee or 0.0)
        + deposit_paid
    )
    return job.finance_net


def _validated_amount(amount: float) -> float:
    if isinstance(amount, bool) or not isinstance(amount, (int, float)) or not math.isfinite(amount) or amount < 0:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="amount must be a non-negative number")
    return to_cents(amount)


def _has_external_ref(db: Session, job_id: uuid.UUID, external_ref: str | None) -> bool:
    if not external_ref:
        return False
    existing = db.scalar(
        select(JobFinanceEntry.id).where(JobFinanceEntry.job_id == job_id, JobFinanceEntry.external_ref == external_ref)
    )
    return existing is not None


def _append_entry(
    db: Session,
    job: Job,
    kind: FinanceEntryKind,
    label: str,
    amount: float,
    external_ref: str | None,
    at: datetime | None,
) -> JobFinanceEntry:
    seq = db.scalar(select(func.coalesce(func.max(JobFinanceEntry.seq), 0)).where(JobFinanceEntry.job_id == job.id))
    entry = JobFinanceEntry(
        job_id=job.id,
        seq=int(seq or 0) + 1,
        kind=kind,
        label=label,
        amount=amount,
        at=at or utcnow(),
        external_ref=external_ref,
    )
    db.add(entry)
    return entry


def _finance_updated(db: Session, job: Job, entry: JobFinanceEntry) -> None:
    db.flush()
    write_event(
        db=db,
        source="api",
        channel="finance",
        event_type=FINANCE_UPDATED,
        job_id=job.id,
        payload_json={
            "kind": entry.kind.value,
            "label": entry.label,
            "amount": entry.amount,
            "gross": job.finance_gross,
            "fees": job.finance_fees,
            "net": job.finance_net,
        },
    )


def post_revenue(
    db: Session,
    job: Job,
    amount: float,
    label: str,
    external_ref: str | None = None,
    at: datetime | None = None,
) -> JobFinanceEntry | None:
    value = _validated_amount(amount)
    if _has_external_ref(db, job.id, external_ref):
        logger.info("revenue %s already posted for job %s", external_ref, job.id)
        return None
    entry = _append_entry(db, job, FinanceEntryKind.REVENUE, label, value, external_ref, at)
    job.finance_gross = to_cents((job.finance_gross or 0.0) + value)
    job.finance_fees = commission(job.finance_gross)
    recompute_net(job)
    _finance_updated(db, job, entry)
    return entry


def post_expense(
    db: Session,
    job: Job,
    amount: float,
    label: str,
    external_ref: str | None = None,
    at: datetime | None = None,
) -> JobFinanceEntry | None:
    value = _validated_amount(amount)
    if _has_external_ref(db, job.id, external_ref):
        logger.info("expense %s already posted for job %s", external_ref, job.id)
        return None
    entry = _append_entry(db, job, FinanceEntryKind.EXPENSE, label, -value, external_ref, at)
    job.finance_hauling_cost = to_cents((job.finance_hauling_cost or 0.0) + value)
    recompute_net(job)
    _finance_updated(db, job, entry)
    return entry


def post_refund(
    db: Session,
    job: Job,
    amount: float,
    label: str,
    external_ref: str | None = None,
    at: datetime | None = None,
) -> JobFinanceEntry | None:
    value = _validated_amount(amount)
    if _has_external_ref(db, job.id, external_ref):
        logger.info("refund %s already posted for job %s", external_ref, job.id)
        return None
    entry = _append_entry(db, job, FinanceEntryKind.REFUND, label, -value, external_ref, at)
    job.finance_gross = max(0.0, to_cents((job.finance_gross or 0.0) - value))
    job.finance_fees = commission(job.finance_gross)
    recompute_net(job)
    _finance_updated(db, job, entry)
    return entry


def lock_job(db: Session, job_id: uuid.UUID) -> Job | None:
    return db.scalar(select(Job).where(Job.id == job_id, Job.deleted_at.is_(None)).with_for_update())


def post_revenue_for_job_id(
    db: Session,
    job_id: uuid.UUID,
    amount: float,
    label: str,
    external_ref: str | None = None,
) -> JobFinanceEntry | None:
    job = lock_job(db, job_id)
    if job is None:
        # Payment was already captured upstream; nothing to post against.
        logger.error("revenue for missing job %s skipped (%s, %s)", job_id, label, amount)
        return None
    return post_revenue(db, job, amount, label, external_ref=external_ref)


def post_refund_for_job_id(
    db: Session,
    job_id: uuid.UUID,
    amount: float,
    label: str,
    external_ref: str | None = None,
) -> JobFinanceEntry | None:
    job = lock_job(db, job_id)
    if job is None:
        logger.error("refund for missing job %s skipped (%s, %s)", job_id, label, amount)
        return None
    return post_refund(db, job, amount, label, external_ref=external_ref)


def finance_snapshot(db: Session, job: Job) -> dict[str, Any]:
    entries = db.scalars(
        select(JobFinanceEntry).where(JobFinanceEntry.job_id == job.id).order_by(JobFinanceEntry.seq.asc())
    ).all()
    return {
        "gross": job.finance_gross,
        "fees": job.finance_fees,
        "hauling_cost": job.finance_hauling_cost,
        "net": job.finance_net,
        "daily": [
            {
                "seq": entry.seq,
                "kind": entry.kind,
                "label": entry.label,
                "amount": entry.amount,
                "at": entry.at,
                "external_ref": entry.external_ref,
            }
            for entry in entries
        ],
    }
