from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from ..db import get_db
from ..schemas import WebhookAckResponse
from ..services.audit import write_system_audit_log
from ..services.payments import WebhookSignatureError, construct_event
from ..services.settlement import handle_payment_event
from ..settings import settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


def _apply_event(db: Session, event: dict[str, Any]) -> str:
    outcome = handle_payment_event(db, event)
    if outcome not in ("ignored", "duplicate"):
        write_system_audit_log(
            db, f"payment.{outcome}", "payment_event", str(event.get("id") or event["type"]), {"type": event["type"]}
        )
    db.commit()
    return outcome


@router.post("/stripe", response_model=WebhookAckResponse)
async def stripe_webhook(
    request: Request,
    stripe_signature: str | None = Header(default=None),
    db: Session = Depends(get_db),
) -> WebhookAckResponse:
    # The signature covers the raw body, so the route reads it itself.
    payload = await request.body()
    try:
        event = construct_event(
            payload,
            stripe_signature,
            settings.stripe_webhook_secret,
            tolerance_seconds=settings.webhook_tolerance_seconds,
        )
    except WebhookSignatureError as exc:
        logger.warning("rejected payment webhook: %s", exc)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"webhook error: {exc}") from exc

    outcome = await run_in_threadpool(_apply_event, db, event)
    return WebhookAckResponse(received=True, outcome=outcome)
