from __future__ import annotations

import uuid
from dataclasses import dataclass

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from .db import get_db
from .models import Job, Role, User
from .settings import settings


@dataclass(frozen=True)
class RequestContext:
    current_user_id: uuid.UUID
    current_role: Role

    @property
    def is_agent(self) -> bool:
        return self.current_role == Role.AGENT


def require_role(context: RequestContext, *allowed: Role) -> None:
    if context.current_role not in allowed:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="insufficient role")


def require_job_access(context: RequestContext, job: Job) -> None:
    """Agents see every job; clients only the jobs they own."""
    if context.is_agent:
        return
    if context.current_role == Role.CLIENT and job.client_id == context.current_user_id:
        return
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="job access denied")


def _load_user(db: Session, user_id: uuid.UUID) -> User:
    user = db.scalar(select(User).where(User.id == user_id, User.deleted_at.is_(None)))
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="unknown user")
    return user


def get_request_context(
    db: Session = Depends(get_db),
    x_kepthouse_user_id: str | None = Header(default=None),
) -> RequestContext:
    raw_user_id = x_kepthouse_user_id
    if settings.dev_auth_bypass and not raw_user_id:
        raw_user_id = settings.dev_user_id

    if not raw_user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="missing auth context headers")

    try:
        user_id = uuid.UUID(raw_user_id)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid auth context headers") from exc

    user = _load_user(db, user_id)
    return RequestContext(current_user_id=user.id, current_role=user.role)
