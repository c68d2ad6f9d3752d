from __future__ import annotations

import uuid

from sqlalchemy import select
from sqlalchemy.orm import Session

from .db import SessionLocal
from .models import Role, User
from .settings import settings

DEMO_CLIENT_ID = uuid.UUID("22222222-2222-2222-2222-222222222222")


def ensure_user(db: Session, user_id: uuid.UUID, email: str, full_name: str, role: Role) -> User:
    user = db.scalar(select(User).where(User.id == user_id))
    if user is None:
        user = User(id=user_id, email=email, full_name=full_name, role=role)
        db.add(user)
        db.flush()
    return user


def main() -> None:
    dev_user_id = uuid.UUID(settings.dev_user_id)
    with SessionLocal() as db:
        ensure_user(db, dev_user_id, "agent@kepthouse.local", "Dev Agent", Role.AGENT)
        ensure_user(db, DEMO_CLIENT_ID, "client@kepthouse.local", "Demo Client", Role.CLIENT)
        db.commit()
    print(f"Seed complete: agent={dev_user_id} client={DEMO_CLIENT_ID}")


if __name__ == "__main__":
    main()
