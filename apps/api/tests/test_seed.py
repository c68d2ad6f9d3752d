from __future__ import annotations

import uuid

import pytest
from sqlalchemy import select

from app import seed
from app.models import Role, User
from app.settings import settings


@pytest.mark.integration
def test_seed_is_idempotent(db_session) -> None:
    seed.main()
    seed.main()

    users = db_session.scalars(select(User)).all()
    roles = {user.id: user.role for user in users}
    assert roles == {uuid.UUID(settings.dev_user_id): Role.AGENT, seed.DEMO_CLIENT_ID: Role.CLIENT}
