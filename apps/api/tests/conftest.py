from __future__ import annotations
# ruff: noqa: E402

import os
import sys
import tempfile
import uuid
from collections.abc import Generator
from pathlib import Path

import pytest

API_ROOT = Path(__file__).resolve().parents[1]
WORKER_ROOT = Path(__file__).resolve().parents[2] / "worker"
REPO_ROOT = Path(__file__).resolve().parents[3]
TESTS_ROOT = Path(__file__).resolve().parent
for root in (API_ROOT, WORKER_ROOT, REPO_ROOT, TESTS_ROOT):
    if str(root) not in sys.path:
        sys.path.insert(0, str(root))

_TEST_DB_DIR = tempfile.mkdtemp(prefix="kepthouse-tests-")
os.environ["DATABASE_URL"] = os.environ.get("TEST_DATABASE_URL", f"sqlite:///{_TEST_DB_DIR}/kepthouse.db")
os.environ["APP_ENV"] = "development"
os.environ["DEV_AUTH_BYPASS"] = "false"
os.environ["EVENT_DISPATCH_MODE"] = "inline"
os.environ["CHECKOUT_RATE_LIMIT_PER_MINUTE"] = "0"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test"
os.environ["PAYMENT_MODE"] = "mock"
os.environ["VISION_MODE"] = "mock"
os.environ["SHIPPING_MODE"] = "mock"

from sqlalchemy.orm import Session

from app.db import SessionLocal, engine
from app.main import app
from app.models import Base, Role, User
from app.services.job_cache import NullJobCache
from factories import AGENT_ID, CLIENT_ID, OTHER_CLIENT_ID, SHOPPER_ID


@pytest.fixture(autouse=True)
def _null_job_cache() -> Generator[None, None, None]:
    previous = app.state.job_cache
    app.state.job_cache = NullJobCache()
    yield
    app.state.job_cache = previous


@pytest.fixture()
def db_session() -> Generator[Session, None, None]:
    Base.metadata.create_all(engine)
    with SessionLocal() as session:
        yield session
        session.rollback()
    Base.metadata.drop_all(engine)


@pytest.fixture()
def seeded_users(db_session: Session) -> dict[str, uuid.UUID]:
    db_session.add_all(
        [
            User(id=AGENT_ID, email="agent@kepthouse.local", full_name="Avery Agent", role=Role.AGENT),
            User(id=CLIENT_ID, email="client@kepthouse.local", full_name="Casey Client", role=Role.CLIENT),
            User(id=SHOPPER_ID, email="shopper@kepthouse.local", full_name="Sam Shopper", role=Role.SHOPPER),
            User(id=OTHER_CLIENT_ID, email="other@kepthouse.local", full_name="Other Client", role=Role.CLIENT),
        ]
    )
    db_session.commit()
    return {"agent": AGENT_ID, "client": CLIENT_ID, "shopper": SHOPPER_ID, "other_client": OTHER_CLIENT_ID}


