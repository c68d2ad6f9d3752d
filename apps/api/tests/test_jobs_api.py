from __future__ import annotations

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select

from app.main import app
from app.models import AuditLog
from factories import AGENT_ID, CLIENT_ID, OTHER_CLIENT_ID, SHOPPER_ID, headers_for, make_job

JOB_PAYLOAD = {
    "contract_signor": "Casey Client",
    "property_address": "44 Maple Ave, Dublin, OH 43017",
    "contact_phone": "555-0199",
    "contact_email": "casey@example.com",
    "deposit_amount": 250.0,
    "service_fee": 150.0,
}


@pytest.mark.integration
async def test_client_creates_own_job(db_session, seeded_users) -> None:
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.post("/jobs", headers=headers_for(CLIENT_ID), json=JOB_PAYLOAD)

    assert response.status_code == 201
    body = response.json()
    assert body["client_id"] == str(CLIENT_ID)
    assert body["account_manager_id"] is None
    assert body["stage"] == "walkthrough"
    actions = db_session.scalars(select(AuditLog.action)).all()
    assert "job.created" in actions


@pytest.mark.integration
async def test_agent_must_name_the_client(db_session, seeded_users) -> None:
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        missing = await client.post("/jobs", headers=headers_for(AGENT_ID), json=JOB_PAYLOAD)
        created = await client.post(
            "/jobs", headers=headers_for(AGENT_ID), json={**JOB_PAYLOAD, "client_id": str(OTHER_CLIENT_ID)}
        )
        shopper = await client.post("/jobs", headers=headers_for(SHOPPER_ID), json=JOB_PAYLOAD)

    assert missing.status_code == 400
    assert created.status_code == 201
    assert created.json()["account_manager_id"] == str(AGENT_ID)
    assert shopper.status_code == 403


@pytest.mark.integration
async def test_job_list_is_scoped_and_paginated(db_session, seeded_users) -> None:
    for _ in range(3):
        make_job(db_session)
    make_job(db_session, client_id=OTHER_CLIENT_ID, property_address="9 Birch Court, Columbus, OH 43004")
    db_session.commit()

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        own = await client.get("/jobs", headers=headers_for(CLIENT_ID))
        first_page = await client.get("/jobs", headers=headers_for(AGENT_ID), params={"limit": 3})
        cursor = first_page.json()["next_cursor"]
        second_page = await client.get("/jobs", headers=headers_for(AGENT_ID), params={"limit": 3, "cursor": cursor})
        searched = await client.get("/jobs", headers=headers_for(AGENT_ID), params={"q": "birch"})

    assert len(own.json()["items"]) == 3
    assert len(first_page.json()["items"]) == 3
    assert cursor is not None
    assert len(second_page.json()["items"]) == 1
    assert second_page.json()["next_cursor"] is None
    assert [row["client_id"] for row in searched.json()["items"]] == [str(OTHER_CLIENT_ID)]


@pytest.mark.integration
async def test_stage_changes_and_notes_are_agent_only(db_session, seeded_users) -> None:
    job = make_job(db_session)
    db_session.commit()

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        denied = await client.patch(f"/jobs/{job.id}/stage", headers=headers_for(CLIENT_ID), json={"stage": "staging"})
        moved = await client.patch(f"/jobs/{job.id}/stage", headers=headers_for(AGENT_ID), json={"stage": "staging"})
        note = await client.post(
            f"/jobs/{job.id}/stage-notes",
            headers=headers_for(AGENT_ID),
            json={"stage": "staging", "note": "Tables set up in the garage"},
        )
        notes = await client.get(f"/jobs/{job.id}/stage-notes", headers=headers_for(CLIENT_ID))

    assert denied.status_code == 403
    assert moved.json()["stage"] == "staging"
    assert note.status_code == 201
    assert [row["note"] for row in notes.json()] == ["Tables set up in the garage"]


@pytest.mark.integration
async def test_daily_sales_roll_into_finance(db_session, seeded_users) -> None:
    job = make_job(db_session, service_fee=100.0)
    db_session.commit()

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        first = await client.post(
            f"/jobs/{job.id}/finance/daily",
            headers=headers_for(AGENT_ID),
            json={"amount": 8000, "label": "Saturday", "external_ref": "day-1"},
        )
        replay = await client.post(
            f"/jobs/{job.id}/finance/daily",
            headers=headers_for(AGENT_ID),
            json={"amount": 8000, "label": "Saturday", "external_ref": "day-1"},
        )
        client_post = await client.post(
            f"/jobs/{job.id}/finance/daily", headers=headers_for(CLIENT_ID), json={"amount": 10}
        )
        summary = await client.get(f"/jobs/{job.id}/finance", headers=headers_for(CLIENT_ID))

    assert first.status_code == 201
    assert replay.status_code == 201
    assert client_post.status_code == 403
    body = summary.json()
    assert body["gross"] == 8000.0
    assert body["fees"] == 3950.0
    assert body["net"] == 3950.0
    assert len(body["daily"]) == 1
    assert body["daily"][0]["label"] == "Saturday"


@pytest.mark.integration
async def test_settings_update_recomputes_net(db_session, seeded_users) -> None:
    job = make_job(db_session)
    db_session.commit()

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.patch(
            f"/jobs/{job.id}/settings",
            headers=headers_for(AGENT_ID),
            json={"service_fee": 75.5, "is_online_sale_active": False},
        )
        summary = await client.get(f"/jobs/{job.id}/finance", headers=headers_for(AGENT_ID))

    assert response.status_code == 200
    assert response.json()["is_online_sale_active"] is False
    assert summary.json()["net"] == -75.5


@pytest.mark.integration
@pytest.mark.parametrize("field", ["status", "service_fee", "deposit_amount", "is_online_sale_active"])
async def test_settings_update_rejects_null_for_required_fields(db_session, seeded_users, field: str) -> None:
    job = make_job(db_session)
    db_session.commit()

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.patch(
            f"/jobs/{job.id}/settings",
            headers=headers_for(AGENT_ID),
            json={field: None, "estate_sale_date": None},
        )
        fetched = await client.get(f"/jobs/{job.id}", headers=headers_for(AGENT_ID))

    assert response.status_code == 422
    assert fetched.json()["status"] == "active"
    assert fetched.json()["is_online_sale_active"] is True


@pytest.mark.integration
async def test_deposit_checkout(db_session, seeded_users) -> None:
    job = make_job(db_session, deposit_amount=500.0)
    free = make_job(db_session)
    db_session.commit()

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.post(f"/jobs/{job.id}/deposit/checkout", headers=headers_for(CLIENT_ID))
        no_deposit = await client.post(f"/jobs/{free.id}/deposit/checkout", headers=headers_for(CLIENT_ID))

    assert response.status_code == 200
    assert response.json()["session_id"].startswith("cs_test_deposit")
    assert no_deposit.status_code == 400
