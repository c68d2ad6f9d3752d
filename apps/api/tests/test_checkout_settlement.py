from __future__ import annotations

import json
import threading
import uuid
from typing import Any

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select

from app.main import app
from app.models import Event, ItemDocument, Job, JobStatus, Order, OrderPaymentStatus
from app.routers import webhooks as webhooks_router
from factories import AGENT_ID, SHOPPER_ID, headers_for, make_item, make_job, stripe_signature

WEBHOOK_SECRET = "whsec_test"
SHOPPER = headers_for(SHOPPER_ID)


def _event(event_type: str, obj: dict[str, Any], event_id: str | None = None) -> bytes:
    body = {"id": event_id or f"evt_{uuid.uuid4().hex[:12]}", "type": event_type, "data": {"object": obj}}
    return json.dumps(body).encode("utf-8")


async def _deliver(client: AsyncClient, payload: bytes, secret: str = WEBHOOK_SECRET):
    return await client.post(
        "/webhooks/stripe",
        content=payload,
        headers={"stripe-signature": stripe_signature(payload, secret), "content-type": "application/json"},
    )


def _stock(db_session) -> tuple[Job, ItemDocument]:
    job = make_job(db_session)
    doc = make_item(
        db_session,
        job,
        [
            {"photo_indices": [0], "title": "Brass lamp", "price": 40},
            {"photo_indices": [1], "title": "Skillet", "price_low": 10, "price_high": 25},
        ],
    )
    db_session.commit()
    return job, doc


@pytest.mark.integration
async def test_cart_add_view_remove(db_session, seeded_users) -> None:
    _, doc = _stock(db_session)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        first = await client.post("/cart/items", headers=SHOPPER, json={"listing_id": f"{doc.id}_1"})
        again = await client.post("/cart/items", headers=SHOPPER, json={"listing_id": f"{doc.id}_1"})
        missing = await client.post("/cart/items", headers=SHOPPER, json={"listing_id": f"{doc.id}_9"})
        second = await client.post("/cart/items", headers=SHOPPER, json={"listing_id": f"{doc.id}_2"})
        cart = await client.get("/cart", headers=SHOPPER)
        removed = await client.delete(f"/cart/items/{doc.id}_1", headers=SHOPPER)
        not_there = await client.delete(f"/cart/items/{doc.id}_1", headers=SHOPPER)
        cleared = await client.delete("/cart", headers=SHOPPER)
        empty = await client.get("/cart", headers=SHOPPER)

    assert first.status_code == 201
    assert first.json() == {"listing_id": f"{doc.id}_1", "count": 1}
    assert again.status_code == 409
    assert missing.status_code == 404
    assert second.json()["count"] == 2
    assert cart.json()["total"] == 58.0
    assert [row["listing"]["title"] for row in cart.json()["items"]] == ["Brass lamp", "Skillet"]
    assert removed.json()["count"] == 1
    assert not_there.status_code == 404
    assert cleared.json()["count"] == 0
    assert empty.json()["items"] == []


@pytest.mark.integration
async def test_cart_drops_items_that_sold_elsewhere(db_session, seeded_users) -> None:
    _, doc = _stock(db_session)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        await client.post("/cart/items", headers=SHOPPER, json={"listing_id": f"{doc.id}_1"})
        await client.post("/cart/items", headers=SHOPPER, json={"listing_id": f"{doc.id}_2"})

        db_session.refresh(doc)
        doc.sold_photo_indices = [0]
        db_session.commit()

        cart = await client.get("/cart", headers=SHOPPER)
        again = await client.get("/cart", headers=SHOPPER)

    assert cart.json()["removed"] == [f"{doc.id}_1"]
    assert cart.json()["count"] == 1
    assert again.json()["removed"] == []
    assert again.json()["total"] == 18.0


@pytest.mark.integration
async def test_checkout_totals_for_pickup_and_shipping(db_session, seeded_users) -> None:
    _, doc = _stock(db_session)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        empty = await client.post("/checkout/totals", headers=SHOPPER, json={})
        await client.post("/cart/items", headers=SHOPPER, json={"listing_id": f"{doc.id}_1"})
        await client.post("/cart/items", headers=SHOPPER, json={"listing_id": f"{doc.id}_2"})
        pickup = await client.post("/checkout/totals", headers=SHOPPER, json={"delivery_method": "pickup"})
        no_address = await client.post("/checkout/totals", headers=SHOPPER, json={"delivery_method": "shipping"})
        shipped = await client.post(
            "/checkout/totals",
            headers=SHOPPER,
            json={
                "delivery_method": "shipping",
                "shipping_address": {"address": "1 Main St", "city": "Akron", "state": "OH", "zip_code": "44308"},
            },
        )

    assert empty.status_code == 400
    assert pickup.json() == {
        "subtotal": 58.0,
        "delivery_fee": 0.0,
        "tax_rate": 0.078,
        "tax_amount": 4.52,
        "total": 62.52,
        "delivery_method": "pickup",
        "item_count": 2,
        "shipping_quote": None,
        "pickup_address": "12 Elm Street",
    }
    assert no_address.status_code == 400
    body = shipped.json()
    assert body["delivery_fee"] == 23.0
    assert body["shipping_quote"]["carrier_rate"] == 18.0
    assert body["shipping_quote"]["weight_lb"] == 10.0
    assert body["tax_amount"] == 6.32
    assert body["total"] == 87.32
    assert body["pickup_address"] is None


@pytest.mark.integration
async def test_checkout_fails_when_an_item_became_unavailable(db_session, seeded_users) -> None:
    job, doc = _stock(db_session)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        await client.post("/cart/items", headers=SHOPPER, json={"listing_id": f"{doc.id}_1"})

        db_session.refresh(job)
        job.is_online_sale_active = False
        db_session.commit()

        response = await client.post("/checkout/session", headers=SHOPPER, json={})

    assert response.status_code == 400
    assert response.json()["detail"] == f"item unavailable: {doc.id}_1"
    assert db_session.scalars(select(Order)).all() == []


@pytest.mark.integration
async def test_paid_order_settles_once_and_refund_reverses_it(db_session, seeded_users) -> None:
    job, doc = _stock(db_session)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        await client.post("/cart/items", headers=SHOPPER, json={"listing_id": f"{doc.id}_1"})
        await client.post("/cart/items", headers=SHOPPER, json={"listing_id": f"{doc.id}_2"})
        session = await client.post("/checkout/session", headers=SHOPPER, json={"customer_email": "sam@example.com"})
        order_id = session.json()["order_id"]
        pending = await client.get(f"/orders/{order_id}", headers=SHOPPER)

        completed = _event(
            "checkout.session.completed",
            {"id": session.json()["session_id"], "payment_intent": "pi_100", "metadata": {"order_id": order_id}},
        )
        paid = await _deliver(client, completed)
        redelivered = await _deliver(client, completed)

        order = await client.get(f"/orders/{order_id}", headers=SHOPPER)
        finance = await client.get(f"/jobs/{job.id}/finance", headers=headers_for(AGENT_ID))
        gone = await client.get(f"/marketplace/items/{doc.id}_1")
        cart = await client.get("/cart", headers=SHOPPER)

        refund = _event("charge.refunded", {"id": "re_100", "payment_intent": "pi_100", "metadata": {}})
        refunded = await _deliver(client, refund)
        refunded_again = await _deliver(client, refund)
        after_refund = await client.get(f"/jobs/{job.id}/finance", headers=headers_for(AGENT_ID))
        back = await client.get(f"/marketplace/items/{doc.id}_1")

    assert session.status_code == 201
    assert session.json()["session_id"].startswith("cs_test_")
    assert pending.json()["payment_status"] == "pending"
    assert pending.json()["total_amount"] == 62.52
    assert [row["composite_id"] for row in pending.json()["items"]] == [f"{doc.id}_1", f"{doc.id}_2"]

    assert paid.json() == {"received": True, "outcome": "order_paid"}
    assert redelivered.json() == {"received": True, "outcome": "duplicate"}
    assert order.json()["payment_status"] == "paid"
    assert order.json()["paid_at"] is not None

    summary = finance.json()
    assert summary["gross"] == 58.0
    assert summary["fees"] == 29.0
    assert len(summary["daily"]) == 1
    assert summary["daily"][0]["external_ref"] == "pi_100"
    assert summary["daily"][0]["label"] == f"Online Sale - Order #{order_id[-8:].upper()} - 2 items"

    assert gone.status_code == 404
    assert cart.json()["count"] == 0
    sold_events = db_session.scalars(select(Event).where(Event.type == "ITEM_SOLD")).all()
    assert len(sold_events) == 1
    assert sold_events[0].payload_json["photo_indices"] == [0, 1]

    assert refunded.json()["outcome"] == "order_refunded"
    assert refunded_again.json()["outcome"] == "ignored"
    assert after_refund.json()["gross"] == 0.0
    assert after_refund.json()["fees"] == 0.0
    assert [row["kind"] for row in after_refund.json()["daily"]] == ["revenue", "refund"]
    assert back.status_code == 200


@pytest.mark.integration
async def test_webhook_rejects_bad_signatures(db_session, seeded_users) -> None:
    payload = _event("checkout.session.completed", {"metadata": {"order_id": str(uuid.uuid4())}})

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        forged = await _deliver(client, payload, secret="whsec_wrong")
        unsigned = await client.post("/webhooks/stripe", content=payload)
        unknown_order = await _deliver(client, payload)
        other_type = await _deliver(client, _event("customer.created", {"id": "cus_1"}))

    assert forged.status_code == 400
    assert forged.json()["detail"].startswith("webhook error:")
    assert unsigned.status_code == 400
    assert unknown_order.json()["outcome"] == "ignored"
    assert other_type.json()["outcome"] == "ignored"


@pytest.mark.integration
async def test_expired_session_fails_pending_order(db_session, seeded_users) -> None:
    _, doc = _stock(db_session)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        await client.post("/cart/items", headers=SHOPPER, json={"listing_id": f"{doc.id}_1"})
        session = await client.post("/checkout/session", headers=SHOPPER, json={})
        order_id = session.json()["order_id"]
        expired = await _deliver(client, _event("checkout.session.expired", {"metadata": {"order_id": order_id}}))
        late = await _deliver(
            client,
            _event("checkout.session.completed", {"payment_intent": "pi_late", "metadata": {"order_id": order_id}}),
        )
        still_listed = await client.get(f"/marketplace/items/{doc.id}_1")

    assert expired.json()["outcome"] == "order_failed"
    assert late.json()["outcome"] == "order_paid"
    assert still_listed.status_code == 404


@pytest.mark.integration
async def test_deposit_webhook_activates_job(db_session, seeded_users) -> None:
    job = make_job(db_session, status=JobStatus.AWAITING_DEPOSIT, deposit_amount=500.0)
    db_session.commit()
    payload = _event(
        "checkout.session.completed",
        {"id": "cs_dep", "payment_intent": "pi_dep", "metadata": {"kind": "deposit", "job_id": str(job.id)}},
    )

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        first = await _deliver(client, payload)
        second = await _deliver(client, payload)
        summary = await client.get(f"/jobs/{job.id}/finance", headers=headers_for(AGENT_ID))
        checkout = await client.post(f"/jobs/{job.id}/deposit/checkout", headers=headers_for(AGENT_ID))

    assert first.json()["outcome"] == "deposit_confirmed"
    assert second.json()["outcome"] == "duplicate"
    db_session.refresh(job)
    assert job.status == JobStatus.ACTIVE
    assert job.deposit_payment_ref == "pi_dep"
    assert summary.json()["deposit_paid"] == 500.0
    assert summary.json()["net"] == 500.0
    assert checkout.status_code == 409


@pytest.mark.integration
async def test_orders_delivery_and_fulfillment(db_session, seeded_users) -> None:
    _, doc = _stock(db_session)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        await client.post("/cart/items", headers=SHOPPER, json={"listing_id": f"{doc.id}_1"})
        session = await client.post("/checkout/session", headers=SHOPPER, json={})
        order_id = session.json()["order_id"]
        delivery = await client.put(
            f"/orders/{order_id}/delivery",
            headers=SHOPPER,
            json={"type": "pickup", "instructions": "Side door"},
        )
        too_early = await client.patch(
            f"/orders/{order_id}/fulfillment", headers=headers_for(AGENT_ID), json={"fulfillment_status": "ready"}
        )
        await _deliver(
            client,
            _event("checkout.session.completed", {"payment_intent": "pi_200", "metadata": {"order_id": order_id}}),
        )
        by_shopper = await client.patch(
            f"/orders/{order_id}/fulfillment", headers=SHOPPER, json={"fulfillment_status": "ready"}
        )
        ready = await client.patch(
            f"/orders/{order_id}/fulfillment", headers=headers_for(AGENT_ID), json={"fulfillment_status": "ready"}
        )
        mine = await client.get("/orders", headers=SHOPPER)
        admin = await client.get("/orders/admin", headers=headers_for(AGENT_ID), params={"payment_status": "paid"})

    assert delivery.status_code == 200
    assert delivery.json()["delivery_details_json"] == {"method": "pickup", "type": "pickup", "scheduled_at": None, "address": None, "instructions": "Side door"}
    assert too_early.status_code == 409
    assert by_shopper.status_code == 403
    assert ready.json()["fulfillment_status"] == "ready"
    assert [row["id"] for row in mine.json()] == [order_id]
    assert [row["id"] for row in admin.json()] == [order_id]


@pytest.mark.integration
async def test_webhook_settles_off_the_event_loop(db_session, seeded_users, monkeypatch) -> None:
    threads: list[int] = []

    def _handle(db, event):
        threads.append(threading.get_ident())
        return "ignored"

    monkeypatch.setattr(webhooks_router, "handle_payment_event", _handle)
    payload = _event("customer.created", {"id": "cus_1"})

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await _deliver(client, payload)

    assert response.json()["outcome"] == "ignored"
    assert threads and threads[0] != threading.get_ident()
