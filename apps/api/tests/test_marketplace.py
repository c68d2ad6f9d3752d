from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from httpx import ASGITransport, AsyncClient

from app.main import app
from app.models import ItemStatus, JobStatus
from app.services.disposition import mark_donated, mark_sold
from app.services.job_cache import NullJobCache
from app.services.marketplace import get_listing, list_listings, related_listings, search_listings
from factories import make_item, make_job


@pytest.fixture()
def now() -> datetime:
    return datetime.now(timezone.utc)


@pytest.mark.integration
def test_only_open_windows_are_listed(db_session, seeded_users, now) -> None:
    open_job = make_job(db_session)
    upcoming = make_job(db_session, online_sale_start_date=now + timedelta(days=2))
    paused = make_job(db_session, is_online_sale_active=False)
    closed = make_job(db_session, status=JobStatus.COMPLETED)
    for job in (open_job, upcoming, paused, closed):
        make_item(db_session, job, [{"photo_indices": [0], "title": "Chair", "price": 30}])

    result = list_listings(db_session, NullJobCache(), now=now)

    assert result["total"] == 1
    assert result["items"][0].job_id == open_job.id
    assert result["items"][0].phase == "online"


@pytest.mark.integration
def test_estate_phase_switches_price(db_session, seeded_users, now) -> None:
    job = make_job(
        db_session,
        online_sale_end_date=now - timedelta(days=1),
        estate_sale_date=now - timedelta(hours=2),
    )
    doc = make_item(db_session, job, [{"photo_indices": [0], "price": 120, "estate_sale_price": 80}])

    listing = get_listing(db_session, NullJobCache(), f"{doc.id}_1", now=now)

    assert listing.price == 80.0
    assert listing.phase == "estate"


@pytest.mark.integration
def test_unavailable_items_and_unapproved_documents_are_hidden(db_session, seeded_users, now) -> None:
    job = make_job(db_session)
    doc = make_item(
        db_session,
        job,
        [{"photo_indices": [0], "title": "Sold"}, {"photo_indices": [1], "title": "Donated"}, {"photo_indices": [2], "title": "Kept"}],
    )
    make_item(db_session, job, [{"photo_indices": [0], "title": "Draft"}], item_status=ItemStatus.NEEDS_REVIEW)
    mark_sold(db_session, doc.id, [0])
    mark_donated(db_session, doc.id, [2])

    result = list_listings(db_session, NullJobCache(), now=now)

    assert [listing.title for listing in result["items"]] == ["Kept"]


@pytest.mark.integration
def test_listing_without_number_resolves_first_available(db_session, seeded_users, now) -> None:
    job = make_job(db_session)
    doc = make_item(db_session, job, [{"photo_indices": [0]}, {"photo_indices": [1, 2]}])
    mark_sold(db_session, doc.id, [0])

    listing = get_listing(db_session, NullJobCache(), str(doc.id), now=now)

    assert listing.id == f"{doc.id}_2"
    assert len(listing.photos) == 2


@pytest.mark.integration
def test_filters_sort_and_pagination(db_session, seeded_users, now) -> None:
    job = make_job(db_session)
    make_item(
        db_session,
        job,
        [
            {"photo_indices": [0], "category": "Tools", "price": 15},
            {"photo_indices": [1], "category": "Tools", "price": 45},
            {"photo_indices": [2], "category": "Art", "price": 200},
            {"photo_indices": [3], "category": "tools", "price_low": 10, "price_high": 25},
        ],
    )

    tools = list_listings(db_session, NullJobCache(), category="TOOLS", sort="price_asc", now=now)
    assert [listing.price for listing in tools["items"]] == [15.0, 18.0, 45.0]

    bounded = list_listings(db_session, NullJobCache(), min_price=16, max_price=100, now=now)
    assert sorted(listing.price for listing in bounded["items"]) == [18.0, 45.0]

    page = list_listings(db_session, NullJobCache(), sort="price_desc", page=2, limit=3, now=now)
    assert (page["total"], page["count"]) == (4, 1)
    assert page["items"][0].price == 15.0

    capped = list_listings(db_session, NullJobCache(), limit=500, now=now)
    assert capped["limit"] == 48


@pytest.mark.integration
def test_search_ranks_by_relevance(db_session, seeded_users, now) -> None:
    job = make_job(db_session)
    make_item(
        db_session,
        job,
        [
            {"photo_indices": [0], "title": "Brass lamp"},
            {"photo_indices": [1], "title": "Lamp"},
            {"photo_indices": [2], "title": "Side table", "description": "Comes with a lamp"},
            {"photo_indices": [3], "title": "Lamp shade"},
            {"photo_indices": [4], "title": "Rug"},
        ],
    )

    result = search_listings(db_session, NullJobCache(), "lamp", now=now)

    assert [listing.title for listing in result["items"]] == ["Lamp", "Lamp shade", "Brass lamp", "Side table"]
    assert result["query"] == "lamp"


@pytest.mark.integration
def test_related_prefers_same_category(db_session, seeded_users, now) -> None:
    job = make_job(db_session)
    anchor = make_item(db_session, job, [{"photo_indices": [0], "category": "Art"}, {"photo_indices": [1], "category": "Art"}])
    other = make_item(db_session, job, [{"photo_indices": [0], "category": "Tools"}, {"photo_indices": [1], "category": "Art"}])

    related = related_listings(db_session, NullJobCache(), f"{anchor.id}_1", now=now)

    assert [listing.id for listing in related] == [f"{other.id}_2", f"{other.id}_1"]


@pytest.mark.integration
async def test_marketplace_endpoints(db_session, seeded_users) -> None:
    job = make_job(db_session)
    hidden = make_job(db_session, is_online_sale_active=False)
    doc = make_item(db_session, job, [{"photo_indices": [0], "title": "Oak desk", "price": 150}])
    hidden_doc = make_item(db_session, hidden, [{"photo_indices": [0], "title": "Secret desk", "price": 99}])
    db_session.commit()

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        listed = await client.get("/marketplace/items")
        detail = await client.get(f"/marketplace/items/{doc.id}_1")
        hidden_detail = await client.get(f"/marketplace/items/{hidden_doc.id}_1")
        garbage = await client.get("/marketplace/items/not-a-listing")
        searched = await client.get("/marketplace/search", params={"q": "desk"})
        blank = await client.get("/marketplace/search")

    assert listed.status_code == 200
    assert [row["title"] for row in listed.json()["items"]] == ["Oak desk"]
    assert detail.json()["price"] == 150.0
    assert detail.json()["photo"] == detail.json()["photos"][0]
    assert hidden_detail.status_code == 404
    assert garbage.status_code == 404
    assert searched.json()["total"] == 1
    assert blank.status_code == 400
