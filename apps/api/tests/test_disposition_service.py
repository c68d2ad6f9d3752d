from __future__ import annotations

import pytest
from fastapi import HTTPException

from packages.ledger import Disposition

from app.models import ItemStatus
from app.services.disposition import job_item_summary, mark_donated, mark_hauled, mark_sold, release_sold
from factories import AGENT_ID, make_item, make_job


@pytest.mark.integration
def test_mark_sold_is_an_idempotent_union(db_session, seeded_users) -> None:
    job = make_job(db_session)
    doc = make_item(db_session, job, [{"photo_indices": [0, 1]}, {"photo_indices": [2]}])

    mark_sold(db_session, doc.id, [1, 0])
    first_sold_at = doc.sold_at
    mark_sold(db_session, doc.id, [0, 1])

    assert doc.sold_photo_indices == [0, 1]
    assert doc.sold_at == first_sold_at
    assert doc.status == ItemStatus.APPROVED


@pytest.mark.integration
def test_document_becomes_sold_when_every_item_sold(db_session, seeded_users) -> None:
    job = make_job(db_session)
    doc = make_item(db_session, job, [{"photo_indices": [0, 1]}, {"photo_indices": [2]}])

    mark_sold(db_session, doc.id, [1])
    mark_sold(db_session, doc.id, [2])

    assert doc.status == ItemStatus.SOLD


@pytest.mark.integration
def test_release_sold_returns_items_to_the_pool(db_session, seeded_users) -> None:
    job = make_job(db_session)
    doc = make_item(db_session, job, [{"photo_indices": [0]}])
    mark_sold(db_session, doc.id, [0])
    assert doc.status == ItemStatus.SOLD

    release_sold(db_session, doc.id, [0])

    assert doc.sold_photo_indices == []
    assert doc.status == ItemStatus.APPROVED


@pytest.mark.integration
def test_donate_skips_sold_and_reports_unmatched(db_session, seeded_users) -> None:
    job = make_job(db_session)
    doc = make_item(db_session, job, [{"photo_indices": [0]}, {"photo_indices": [1]}, {"photo_indices": [2]}])
    mark_sold(db_session, doc.id, [1])

    result = mark_donated(db_session, doc.id, [2, 3, 7], actor_id=AGENT_ID)

    assert result.updated == 1
    assert result.updated_item_numbers == [3]
    assert result.skipped == [2]
    assert result.unmatched == [7]
    assert doc.donated_photo_indices == [2]
    assert doc.donated_at is not None


@pytest.mark.integration
def test_hauled_items_cannot_be_donated(db_session, seeded_users) -> None:
    job = make_job(db_session)
    doc = make_item(db_session, job, [{"photo_indices": [0, 1]}])

    hauled = mark_hauled(db_session, doc.id, [1])
    again = mark_donated(db_session, doc.id, [1])

    assert hauled.updated == 1
    assert doc.hauled_photo_indices == [0, 1]
    assert again.updated == 0
    assert again.skipped == [1]
    assert doc.donated_photo_indices == []


@pytest.mark.integration
def test_dispose_missing_document_is_404(db_session, seeded_users) -> None:
    import uuid

    with pytest.raises(HTTPException) as exc:
        mark_donated(db_session, uuid.uuid4(), [1])
    assert exc.value.status_code == 404


@pytest.mark.integration
def test_summary_counts_each_disposition(db_session, seeded_users) -> None:
    job = make_job(db_session)
    doc = make_item(
        db_session,
        job,
        [{"photo_indices": [0]}, {"photo_indices": [1]}, {"photo_indices": [2]}, {"photo_indices": [3]}],
    )
    mark_sold(db_session, doc.id, [0])
    mark_donated(db_session, doc.id, [2])
    mark_hauled(db_session, doc.id, [3])

    summary = job_item_summary(db_session, job.id)

    assert summary["counts"] == {"total": 4, "available": 1, "sold": 1, "donated": 1, "hauled": 1}
    donated_only = job_item_summary(db_session, job.id, disposition=Disposition.DONATED)
    assert [row["item_number"] for row in donated_only["items"]] == [2]
