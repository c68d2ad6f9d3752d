from __future__ import annotations

import pytest
from fastapi import HTTPException

from app.models import (
    Bid,
    BidStatus,
    BidType,
    FinanceEntryKind,
    JobStage,
    PaymentMethod,
    Vendor,
    VendorServiceType,
    VendorType,
)
from app.services.bids import accept_bid, complete_work, list_job_bids, list_opportunities, mark_vendor_paid, submit_bid
from app.services.finance import finance_snapshot
from factories import make_item, make_job


def _vendor(db, name: str, service_type: VendorServiceType = VendorServiceType.BOTH, active: bool = True) -> Vendor:
    vendor = Vendor(
        name=name,
        type=VendorType.HAULER if service_type != VendorServiceType.DONATION else VendorType.DONATION_PARTNER,
        service_type=service_type,
        active=active,
    )
    db.add(vendor)
    db.flush()
    return vendor


def _bid(db, job, vendor, amount: float = 300.0) -> Bid:
    return submit_bid(db, job.id, vendor.id, amount=amount, timeline_days=3, payment_method=PaymentMethod.CASH)


@pytest.mark.integration
def test_bid_type_follows_job_stage(db_session, seeded_users) -> None:
    job = make_job(db_session, stage=JobStage.DONATIONS)
    vendor = _vendor(db_session, "Goodwill East")

    donation = _bid(db_session, job, vendor)
    job.stage = JobStage.HAULING
    hauling = _bid(db_session, job, vendor)

    assert donation.bid_type == BidType.DONATION
    assert hauling.bid_type == BidType.HAULING


@pytest.mark.integration
def test_accept_rejects_competitors_on_the_same_track_only(db_session, seeded_users) -> None:
    job = make_job(db_session, stage=JobStage.DONATIONS)
    first = _vendor(db_session, "Goodwill East")
    second = _vendor(db_session, "Habitat ReStore")
    winner = _bid(db_session, job, first)
    loser = _bid(db_session, job, second)
    job.stage = JobStage.HAULING
    other_track = _bid(db_session, job, second)

    accept_bid(db_session, winner.id)

    assert winner.status == BidStatus.ACCEPTED
    assert loser.status == BidStatus.REJECTED
    assert other_track.status == BidStatus.SUBMITTED


@pytest.mark.integration
def test_second_accept_on_a_track_conflicts(db_session, seeded_users) -> None:
    job = make_job(db_session, stage=JobStage.HAULING)
    winner = _bid(db_session, job, _vendor(db_session, "Big Truck Co"))
    accept_bid(db_session, winner.id)
    late = _bid(db_session, job, _vendor(db_session, "Late Hauler"))

    with pytest.raises(HTTPException) as exc:
        accept_bid(db_session, late.id)

    assert exc.value.status_code == 409
    assert late.status == BidStatus.SUBMITTED


@pytest.mark.integration
def test_legacy_accepted_bid_blocks_both_tracks(db_session, seeded_users) -> None:
    job = make_job(db_session, stage=JobStage.HAULING)
    legacy_vendor = _vendor(db_session, "Old Partner")
    db_session.add(
        Bid(
            job_id=job.id,
            vendor_id=legacy_vendor.id,
            amount=100.0,
            timeline_days=1,
            status=BidStatus.ACCEPTED,
            bid_type=None,
            payment_method=PaymentMethod.CASH,
        )
    )
    db_session.flush()
    hauling = _bid(db_session, job, _vendor(db_session, "New Hauler"))

    with pytest.raises(HTTPException) as exc:
        accept_bid(db_session, hauling.id)
    assert exc.value.status_code == 409


@pytest.mark.integration
def test_duplicate_pending_bid_and_inactive_vendor(db_session, seeded_users) -> None:
    job = make_job(db_session, stage=JobStage.HAULING)
    vendor = _vendor(db_session, "Big Truck Co")
    _bid(db_session, job, vendor)

    with pytest.raises(HTTPException) as duplicate:
        _bid(db_session, job, vendor)
    assert duplicate.value.status_code == 409

    with pytest.raises(HTTPException) as inactive:
        _bid(db_session, job, _vendor(db_session, "Retired Hauler", active=False))
    assert inactive.value.status_code == 400


@pytest.mark.integration
def test_cashapp_bid_requires_handle(db_session, seeded_users) -> None:
    job = make_job(db_session, stage=JobStage.HAULING)
    vendor = _vendor(db_session, "Big Truck Co")

    with pytest.raises(HTTPException) as exc:
        submit_bid(db_session, job.id, vendor.id, amount=100, timeline_days=2, payment_method=PaymentMethod.CASHAPP)
    assert exc.value.status_code == 422


@pytest.mark.integration
def test_vendor_payment_posts_one_expense(db_session, seeded_users) -> None:
    job = make_job(db_session, stage=JobStage.HAULING)
    vendor = _vendor(db_session, "Big Truck Co", service_type=VendorServiceType.HAULING)
    bid = _bid(db_session, job, vendor, amount=450.0)
    accept_bid(db_session, bid.id)
    complete_work(db_session, bid.id)

    mark_vendor_paid(db_session, bid.id)

    assert bid.is_paid is True
    assert bid.paid_amount == 450.0
    daily = finance_snapshot(db_session, job)["daily"]
    assert [(row["kind"], row["label"], row["amount"]) for row in daily] == [
        (FinanceEntryKind.EXPENSE, "Hauling - Big Truck Co", -450.0)
    ]
    assert job.finance_hauling_cost == 450.0

    with pytest.raises(HTTPException) as exc:
        mark_vendor_paid(db_session, bid.id)
    assert exc.value.status_code == 409
    assert job.finance_hauling_cost == 450.0


@pytest.mark.integration
def test_vendor_payment_keeps_explicit_zero_amount(db_session, seeded_users) -> None:
    job = make_job(db_session, stage=JobStage.HAULING)
    vendor = _vendor(db_session, "Free Haul", service_type=VendorServiceType.HAULING)
    bid = _bid(db_session, job, vendor, amount=450.0)
    accept_bid(db_session, bid.id)

    mark_vendor_paid(db_session, bid.id, paid_amount=0.0)

    assert bid.paid_amount == 0.0
    assert job.finance_hauling_cost == 0.0


@pytest.mark.integration
def test_job_bids_are_grouped_by_track(db_session, seeded_users) -> None:
    job = make_job(db_session, stage=JobStage.DONATIONS)
    vendor = _vendor(db_session, "Goodwill East")
    _bid(db_session, job, vendor)
    job.stage = JobStage.HAULING
    _bid(db_session, job, vendor)

    grouped = list_job_bids(db_session, job.id)

    assert len(grouped["donation"]) == 1
    assert len(grouped["hauling"]) == 1
    assert grouped["legacy"] == []


@pytest.mark.integration
def test_opportunities_hide_jobs_with_accepted_bid_on_current_track(db_session, seeded_users) -> None:
    open_job = make_job(db_session, stage=JobStage.HAULING, property_address="1 Open Road, Columbus, OH 43004")
    make_item(db_session, open_job, [{"photo_indices": [0]}, {"photo_indices": [1]}])
    taken_job = make_job(db_session, stage=JobStage.HAULING, property_address="2 Taken Lane, Columbus, OH 43004")
    hauler = _vendor(db_session, "Big Truck Co", service_type=VendorServiceType.HAULING)
    accept_bid(db_session, _bid(db_session, taken_job, hauler).id)
    _bid(db_session, open_job, hauler)

    rows = list_opportunities(db_session, vendor_id=hauler.id)

    assert [row["job_id"] for row in rows] == [open_job.id]
    assert rows[0]["available_items_count"] == 2
    assert rows[0]["vendor_bid_status"] == BidStatus.SUBMITTED
    assert rows[0]["bid_type"] == BidType.HAULING
