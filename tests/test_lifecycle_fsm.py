import pytest
from sqlalchemy import select

from conftest import make_provider, make_user, ride_payload
from marketplace.models import BidStatus, CancellationReason, RequestStatus
from marketplace.models.enums import CancellationActor
from marketplace.services import bid_service, lifecycle_fsm, matching_service, request_service
from marketplace.services.errors import ConflictError, ForbiddenError, ValidationError
from marketplace.services.lifecycle_fsm import VALID_TRANSITIONS, sources_of


async def _matched_request(db):
    owner = await make_user(db, "Owner")
    a = await make_provider(db, "A")
    b = await make_provider(db, "B")
    request = await request_service.create_request(db, owner.id, ride_payload(), 10.0)
    await bid_service.submit_bid(db, request.id, a.id, 8.0)
    bid_b = await bid_service.submit_bid(db, request.id, b.id, 7.5)
    await matching_service.accept_bid(db, bid_b.id, owner.id)
    return owner, a, b, request


def test_transition_table_shape():
    assert VALID_TRANSITIONS[RequestStatus.COMPLETED] == []
    assert VALID_TRANSITIONS[RequestStatus.CANCELLED] == []
    assert set(sources_of(RequestStatus.CANCELLED)) == {
        RequestStatus.SEARCHING,
        RequestStatus.BID_RECEIVED,
        RequestStatus.ACCEPTED,
        RequestStatus.IN_PROGRESS,
    }
    assert set(sources_of(RequestStatus.COMPLETED)) == {
        RequestStatus.ACCEPTED,
        RequestStatus.IN_PROGRESS,
    }
    assert sources_of(RequestStatus.IN_PROGRESS) == (RequestStatus.ACCEPTED,)


@pytest.mark.asyncio
async def test_full_lifecycle(db):
    owner, _, b, request = await _matched_request(db)

    started = await lifecycle_fsm.start_request(db, request.id, b.id)
    assert started.status == RequestStatus.IN_PROGRESS

    completed = await lifecycle_fsm.complete_request(db, request.id, owner.id)
    assert completed.status == RequestStatus.COMPLETED
    assert completed.provider_id == b.id
    assert completed.final_price == 7.5

    with pytest.raises(ConflictError, match="cannot be cancelled"):
        await lifecycle_fsm.cancel_request(db, request.id, owner.id, "Changed my mind")
    await db.refresh(completed)
    assert completed.status == RequestStatus.COMPLETED


@pytest.mark.asyncio
async def test_start_requires_bound_provider(db):
    owner, a, b, request = await _matched_request(db)

    with pytest.raises(ForbiddenError):
        await lifecycle_fsm.start_request(db, request.id, a.id)
    with pytest.raises(ForbiddenError):
        await lifecycle_fsm.start_request(db, request.id, owner.id)


@pytest.mark.asyncio
async def test_start_on_searching_request_conflicts(db):
    owner = await make_user(db)
    request = await request_service.create_request(db, owner.id, ride_payload(), 10.0)
    # Bound in name only, status still searching.
    driver = await make_provider(db)
    request.provider_id = driver.id
    await db.flush()

    with pytest.raises(ConflictError):
        await lifecycle_fsm.start_request(db, request.id, driver.id)


@pytest.mark.asyncio
async def test_start_twice_conflicts(db):
    _, _, b, request = await _matched_request(db)
    await lifecycle_fsm.start_request(db, request.id, b.id)

    with pytest.raises(ConflictError):
        await lifecycle_fsm.start_request(db, request.id, b.id)


@pytest.mark.asyncio
async def test_provider_can_complete_directly_from_accepted(db):
    _, _, b, request = await _matched_request(db)
    completed = await lifecycle_fsm.complete_request(db, request.id, b.id)
    assert completed.status == RequestStatus.COMPLETED


@pytest.mark.asyncio
async def test_complete_rules(db):
    owner = await make_user(db)
    stranger = await make_user(db, "Stranger")
    request = await request_service.create_request(db, owner.id, ride_payload(), 10.0)

    with pytest.raises(ConflictError):
        await lifecycle_fsm.complete_request(db, request.id, owner.id)
    with pytest.raises(ForbiddenError):
        await lifecycle_fsm.complete_request(db, request.id, stranger.id)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status",
    [
        RequestStatus.SEARCHING,
        RequestStatus.BID_RECEIVED,
        RequestStatus.ACCEPTED,
        RequestStatus.IN_PROGRESS,
    ],
)
async def test_owner_can_cancel_from_every_non_terminal_state(db, status):
    owner = await make_user(db)
    driver = await make_provider(db)
    request = await request_service.create_request(db, owner.id, ride_payload(), 10.0)
    request.status = status
    if status in (RequestStatus.ACCEPTED, RequestStatus.IN_PROGRESS):
        request.provider_id = driver.id
        request.final_price = 9.0
    await db.flush()

    cancelled = await lifecycle_fsm.cancel_request(db, request.id, owner.id, "Emergency came up")
    assert cancelled.status == RequestStatus.CANCELLED

    reason = (
        await db.execute(select(CancellationReason).where(CancellationReason.request_id == request.id))
    ).scalar_one()
    assert reason.reason == "Emergency came up"
    assert reason.cancelled_by == CancellationActor.OWNER

    # Second cancel fails and changes nothing.
    with pytest.raises(ConflictError):
        await lifecycle_fsm.cancel_request(db, request.id, owner.id, "Emergency came up")
    await db.refresh(cancelled)
    assert cancelled.status == RequestStatus.CANCELLED
    rows = (
        await db.execute(select(CancellationReason).where(CancellationReason.request_id == request.id))
    ).scalars().all()
    assert len(rows) == 1


@pytest.mark.asyncio
async def test_bound_provider_can_cancel(db):
    _, _, b, request = await _matched_request(db)
    await lifecycle_fsm.start_request(db, request.id, b.id)

    cancelled = await lifecycle_fsm.cancel_request(
        db, request.id, b.id, "Other", custom_reason="Vehicle broke down"
    )
    assert cancelled.status == RequestStatus.CANCELLED

    reason = (
        await db.execute(select(CancellationReason).where(CancellationReason.request_id == request.id))
    ).scalar_one()
    assert reason.cancelled_by == CancellationActor.PROVIDER
    assert reason.custom_reason == "Vehicle broke down"


@pytest.mark.asyncio
async def test_losing_bidder_cannot_cancel(db):
    _, a, _, request = await _matched_request(db)
    with pytest.raises(ForbiddenError):
        await lifecycle_fsm.cancel_request(db, request.id, a.id, "Changed my mind")


@pytest.mark.asyncio
async def test_cancel_reason_validation(db):
    owner = await make_user(db)
    request = await request_service.create_request(db, owner.id, ride_payload(), 10.0)

    with pytest.raises(ValidationError, match="reason must be one of"):
        await lifecycle_fsm.cancel_request(db, request.id, owner.id, "Bored")
    with pytest.raises(ValidationError, match="custom_reason"):
        await lifecycle_fsm.cancel_request(db, request.id, owner.id, "Other", custom_reason="  ")

    await db.refresh(request)
    assert request.status == RequestStatus.SEARCHING


@pytest.mark.asyncio
async def test_cancel_leaves_pending_bids_untouched(db):
    owner = await make_user(db)
    driver = await make_provider(db)
    request = await request_service.create_request(db, owner.id, ride_payload(), 10.0)
    bid = await bid_service.submit_bid(db, request.id, driver.id, 8.0)

    await lifecycle_fsm.cancel_request(db, request.id, owner.id, "Found another provider")

    await db.refresh(bid)
    assert bid.status == BidStatus.PENDING
