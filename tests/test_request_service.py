import uuid

import pytest
from sqlalchemy import select

from conftest import home_service_payload, make_provider, make_user, parcel_payload, ride_payload
from marketplace.models import AuditLog, RequestStatus, ServiceKind, ServiceRequest
from marketplace.services import bid_service, lifecycle_fsm, matching_service, rating_service, request_service
from marketplace.services.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError


@pytest.mark.asyncio
async def test_create_ride_request_starts_searching(db):
    owner = await make_user(db)
    request = await request_service.create_request(db, owner.id, ride_payload(), 10.0)

    assert request.kind == ServiceKind.RIDE
    assert request.status == RequestStatus.SEARCHING
    assert request.provider_id is None
    assert request.final_price is None
    assert request.origin_lat == pytest.approx(-1.2864)
    assert request.payload["pickup"]["address"] == "Kenyatta Avenue"
    assert request.payload["is_round_trip"] is False

    audit = (await db.execute(select(AuditLog).where(AuditLog.request_id == request.id))).scalar_one()
    assert audit.to_status == "searching"
    assert audit.reason == "request_created"


@pytest.mark.asyncio
async def test_create_home_service_request_has_no_origin_without_coordinates(db):
    owner = await make_user(db)
    request = await request_service.create_request(db, owner.id, home_service_payload(), 2500.0)

    assert request.kind == ServiceKind.HOME_SERVICE
    assert request.origin_lat is None
    assert request.payload["service_category"] == "plumbing"


@pytest.mark.asyncio
@pytest.mark.parametrize("price", [0, -5.0])
async def test_create_rejects_non_positive_price(db, price):
    owner = await make_user(db)
    with pytest.raises(ValidationError, match="price"):
        await request_service.create_request(db, owner.id, ride_payload(), price)


@pytest.mark.asyncio
async def test_create_rejects_missing_payload_fields(db):
    owner = await make_user(db)
    payload = ride_payload()
    del payload["destination"]

    with pytest.raises(ValidationError, match="payload.destination"):
        await request_service.create_request(db, owner.id, payload, 10.0)


@pytest.mark.asyncio
async def test_create_rejects_unknown_kind(db):
    owner = await make_user(db)
    with pytest.raises(ValidationError):
        await request_service.create_request(db, owner.id, {"kind": "bus"}, 10.0)
    with pytest.raises(ValidationError, match="payload.kind"):
        await request_service.create_request(db, owner.id, {"pickup": {}}, 10.0)


@pytest.mark.asyncio
async def test_create_rejects_empty_job_description(db):
    owner = await make_user(db)
    payload = home_service_payload()
    payload["job_description"] = ""
    with pytest.raises(ValidationError, match="job_description"):
        await request_service.create_request(db, owner.id, payload, 500.0)


@pytest.mark.asyncio
async def test_one_active_request_per_kind(db):
    owner = await make_user(db)
    first = await request_service.create_request(db, owner.id, ride_payload(), 10.0)

    with pytest.raises(ConflictError, match=str(first.id)):
        await request_service.create_request(db, owner.id, ride_payload(), 12.0)

    # A different kind is independent.
    parcel = await request_service.create_request(db, owner.id, parcel_payload(), 8.0)
    assert parcel.kind == ServiceKind.PARCEL


@pytest.mark.asyncio
async def test_racing_create_is_stopped_by_unique_index(db, monkeypatch):
    owner = await make_user(db)
    first = await request_service.create_request(db, owner.id, ride_payload(), 10.0)
    await db.commit()
    owner_id, first_id = owner.id, first.id

    async def nothing_active(*args):
        return None

    # The second create looked before the first one committed.
    monkeypatch.setattr(request_service, "_active_request_id", nothing_active)
    with pytest.raises(ConflictError, match="active ride request"):
        await request_service.create_request(db, owner_id, ride_payload(), 12.0)
    await db.rollback()

    ids = (
        await db.execute(select(ServiceRequest.id).where(ServiceRequest.owner_id == owner_id))
    ).scalars().all()
    assert ids == [first_id]


@pytest.mark.asyncio
async def test_finished_request_frees_the_slot(db):
    owner = await make_user(db)
    first = await request_service.create_request(db, owner.id, ride_payload(), 10.0)
    first.status = RequestStatus.CANCELLED
    await db.flush()

    second = await request_service.create_request(db, owner.id, ride_payload(), 11.0)
    assert second.status == RequestStatus.SEARCHING


@pytest.mark.asyncio
async def test_get_request_not_found(db):
    with pytest.raises(NotFoundError):
        await request_service.get_request(db, uuid.uuid4())


@pytest.mark.asyncio
async def test_get_request_for_party_forbids_strangers(db):
    owner = await make_user(db)
    stranger = await make_user(db, "Stranger")
    request = await request_service.create_request(db, owner.id, ride_payload(), 10.0)

    assert (await request_service.get_request_for_party(db, request.id, owner.id)).id == request.id
    with pytest.raises(ForbiddenError):
        await request_service.get_request_for_party(db, request.id, stranger.id)


@pytest.mark.asyncio
async def test_transition_is_compare_and_set(db):
    owner = await make_user(db)
    provider = await make_provider(db)
    request = await request_service.create_request(db, owner.id, ride_payload(), 10.0)

    updated = await request_service.transition(
        db,
        request.id,
        (RequestStatus.SEARCHING, RequestStatus.BID_RECEIVED),
        RequestStatus.ACCEPTED,
        actor_type="owner",
        actor_id=owner.id,
        require_unbound=True,
        provider_id=provider.id,
        final_price=9.0,
    )
    assert updated.status == RequestStatus.ACCEPTED
    assert updated.provider_id == provider.id
    assert updated.final_price == 9.0

    # Same expectation again: the status has moved on, nothing is written.
    with pytest.raises(ConflictError, match="no longer available"):
        await request_service.transition(
            db,
            request.id,
            (RequestStatus.SEARCHING, RequestStatus.BID_RECEIVED),
            RequestStatus.CANCELLED,
            actor_type="owner",
            actor_id=owner.id,
        )
    await db.refresh(updated)
    assert updated.status == RequestStatus.ACCEPTED


@pytest.mark.asyncio
async def test_transition_require_unbound(db):
    owner = await make_user(db)
    provider = await make_provider(db)
    request = await request_service.create_request(db, owner.id, ride_payload(), 10.0)
    request.provider_id = provider.id
    await db.flush()

    with pytest.raises(ConflictError):
        await request_service.transition(
            db,
            request.id,
            (RequestStatus.SEARCHING,),
            RequestStatus.ACCEPTED,
            actor_type="owner",
            actor_id=owner.id,
            require_unbound=True,
        )


@pytest.mark.asyncio
async def test_find_active_returns_open_request(db):
    owner = await make_user(db)
    assert await request_service.find_active_for_owner(db, owner.id, ServiceKind.RIDE) is None

    request = await request_service.create_request(db, owner.id, ride_payload(), 10.0)
    active = await request_service.find_active_for_owner(db, owner.id, ServiceKind.RIDE)
    assert active.id == request.id
    assert await request_service.find_active_for_owner(db, owner.id, ServiceKind.PARCEL) is None


@pytest.mark.asyncio
async def test_find_active_hides_completed_once_rated(db):
    owner = await make_user(db)
    provider = await make_provider(db)
    request = await request_service.create_request(db, owner.id, ride_payload(), 10.0)
    request.status = RequestStatus.COMPLETED
    request.provider_id = provider.id
    request.final_price = 9.0
    await db.flush()

    active = await request_service.find_active_for_owner(db, owner.id, ServiceKind.RIDE)
    assert active is not None and active.id == request.id

    await rating_service.rate_request(db, request.id, owner.id, 5)
    assert await request_service.find_active_for_owner(db, owner.id, ServiceKind.RIDE) is None


@pytest.mark.asyncio
async def test_find_active_ignores_cancelled(db):
    owner = await make_user(db)
    request = await request_service.create_request(db, owner.id, ride_payload(), 10.0)
    request.status = RequestStatus.CANCELLED
    await db.flush()

    assert await request_service.find_active_for_owner(db, owner.id, ServiceKind.RIDE) is None


async def _matched_ride(db, driver):
    owner = await make_user(db)
    request = await request_service.create_request(db, owner.id, ride_payload(), 10.0)
    bid = await bid_service.submit_bid(db, request.id, driver.id, 9.0)
    await matching_service.accept_bid(db, bid.id, owner.id)
    return owner, request


@pytest.mark.asyncio
async def test_provider_jobs_are_bound_and_unfinished(db):
    driver = await make_provider(db, "Driver")
    other = await make_provider(db, "Other driver")
    _, accepted = await _matched_ride(db, driver)
    _, started = await _matched_ride(db, driver)
    await lifecycle_fsm.start_request(db, started.id, driver.id)
    owner, finished = await _matched_ride(db, driver)
    await lifecycle_fsm.complete_request(db, finished.id, owner.id)

    jobs = await request_service.list_jobs_for_provider(db, driver.id)

    assert [job.id for job in jobs] == [started.id, accepted.id]
    assert await request_service.list_jobs_for_provider(db, driver.id, ServiceKind.PARCEL) == []
    assert await request_service.list_jobs_for_provider(db, other.id) == []


@pytest.mark.asyncio
async def test_history_lists_finished_requests_for_each_side(db):
    driver = await make_provider(db, "Driver")
    owner, completed = await _matched_ride(db, driver)
    await lifecycle_fsm.complete_request(db, completed.id, driver.id)
    _, in_flight = await _matched_ride(db, driver)

    cancelled = await request_service.create_request(db, owner.id, ride_payload(), 12.0)
    await lifecycle_fsm.cancel_request(db, cancelled.id, owner.id, "Changed my mind")

    owner_history = await request_service.list_history(db, owner.id)
    assert [r.id for r in owner_history] == [cancelled.id, completed.id]
    assert await request_service.list_history(db, owner.id, kind=ServiceKind.HOME_SERVICE) == []

    # The cancelled request never had a provider, and the open job is not history yet.
    provider_history = await request_service.list_history(db, driver.id, as_provider=True)
    assert [r.id for r in provider_history] == [completed.id]
    assert in_flight.id not in [r.id for r in provider_history]
