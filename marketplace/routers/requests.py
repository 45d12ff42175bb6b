"""Requests router: create, look up and drive a request through its lifecycle."""
import uuid

from fastapi import APIRouter, BackgroundTasks

from marketplace.dependencies import CurrentIdentity, DbSession
from marketplace.models.enums import ServiceKind
from marketplace.schemas.bid import BidPublic, BidWithProvider
from marketplace.schemas.request import CancelRequest, RequestCreate, RequestPublic
from marketplace.services import bid_service, lifecycle_fsm, notification_service, request_service
from marketplace.services.errors import MarketplaceError

router = APIRouter(prefix="/requests", tags=["requests"])


@router.post("", response_model=RequestPublic, status_code=201)
async def create_request(
    body: RequestCreate,
    identity: CurrentIdentity,
    db: DbSession,
    background_tasks: BackgroundTasks,
):
    try:
        request = await request_service.create_request(
            db, identity.user_id, body.payload.model_dump(mode="json"), body.price
        )
        await db.commit()
    except MarketplaceError:
        await db.rollback()
        raise

    background_tasks.add_task(
        notification_service.notify_new_request,
        request.id,
        request.kind,
        request.owner_id,
        request.origin_lat,
        request.origin_lng,
    )
    return request


@router.get("/active", response_model=RequestPublic | None)
async def get_active_request(kind: ServiceKind, identity: CurrentIdentity, db: DbSession):
    """The caller's in-flight request of this kind, or a completed one still awaiting a rating."""
    return await request_service.find_active_for_owner(db, identity.user_id, kind)


@router.get("/history", response_model=list[RequestPublic])
async def get_history(identity: CurrentIdentity, db: DbSession, kind: ServiceKind | None = None):
    """The caller's completed and cancelled requests, newest first."""
    return await request_service.list_history(db, identity.user_id, kind=kind)


@router.get("/{request_id}", response_model=RequestPublic)
async def get_request(request_id: uuid.UUID, identity: CurrentIdentity, db: DbSession):
    return await request_service.get_request_for_party(db, request_id, identity.user_id)


@router.get("/{request_id}/bids", response_model=list[BidWithProvider])
async def list_bids(request_id: uuid.UUID, identity: CurrentIdentity, db: DbSession):
    ranked = await bid_service.list_bids_for_request(db, request_id, identity.user_id)
    return [
        BidWithProvider(
            **BidPublic.model_validate(item.bid).model_dump(),
            provider_name=item.provider_name,
            provider_rating=item.provider_rating,
            provider_rating_count=item.provider_rating_count,
        )
        for item in ranked
    ]


@router.post("/{request_id}/start", response_model=RequestPublic)
async def start_request(
    request_id: uuid.UUID,
    identity: CurrentIdentity,
    db: DbSession,
    background_tasks: BackgroundTasks,
):
    try:
        request = await lifecycle_fsm.start_request(db, request_id, identity.user_id)
        await db.commit()
    except MarketplaceError:
        await db.rollback()
        raise

    background_tasks.add_task(
        notification_service.notify_status_change, request.owner_id, request.id, request.status.value
    )
    return request


@router.post("/{request_id}/complete", response_model=RequestPublic)
async def complete_request(
    request_id: uuid.UUID,
    identity: CurrentIdentity,
    db: DbSession,
    background_tasks: BackgroundTasks,
):
    try:
        request = await lifecycle_fsm.complete_request(db, request_id, identity.user_id)
        await db.commit()
    except MarketplaceError:
        await db.rollback()
        raise

    other = request.provider_id if identity.user_id == request.owner_id else request.owner_id
    background_tasks.add_task(
        notification_service.notify_status_change, other, request.id, request.status.value
    )
    return request


@router.post("/{request_id}/cancel", response_model=RequestPublic)
async def cancel_request(
    request_id: uuid.UUID,
    body: CancelRequest,
    identity: CurrentIdentity,
    db: DbSession,
    background_tasks: BackgroundTasks,
):
    try:
        request = await lifecycle_fsm.cancel_request(
            db, request_id, identity.user_id, body.reason, body.custom_reason
        )
        await db.commit()
    except MarketplaceError:
        await db.rollback()
        raise

    other = request.provider_id if identity.user_id == request.owner_id else request.owner_id
    if other is not None:
        background_tasks.add_task(
            notification_service.notify_status_change, other, request.id, request.status.value
        )
    return request
