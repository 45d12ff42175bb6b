"""Bids router: submit, accept, and list a provider's own offers."""
import uuid

from fastapi import APIRouter, BackgroundTasks

from marketplace.dependencies import CurrentIdentity, DbSession
from marketplace.models.enums import ServiceKind
from marketplace.schemas.bid import BidAccepted, BidCreate, BidPublic
from marketplace.schemas.request import RequestPublic
from marketplace.services import bid_service, matching_service, notification_service, request_service
from marketplace.services.errors import MarketplaceError

router = APIRouter(prefix="/bids", tags=["bids"])


@router.post("", response_model=BidPublic, status_code=201)
async def submit_bid(
    body: BidCreate,
    identity: CurrentIdentity,
    db: DbSession,
    background_tasks: BackgroundTasks,
):
    try:
        bid = await bid_service.submit_bid(
            db, body.request_id, identity.user_id, body.bid_price, body.message
        )
        request = await request_service.get_request(db, body.request_id)
        await db.commit()
    except MarketplaceError:
        await db.rollback()
        raise

    background_tasks.add_task(
        notification_service.notify_new_bid, request.owner_id, request.id, bid.bid_price
    )
    return bid


@router.post("/{bid_id}/accept", response_model=BidAccepted)
async def accept_bid(
    bid_id: uuid.UUID,
    identity: CurrentIdentity,
    db: DbSession,
    background_tasks: BackgroundTasks,
):
    """
    Owner accepts a bid:
    - Binds the bidder and their price to the request.
    - Rejects every other pending bid on it.
    A 409 means another acceptance or a cancellation got there first.
    """
    try:
        request, bid = await matching_service.accept_bid(db, bid_id, identity.user_id)
        await db.commit()
    except MarketplaceError:
        await db.rollback()
        raise

    background_tasks.add_task(notification_service.notify_bid_accepted, bid.provider_id, request.id)
    return BidAccepted(request=RequestPublic.model_validate(request), bid=BidPublic.model_validate(bid))


@router.get("/mine", response_model=list[BidPublic])
async def list_my_bids(
    identity: CurrentIdentity,
    db: DbSession,
    kind: ServiceKind | None = None,
):
    return await bid_service.list_pending_bids_for_provider(db, identity.user_id, kind)
