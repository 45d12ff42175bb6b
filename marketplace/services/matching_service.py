"""
Bid acceptance: binds one provider to a request.

All preconditions are checked before anything is written. The writes are
conditional UPDATEs inside the caller's transaction, so if a concurrent
acceptance wins first this one matches zero rows, raises ConflictError, and
the caller's rollback discards everything done here.
"""
import logging
import uuid

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.models.bid import Bid
from marketplace.models.enums import OPEN_STATUSES, BidStatus, RequestStatus
from marketplace.services import request_service
from marketplace.services.errors import ConflictError, ForbiddenError, NotFoundError

logger = logging.getLogger(__name__)

BID_UNAVAILABLE = "Bid is no longer available"
REQUEST_UNAVAILABLE = "Request is no longer available"


async def accept_bid(
    db: AsyncSession,
    bid_id: uuid.UUID,
    caller_id: uuid.UUID,
):
    """
    Owner accepts a specific bid:
    1. Validates the bid is pending and the caller owns its request.
    2. Binds the bidder and the bid price to the request (-> accepted).
    3. Marks the bid accepted and rejects every other pending bid.
    Returns (request, bid).
    """
    request_id = (
        await db.execute(select(Bid.request_id).where(Bid.id == bid_id))
    ).scalar_one_or_none()
    if request_id is None:
        raise NotFoundError(f"Bid {bid_id} not found")

    # Lock order is request, then bids, as in submit_bid and cancel_request.
    request = await request_service.get_request(db, request_id, for_update=True)
    bid = (
        await db.execute(
            select(Bid)
            .where(Bid.id == bid_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
    ).scalar_one()

    if request.owner_id != caller_id:
        raise ForbiddenError("Only the request owner can accept bids")
    if bid.status != BidStatus.PENDING:
        raise ConflictError(BID_UNAVAILABLE)
    if request.status not in OPEN_STATUSES or request.provider_id is not None:
        raise ConflictError(REQUEST_UNAVAILABLE)

    request = await request_service.transition(
        db,
        request.id,
        OPEN_STATUSES,
        RequestStatus.ACCEPTED,
        actor_type="owner",
        actor_id=caller_id,
        reason="bid_accepted",
        metadata={"bid_id": str(bid_id), "bid_price": bid.bid_price},
        require_unbound=True,
        conflict_detail=REQUEST_UNAVAILABLE,
        provider_id=bid.provider_id,
        final_price=bid.bid_price,
    )

    won = await db.execute(
        update(Bid)
        .where(Bid.id == bid_id, Bid.status == BidStatus.PENDING)
        .values(status=BidStatus.ACCEPTED)
        .execution_options(synchronize_session=False)
    )
    if won.rowcount != 1:
        raise ConflictError(BID_UNAVAILABLE)

    rejected = await db.execute(
        update(Bid)
        .where(
            Bid.request_id == request.id,
            Bid.id != bid_id,
            Bid.status == BidStatus.PENDING,
        )
        .values(status=BidStatus.REJECTED)
        .execution_options(synchronize_session=False)
    )
    await db.flush()
    await db.refresh(bid)

    logger.info(
        "Request %s matched to provider %s at %.2f (%d competing bids rejected)",
        request.id, bid.provider_id, bid.bid_price, rejected.rowcount,
    )
    return request, bid
