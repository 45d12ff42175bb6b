"""
Bid store: providers price an open request, owners compare offers.

Bids are only ever created here; their status changes exclusively through
matching_service.accept_bid.
"""
import logging
import uuid
from dataclasses import dataclass

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.models.audit_log import AuditLog
from marketplace.models.bid import Bid
from marketplace.models.enums import OPEN_STATUSES, BidStatus, RequestStatus, ServiceKind
from marketplace.models.provider_profile import ProviderProfile
from marketplace.models.service_request import ServiceRequest
from marketplace.models.user import User
from marketplace.services import rating_service, request_service
from marketplace.services.errors import ConflictError, ForbiddenError, ValidationError
from marketplace.services.service_kinds import adapter_for

logger = logging.getLogger(__name__)


@dataclass
class RankedBid:
    bid: Bid
    provider_name: str
    provider_rating: float | None
    provider_rating_count: int


async def get_verified_profile(
    db: AsyncSession,
    provider_id: uuid.UUID,
    kind: ServiceKind,
) -> ProviderProfile:
    profile = (
        await db.execute(
            select(ProviderProfile).where(
                ProviderProfile.user_id == provider_id,
                ProviderProfile.kind == kind,
            )
        )
    ).scalar_one_or_none()
    if profile is None:
        raise ForbiddenError(f"You are not registered as a {kind.value} provider")
    if not profile.is_verified:
        raise ForbiddenError("Your provider account is awaiting verification")
    return profile


async def submit_bid(
    db: AsyncSession,
    request_id: uuid.UUID,
    provider_id: uuid.UUID,
    bid_price: float,
    message: str | None = None,
) -> Bid:
    """
    Create a PENDING bid. The first bid on a request moves it from
    ``searching`` to ``bid_received``.
    """
    if bid_price is None or bid_price <= 0:
        raise ValidationError("bid_price must be greater than zero")

    request = await request_service.get_request(db, request_id, for_update=True)

    if request.owner_id == provider_id:
        raise ForbiddenError("You cannot bid on your own request")

    profile = await get_verified_profile(db, provider_id, request.kind)
    adapter_for(request.kind).check_provider(profile, request)

    if request.status not in OPEN_STATUSES or request.provider_id is not None:
        raise ConflictError("Request is no longer available")

    duplicate = (
        await db.execute(
            select(Bid.id).where(
                Bid.request_id == request_id,
                Bid.provider_id == provider_id,
                Bid.status == BidStatus.PENDING,
            )
        )
    ).first()
    if duplicate is not None:
        raise ConflictError("You already have a pending bid on this request")

    bid = Bid(
        request_id=request_id,
        provider_id=provider_id,
        bid_price=bid_price,
        message=message,
        status=BidStatus.PENDING,
    )
    db.add(bid)
    await db.flush()

    if request.status == RequestStatus.SEARCHING:
        # A concurrent first bid may already have flipped it; zero rows is fine.
        flipped = await db.execute(
            update(ServiceRequest)
            .where(
                ServiceRequest.id == request_id,
                ServiceRequest.status == RequestStatus.SEARCHING,
            )
            .values(status=RequestStatus.BID_RECEIVED)
            .execution_options(synchronize_session=False)
        )
        if flipped.rowcount == 1:
            db.add(
                AuditLog(
                    request_id=request_id,
                    from_status=RequestStatus.SEARCHING.value,
                    to_status=RequestStatus.BID_RECEIVED.value,
                    actor_type="provider",
                    actor_id=provider_id,
                    reason="first_bid_submitted",
                    extra_data={"bid_id": str(bid.id)},
                )
            )
            await db.flush()
        await db.refresh(request)

    logger.info("Bid %s on request %s by %s at %.2f", bid.id, request_id, provider_id, bid_price)
    return bid


async def list_bids_for_request(
    db: AsyncSession,
    request_id: uuid.UUID,
    caller_id: uuid.UUID,
) -> list[RankedBid]:
    """Pending bids on the caller's request, cheapest first."""
    request = await request_service.get_request(db, request_id)
    if request.owner_id != caller_id:
        raise ForbiddenError("Only the request owner can view its bids")

    rows = (
        await db.execute(
            select(Bid, User.full_name)
            .join(User, User.id == Bid.provider_id)
            .where(Bid.request_id == request_id, Bid.status == BidStatus.PENDING)
            .order_by(Bid.bid_price.asc(), Bid.created_at.asc())
        )
    ).all()

    summaries = await rating_service.rating_summaries(
        db, list({bid.provider_id for bid, _ in rows})
    )
    ranked = []
    for bid, name in rows:
        average, count = summaries[bid.provider_id]
        ranked.append(
            RankedBid(bid=bid, provider_name=name, provider_rating=average, provider_rating_count=count)
        )
    return ranked


async def list_pending_bids_for_provider(
    db: AsyncSession,
    provider_id: uuid.UUID,
    kind: ServiceKind | None = None,
) -> list[Bid]:
    """The provider's offers still waiting on an open, unbound request."""
    stmt = (
        select(Bid)
        .join(ServiceRequest, ServiceRequest.id == Bid.request_id)
        .where(
            Bid.provider_id == provider_id,
            Bid.status == BidStatus.PENDING,
            ServiceRequest.status.in_(OPEN_STATUSES),
            ServiceRequest.provider_id.is_(None),
        )
        .order_by(Bid.created_at.desc())
    )
    if kind is not None:
        stmt = stmt.where(ServiceRequest.kind == kind)
    return list((await db.execute(stmt)).scalars().all())
