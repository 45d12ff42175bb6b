"""
Finite State Machine for the request lifecycle after matching.

    searching -> bid_received -> accepted -> in_progress -> completed
    {searching, bid_received, accepted, in_progress} -> cancelled

Every step is a request_service.transition, i.e. a conditional UPDATE, so a
request that moved on concurrently fails with ConflictError instead of being
overwritten.
"""
import logging
import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.models.cancellation import CANCELLATION_REASONS, OTHER_REASON, CancellationReason
from marketplace.models.enums import (
    BOUND_STATUSES,
    NON_TERMINAL_STATUSES,
    CancellationActor,
    RequestStatus,
)
from marketplace.models.service_request import ServiceRequest
from marketplace.services import request_service
from marketplace.services.errors import ConflictError, ForbiddenError, ValidationError

logger = logging.getLogger(__name__)

# --------------------------------------------------------------------------- #
#  Valid state transitions                                                     #
# --------------------------------------------------------------------------- #

VALID_TRANSITIONS: dict[RequestStatus, list[RequestStatus]] = {
    RequestStatus.SEARCHING: [
        RequestStatus.BID_RECEIVED,
        RequestStatus.ACCEPTED,
        RequestStatus.CANCELLED,
    ],
    RequestStatus.BID_RECEIVED: [RequestStatus.ACCEPTED, RequestStatus.CANCELLED],
    RequestStatus.ACCEPTED: [
        RequestStatus.IN_PROGRESS,
        RequestStatus.COMPLETED,
        RequestStatus.CANCELLED,
    ],
    RequestStatus.IN_PROGRESS: [RequestStatus.COMPLETED, RequestStatus.CANCELLED],
    RequestStatus.COMPLETED: [],
    RequestStatus.CANCELLED: [],
}


def sources_of(target: RequestStatus) -> tuple[RequestStatus, ...]:
    """All statuses from which ``target`` is reachable in one step."""
    return tuple(src for src, targets in VALID_TRANSITIONS.items() if target in targets)


# --------------------------------------------------------------------------- #
#  Start                                                                       #
# --------------------------------------------------------------------------- #


async def start_request(
    db: AsyncSession,
    request_id: uuid.UUID,
    caller_id: uuid.UUID,
) -> ServiceRequest:
    """Bound provider begins the trip / delivery / job."""
    request = await request_service.get_request(db, request_id, for_update=True)

    if request.provider_id is None or request.provider_id != caller_id:
        raise ForbiddenError("Only the assigned provider can start this request")
    if request.status != RequestStatus.ACCEPTED:
        raise ConflictError(f"Cannot start a request that is {request.status.value}")

    return await request_service.transition(
        db,
        request_id,
        (RequestStatus.ACCEPTED,),
        RequestStatus.IN_PROGRESS,
        actor_type="provider",
        actor_id=caller_id,
        reason="provider_started",
        conflict_detail="Request can no longer be started",
    )


# --------------------------------------------------------------------------- #
#  Complete                                                                    #
# --------------------------------------------------------------------------- #


async def complete_request(
    db: AsyncSession,
    request_id: uuid.UUID,
    caller_id: uuid.UUID,
) -> ServiceRequest:
    """Owner or bound provider marks the work done."""
    request = await request_service.get_request(db, request_id, for_update=True)

    if caller_id == request.owner_id:
        actor_type = "owner"
    elif request.provider_id is not None and caller_id == request.provider_id:
        actor_type = "provider"
    else:
        raise ForbiddenError("Only the owner or the assigned provider can complete this request")

    allowed = sources_of(RequestStatus.COMPLETED)
    if request.status not in allowed:
        raise ConflictError(f"Cannot complete a request that is {request.status.value}")

    return await request_service.transition(
        db,
        request_id,
        allowed,
        RequestStatus.COMPLETED,
        actor_type=actor_type,
        actor_id=caller_id,
        reason=f"{actor_type}_completed",
        metadata={"final_price": request.final_price},
        conflict_detail="Request can no longer be completed",
    )


# --------------------------------------------------------------------------- #
#  Cancel                                                                      #
# --------------------------------------------------------------------------- #


def _check_reason(reason: str, custom_reason: str | None) -> str | None:
    if reason not in CANCELLATION_REASONS:
        raise ValidationError(
            f"reason must be one of: {', '.join(CANCELLATION_REASONS)}"
        )
    custom = (custom_reason or "").strip() or None
    if reason == OTHER_REASON and custom is None:
        raise ValidationError("custom_reason is required when reason is 'Other'")
    return custom


async def cancel_request(
    db: AsyncSession,
    request_id: uuid.UUID,
    caller_id: uuid.UUID,
    reason: str,
    custom_reason: str | None = None,
) -> ServiceRequest:
    """
    Owner may cancel from any non-terminal status; the bound provider only
    once bound (accepted / in_progress). Pending bids are left as they are:
    provider views filter on request status, so they drop out on their own.
    """
    request = await request_service.get_request(db, request_id, for_update=True)

    if caller_id == request.owner_id:
        actor = CancellationActor.OWNER
        allowed = NON_TERMINAL_STATUSES
    elif request.provider_id is not None and caller_id == request.provider_id:
        actor = CancellationActor.PROVIDER
        allowed = BOUND_STATUSES
    else:
        raise ForbiddenError("Only the owner or the assigned provider can cancel this request")

    if request.status not in allowed:
        raise ConflictError(f"Request cannot be cancelled ({request.status.value})")

    custom = _check_reason(reason, custom_reason)

    request = await request_service.transition(
        db,
        request_id,
        allowed,
        RequestStatus.CANCELLED,
        actor_type=actor.value,
        actor_id=caller_id,
        reason=reason,
        metadata={"custom_reason": custom} if custom else None,
        conflict_detail="Request cannot be cancelled",
    )
    db.add(
        CancellationReason(
            request_id=request_id,
            cancelled_by=actor,
            actor_id=caller_id,
            reason=reason,
            custom_reason=custom,
        )
    )
    await db.flush()
    return request
