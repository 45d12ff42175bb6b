"""
Request store: creation, lookup and the compare-and-set status transition
every lifecycle step goes through.
"""
import logging
import uuid

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.models.audit_log import AuditLog
from marketplace.models.enums import BOUND_STATUSES, NON_TERMINAL_STATUSES, RequestStatus, ServiceKind
from marketplace.models.service_request import ServiceRequest
from marketplace.services import rating_service
from marketplace.services.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from marketplace.services.service_kinds import parse_payload

logger = logging.getLogger(__name__)

# How far back find_active_for_owner looks for a completed-but-unrated request.
_ACTIVE_LOOKBACK = 10
# Most recent finished requests returned by the history views.
_HISTORY_LIMIT = 50


async def create_request(
    db: AsyncSession,
    owner_id: uuid.UUID,
    payload: dict,
    price: float,
) -> ServiceRequest:
    """Create a request in ``searching``.

    The payload's ``kind`` tag selects the variant it is validated against.
    An owner holds at most one open or in-flight request per kind.
    """
    if price is None or price <= 0:
        raise ValidationError("price must be greater than zero")

    adapter, parsed = parse_payload(payload)

    existing = await _active_request_id(db, owner_id, adapter.kind)
    if existing is not None:
        raise ConflictError(
            f"You already have an active {adapter.kind.value} request ({existing})"
        )

    origin_lat, origin_lng = adapter.origin(parsed)
    request = ServiceRequest(
        kind=adapter.kind,
        owner_id=owner_id,
        payload=parsed.model_dump(mode="json"),
        origin_lat=origin_lat,
        origin_lng=origin_lng,
        price=price,
        status=RequestStatus.SEARCHING,
    )
    db.add(request)
    try:
        await db.flush()
    except IntegrityError as exc:
        # A concurrent create won the partial unique index.
        raise ConflictError(
            f"You already have an active {adapter.kind.value} request"
        ) from exc

    db.add(
        AuditLog(
            request_id=request.id,
            from_status=None,
            to_status=RequestStatus.SEARCHING.value,
            actor_type="owner",
            actor_id=owner_id,
            reason="request_created",
            extra_data={"kind": adapter.kind.value, "price": price},
        )
    )
    await db.flush()
    logger.info("Request %s (%s) created by %s", request.id, adapter.kind.value, owner_id)
    return request


async def _active_request_id(
    db: AsyncSession,
    owner_id: uuid.UUID,
    kind: ServiceKind,
) -> uuid.UUID | None:
    return (
        await db.execute(
            select(ServiceRequest.id)
            .where(
                ServiceRequest.owner_id == owner_id,
                ServiceRequest.kind == kind,
                ServiceRequest.status.in_(NON_TERMINAL_STATUSES),
            )
            .limit(1)
        )
    ).scalar_one_or_none()


async def get_request(
    db: AsyncSession,
    request_id: uuid.UUID,
    *,
    for_update: bool = False,
) -> ServiceRequest:
    stmt = select(ServiceRequest).where(ServiceRequest.id == request_id)
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    request = (await db.execute(stmt)).scalar_one_or_none()
    if request is None:
        raise NotFoundError(f"Request {request_id} not found")
    return request


async def get_request_for_party(
    db: AsyncSession,
    request_id: uuid.UUID,
    caller_id: uuid.UUID,
) -> ServiceRequest:
    """Owner and bound provider may read the full request."""
    request = await get_request(db, request_id)
    if caller_id not in (request.owner_id, request.provider_id):
        raise ForbiddenError("Not your request")
    return request


async def find_active_for_owner(
    db: AsyncSession,
    owner_id: uuid.UUID,
    kind: ServiceKind,
) -> ServiceRequest | None:
    """
    Most recent request the owner should still see on their home screen:
    anything non-terminal, or a completed one whose provider they have not
    rated yet. Rating is a presentation filter, never a status.
    """
    stmt = (
        select(ServiceRequest)
        .where(
            ServiceRequest.owner_id == owner_id,
            ServiceRequest.kind == kind,
            ServiceRequest.status.in_(NON_TERMINAL_STATUSES + (RequestStatus.COMPLETED,)),
        )
        .order_by(ServiceRequest.created_at.desc())
        .limit(_ACTIVE_LOOKBACK)
    )
    for request in (await db.execute(stmt)).scalars():
        if request.status != RequestStatus.COMPLETED:
            return request
        if request.provider_id is None:
            continue
        if not await rating_service.has_rated(db, request.id, owner_id, request.provider_id):
            return request
    return None


async def list_jobs_for_provider(
    db: AsyncSession,
    provider_id: uuid.UUID,
    kind: ServiceKind | None = None,
) -> list[ServiceRequest]:
    """Requests the provider is bound to and has not finished yet, newest first."""
    stmt = (
        select(ServiceRequest)
        .where(
            ServiceRequest.provider_id == provider_id,
            ServiceRequest.status.in_(BOUND_STATUSES),
        )
        .order_by(ServiceRequest.created_at.desc())
    )
    if kind is not None:
        stmt = stmt.where(ServiceRequest.kind == kind)
    return list((await db.execute(stmt)).scalars().all())


async def list_history(
    db: AsyncSession,
    user_id: uuid.UUID,
    *,
    as_provider: bool = False,
    kind: ServiceKind | None = None,
) -> list[ServiceRequest]:
    """
    Completed and cancelled requests the user took part in, newest first.
    Owners see what they asked for; providers see what they were bound to.
    """
    party = ServiceRequest.provider_id if as_provider else ServiceRequest.owner_id
    stmt = (
        select(ServiceRequest)
        .where(
            party == user_id,
            ServiceRequest.status.in_((RequestStatus.COMPLETED, RequestStatus.CANCELLED)),
        )
        .order_by(ServiceRequest.created_at.desc())
        .limit(_HISTORY_LIMIT)
    )
    if kind is not None:
        stmt = stmt.where(ServiceRequest.kind == kind)
    return list((await db.execute(stmt)).scalars().all())


async def transition(
    db: AsyncSession,
    request_id: uuid.UUID,
    expected: tuple[RequestStatus, ...],
    new_status: RequestStatus,
    *,
    actor_type: str,
    actor_id: uuid.UUID | None,
    reason: str | None = None,
    metadata: dict | None = None,
    require_unbound: bool = False,
    conflict_detail: str = "Request is no longer available",
    **values,
) -> ServiceRequest:
    """
    Move a request to ``new_status`` only if it is still in one of
    ``expected`` (and still unbound when ``require_unbound``).

    The check and the write are a single conditional UPDATE, so two callers
    racing on the same request cannot both succeed: the loser matches zero
    rows and gets ConflictError. ``values`` are extra columns set in the same
    statement (provider_id, final_price). Writes an AuditLog entry.
    """
    current = await db.get(ServiceRequest, request_id)
    if current is None:
        raise NotFoundError(f"Request {request_id} not found")
    from_status = current.status

    stmt = (
        update(ServiceRequest)
        .where(ServiceRequest.id == request_id, ServiceRequest.status.in_(expected))
        .values(status=new_status, **values)
        .execution_options(synchronize_session=False)
    )
    if require_unbound:
        stmt = stmt.where(ServiceRequest.provider_id.is_(None))

    result = await db.execute(stmt)
    if result.rowcount != 1:
        raise ConflictError(conflict_detail)

    db.add(
        AuditLog(
            request_id=request_id,
            from_status=from_status.value,
            to_status=new_status.value,
            actor_type=actor_type,
            actor_id=actor_id,
            reason=reason,
            extra_data=metadata,
        )
    )
    await db.flush()
    await db.refresh(current)
    logger.info(
        "Request %s: %s -> %s by %s %s",
        request_id, from_status.value, new_status.value, actor_type, actor_id,
    )
    return current
