"""Post-completion ratings between a request's owner and its provider."""
import logging
import uuid

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.models.enums import RequestStatus
from marketplace.models.rating import Rating
from marketplace.models.service_request import ServiceRequest
from marketplace.services.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)


async def has_rated(
    db: AsyncSession,
    request_id: uuid.UUID,
    rater_id: uuid.UUID,
    ratee_id: uuid.UUID,
) -> bool:
    stmt = select(Rating.id).where(
        Rating.request_id == request_id,
        Rating.rater_id == rater_id,
        Rating.ratee_id == ratee_id,
    )
    return (await db.execute(stmt)).first() is not None


async def rate_request(
    db: AsyncSession,
    request_id: uuid.UUID,
    rater_id: uuid.UUID,
    rating: int,
    review: str | None = None,
) -> Rating:
    """
    The owner rates the provider or the provider rates the owner, once the
    request is completed. Rating again replaces the earlier score.
    """
    if not 1 <= rating <= 5:
        raise ValidationError("rating must be between 1 and 5")

    request = (
        await db.execute(select(ServiceRequest).where(ServiceRequest.id == request_id))
    ).scalar_one_or_none()
    if request is None:
        raise NotFoundError(f"Request {request_id} not found")

    if rater_id == request.owner_id:
        ratee_id = request.provider_id
    elif request.provider_id is not None and rater_id == request.provider_id:
        ratee_id = request.owner_id
    else:
        raise ForbiddenError("Only the owner or the assigned provider can rate this request")

    if request.status != RequestStatus.COMPLETED or ratee_id is None:
        raise ConflictError("Only completed requests can be rated")

    existing = (
        await db.execute(
            select(Rating).where(
                Rating.request_id == request_id,
                Rating.rater_id == rater_id,
                Rating.ratee_id == ratee_id,
            )
        )
    ).scalar_one_or_none()

    if existing is not None:
        existing.rating = rating
        existing.review = review
        await db.flush()
        return existing

    row = Rating(
        request_id=request_id,
        rater_id=rater_id,
        ratee_id=ratee_id,
        rating=rating,
        review=review,
    )
    db.add(row)
    await db.flush()
    logger.info("Request %s: %s rated %s (%d)", request_id, rater_id, ratee_id, rating)
    return row


async def rating_summary(db: AsyncSession, user_id: uuid.UUID) -> tuple[float | None, int]:
    """(average rounded to one decimal, number of ratings) for a user."""
    average, count = (
        await db.execute(
            select(func.avg(Rating.rating), func.count(Rating.id)).where(Rating.ratee_id == user_id)
        )
    ).one()
    if not count:
        return None, 0
    return round(float(average), 1), count


async def rating_summaries(
    db: AsyncSession,
    user_ids: list[uuid.UUID],
) -> dict[uuid.UUID, tuple[float | None, int]]:
    """Batch form of rating_summary for bid lists."""
    if not user_ids:
        return {}
    rows = (
        await db.execute(
            select(Rating.ratee_id, func.avg(Rating.rating), func.count(Rating.id))
            .where(Rating.ratee_id.in_(user_ids))
            .group_by(Rating.ratee_id)
        )
    ).all()
    summaries: dict[uuid.UUID, tuple[float | None, int]] = {uid: (None, 0) for uid in user_ids}
    for ratee_id, average, count in rows:
        summaries[ratee_id] = (round(float(average), 1), count)
    return summaries
