import uuid

from fastapi import APIRouter

from marketplace.dependencies import CurrentIdentity, DbSession
from marketplace.schemas.rating import RatingCheck, RatingCreate, RatingPublic, RatingSummary
from marketplace.services import rating_service, request_service
from marketplace.services.errors import MarketplaceError

router = APIRouter(prefix="/ratings", tags=["ratings"])


@router.post("", response_model=RatingPublic, status_code=201)
async def rate(body: RatingCreate, identity: CurrentIdentity, db: DbSession):
    try:
        rating = await rating_service.rate_request(
            db, body.request_id, identity.user_id, body.rating, body.review
        )
        await db.commit()
        await db.refresh(rating)
    except MarketplaceError:
        await db.rollback()
        raise
    return rating


@router.get("/check", response_model=RatingCheck)
async def check_rated(request_id: uuid.UUID, identity: CurrentIdentity, db: DbSession):
    request = await request_service.get_request_for_party(db, request_id, identity.user_id)
    ratee_id = request.provider_id if identity.user_id == request.owner_id else request.owner_id
    has_rated = ratee_id is not None and await rating_service.has_rated(
        db, request_id, identity.user_id, ratee_id
    )
    return RatingCheck(request_id=request_id, has_rated=has_rated)


@router.get("/users/{user_id}", response_model=RatingSummary)
async def user_rating(user_id: uuid.UUID, identity: CurrentIdentity, db: DbSession):
    average, count = await rating_service.rating_summary(db, user_id)
    return RatingSummary(user_id=user_id, average=average, count=count)
