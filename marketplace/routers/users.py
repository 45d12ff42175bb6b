"""Users router: the caller's own device registration."""
from fastapi import APIRouter

from marketplace.dependencies import CurrentIdentity, DbSession
from marketplace.schemas.user import PushTokenUpdate, UserPublic
from marketplace.services import user_service
from marketplace.services.errors import MarketplaceError

router = APIRouter(prefix="/users", tags=["users"])


@router.put("/me/push-token", response_model=UserPublic)
async def register_push_token(body: PushTokenUpdate, identity: CurrentIdentity, db: DbSession):
    try:
        user = await user_service.update_push_token(db, identity.user_id, body.push_token)
        await db.commit()
    except MarketplaceError:
        await db.rollback()
        raise
    return UserPublic(
        id=user.id,
        full_name=user.full_name,
        phone=user.phone,
        has_push_token=user.push_token is not None,
    )
