"""Account fields this service is allowed to change: the device push token."""
import logging
import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.models.user import User
from marketplace.services.errors import NotFoundError

logger = logging.getLogger(__name__)


async def update_push_token(db: AsyncSession, user_id: uuid.UUID, push_token: str | None) -> User:
    """Store the FCM token of the user's current device; None unregisters it."""
    user = await db.get(User, user_id)
    if user is None:
        raise NotFoundError(f"User {user_id} not found")
    user.push_token = push_token
    await db.flush()
    logger.info("Push token %s for user %s", "stored" if push_token else "cleared", user_id)
    return user
