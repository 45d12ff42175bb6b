"""
FastAPI dependency injection helpers: database session + JWT identity.

Tokens are minted by the auth service. Here they are verified once and turned
into a typed Identity that is passed explicitly into every service call.
"""
import uuid
from typing import Annotated

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from pydantic import BaseModel
from pydantic import ValidationError as ClaimsValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.config import settings
from marketplace.database import get_db
from marketplace.models.user import User
from marketplace.services.errors import UnauthorizedError

_bearer = HTTPBearer(auto_error=False)

_INVALID_TOKEN = "Invalid or expired token"


class Identity(BaseModel):
    user_id: uuid.UUID
    phone: str | None = None


def _decode_token(token: str) -> dict:
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        raise UnauthorizedError(_INVALID_TOKEN)


def identity_from_token(token: str) -> Identity:
    payload = _decode_token(token)
    try:
        return Identity(user_id=payload.get("sub"), phone=payload.get("phone"))
    except ClaimsValidationError:
        raise UnauthorizedError(_INVALID_TOKEN)


async def get_identity(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(_bearer)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> Identity:
    if credentials is None:
        raise UnauthorizedError("Not authenticated")
    identity = identity_from_token(credentials.credentials)
    user_id = (
        await db.execute(select(User.id).where(User.id == identity.user_id))
    ).scalar_one_or_none()
    if user_id is None:
        raise UnauthorizedError(_INVALID_TOKEN)
    return identity


CurrentIdentity = Annotated[Identity, Depends(get_identity)]
DbSession = Annotated[AsyncSession, Depends(get_db)]
