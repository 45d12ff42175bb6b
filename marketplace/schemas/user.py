import uuid

from pydantic import BaseModel, ConfigDict, Field


class PushTokenUpdate(BaseModel):
    push_token: str | None = Field(default=None, min_length=1, max_length=500)


class UserPublic(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    full_name: str
    phone: str
    has_push_token: bool = False
