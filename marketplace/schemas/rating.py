import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class RatingCreate(BaseModel):
    request_id: uuid.UUID
    rating: int = Field(ge=1, le=5)
    review: str | None = Field(default=None, max_length=1000)


class RatingPublic(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    request_id: uuid.UUID
    rater_id: uuid.UUID
    ratee_id: uuid.UUID
    rating: int
    review: str | None
    created_at: datetime


class RatingCheck(BaseModel):
    request_id: uuid.UUID
    has_rated: bool


class RatingSummary(BaseModel):
    user_id: uuid.UUID
    average: float | None
    count: int
