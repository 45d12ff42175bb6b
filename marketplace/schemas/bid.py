import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from marketplace.models.enums import BidStatus
from marketplace.schemas.request import RequestPublic


class BidCreate(BaseModel):
    request_id: uuid.UUID
    bid_price: float = Field(gt=0)
    message: str | None = Field(default=None, max_length=1000)


class BidPublic(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    request_id: uuid.UUID
    provider_id: uuid.UUID
    bid_price: float
    status: BidStatus
    message: str | None
    created_at: datetime


class BidWithProvider(BidPublic):
    provider_name: str
    provider_rating: float | None
    provider_rating_count: int


class BidAccepted(BaseModel):
    request: RequestPublic
    bid: BidPublic
