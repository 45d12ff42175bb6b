import uuid
from datetime import datetime
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from marketplace.models.enums import RequestStatus, ServiceKind
from marketplace.schemas.common import Place


class RidePayload(BaseModel):
    kind: Literal["ride"] = "ride"
    pickup: Place
    destination: Place
    distance_km: float = Field(ge=0)
    is_round_trip: bool = False


class ParcelPayload(BaseModel):
    kind: Literal["parcel"] = "parcel"
    pickup: Place
    delivery: Place
    distance_km: float = Field(ge=0)
    # Motorbike couriers are the only parcel vehicle on offer.
    vehicle_type: Literal["motorbike"] = "motorbike"
    package_description: str | None = Field(default=None, max_length=500)


class HomeServicePayload(BaseModel):
    kind: Literal["home_service"] = "home_service"
    service_category: str = Field(min_length=1, max_length=100)
    job_description: str = Field(min_length=1, max_length=2000)
    location: str = Field(min_length=1, max_length=500)
    lat: float | None = Field(default=None, ge=-90, le=90)
    lng: float | None = Field(default=None, ge=-180, le=180)

    @model_validator(mode="after")
    def check_coordinates_pair(self) -> "HomeServicePayload":
        if (self.lat is None) != (self.lng is None):
            raise ValueError("lat and lng must be given together")
        return self


RequestPayload = Annotated[
    Union[RidePayload, ParcelPayload, HomeServicePayload],
    Field(discriminator="kind"),
]


class RequestCreate(BaseModel):
    # Proposed fare for rides/parcels, budget for home services.
    price: float = Field(gt=0)
    payload: RequestPayload


class RequestPublic(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    kind: ServiceKind
    owner_id: uuid.UUID
    provider_id: uuid.UUID | None
    payload: dict
    price: float
    final_price: float | None
    status: RequestStatus
    created_at: datetime
    updated_at: datetime | None


class OpenRequest(RequestPublic):
    distance_km: float | None = None


class CancelRequest(BaseModel):
    reason: str = Field(min_length=1, max_length=100)
    custom_reason: str | None = Field(default=None, max_length=500)
