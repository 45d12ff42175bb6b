import uuid

from pydantic import BaseModel, ConfigDict, Field, model_validator

from marketplace.models.enums import ServiceKind


class PresenceUpdate(BaseModel):
    kind: ServiceKind
    is_online: bool
    lat: float | None = Field(default=None, ge=-90, le=90)
    lng: float | None = Field(default=None, ge=-180, le=180)

    @model_validator(mode="after")
    def check_coordinates_pair(self) -> "PresenceUpdate":
        if (self.lat is None) != (self.lng is None):
            raise ValueError("lat and lng must be given together")
        return self


class ProviderProfilePublic(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: uuid.UUID
    kind: ServiceKind
    is_verified: bool
    is_online: bool
    current_lat: float | None
    current_lng: float | None
    service_categories: list[str]
