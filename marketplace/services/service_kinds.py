"""
Per-kind adapters for the shared request/bid lifecycle.

Rides, parcels and home-service jobs go through the same state machine; the
only things that differ are the shape of the payload, where the request is
located, and which providers may bid on it. Each adapter captures exactly
those three differences so the stores and the FSM never branch on kind.
"""
from dataclasses import dataclass
from typing import Callable

from pydantic import BaseModel, TypeAdapter
from pydantic import ValidationError as PayloadValidationError

from marketplace.models.enums import ServiceKind
from marketplace.models.provider_profile import ProviderProfile
from marketplace.models.service_request import ServiceRequest
from marketplace.schemas.request import HomeServicePayload, RequestPayload
from marketplace.services.errors import ConflictError, ForbiddenError, ValidationError

_payload_adapter = TypeAdapter(RequestPayload)


def _pickup_origin(payload: BaseModel) -> tuple[float | None, float | None]:
    return payload.pickup.lat, payload.pickup.lng


def _home_origin(payload: HomeServicePayload) -> tuple[float | None, float | None]:
    return payload.lat, payload.lng


def _check_online(profile: ProviderProfile, request: ServiceRequest) -> None:
    if not profile.is_online:
        raise ConflictError("Go online before bidding on requests")


def _check_category(profile: ProviderProfile, request: ServiceRequest) -> None:
    category = request.payload.get("service_category")
    if category not in (profile.service_categories or []):
        raise ForbiddenError(f"You do not offer '{category}' services")


@dataclass(frozen=True)
class KindAdapter:
    kind: ServiceKind
    # Radius-based kinds match providers by distance to the request origin;
    # the others match on service category.
    radius_based: bool
    origin: Callable[[BaseModel], tuple[float | None, float | None]]
    check_provider: Callable[[ProviderProfile, ServiceRequest], None]


ADAPTERS: dict[ServiceKind, KindAdapter] = {
    ServiceKind.RIDE: KindAdapter(
        kind=ServiceKind.RIDE,
        radius_based=True,
        origin=_pickup_origin,
        check_provider=_check_online,
    ),
    ServiceKind.PARCEL: KindAdapter(
        kind=ServiceKind.PARCEL,
        radius_based=True,
        origin=_pickup_origin,
        check_provider=_check_online,
    ),
    ServiceKind.HOME_SERVICE: KindAdapter(
        kind=ServiceKind.HOME_SERVICE,
        radius_based=False,
        origin=_home_origin,
        check_provider=_check_category,
    ),
}


def adapter_for(kind: ServiceKind) -> KindAdapter:
    return ADAPTERS[kind]


def parse_payload(payload: dict) -> tuple[KindAdapter, BaseModel]:
    """Validate a raw payload against its tagged variant.

    Raises ValidationError naming the first offending field.
    """
    if not isinstance(payload, dict) or "kind" not in payload:
        raise ValidationError("payload.kind is required")
    try:
        parsed = _payload_adapter.validate_python(payload)
    except PayloadValidationError as exc:
        first = exc.errors()[0]
        # Discriminated unions prefix the location with the tag itself.
        loc = [str(part) for part in first["loc"]]
        if loc and loc[0] == payload["kind"]:
            loc = loc[1:]
        field = ".".join(["payload", *loc])
        raise ValidationError(f"{field}: {first['msg']}") from exc
    return ADAPTERS[ServiceKind(parsed.kind)], parsed
