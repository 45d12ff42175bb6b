"""
Provider-side discovery: the open-request feed, presence updates and the
nearby-provider lookup used for new-request pushes.

Distances are great-circle (Haversine) on the stored origin coordinates; the
candidate set is narrowed in SQL by status/kind first, then filtered by radius
in Python.
"""
import logging
import math
import uuid
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.config import settings
from marketplace.models.bid import Bid
from marketplace.models.enums import OPEN_STATUSES, BidStatus, ServiceKind
from marketplace.models.provider_profile import ProviderProfile
from marketplace.models.service_request import ServiceRequest
from marketplace.models.user import User
from marketplace.services.errors import ConflictError, ForbiddenError, NotFoundError
from marketplace.services.service_kinds import adapter_for

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0


@dataclass
class OpenRequestMatch:
    request: ServiceRequest
    distance_km: float | None


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in kilometres."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlam = math.radians(lng2 - lng1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlam / 2) ** 2
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


async def _get_profile(
    db: AsyncSession,
    provider_id: uuid.UUID,
    kind: ServiceKind,
) -> ProviderProfile:
    profile = (
        await db.execute(
            select(ProviderProfile).where(
                ProviderProfile.user_id == provider_id,
                ProviderProfile.kind == kind,
            )
        )
    ).scalar_one_or_none()
    if profile is None:
        raise NotFoundError(f"No {kind.value} provider profile")
    return profile


async def update_presence(
    db: AsyncSession,
    provider_id: uuid.UUID,
    kind: ServiceKind,
    is_online: bool,
    lat: float | None = None,
    lng: float | None = None,
) -> ProviderProfile:
    profile = await _get_profile(db, provider_id, kind)
    if is_online and not profile.is_verified:
        raise ForbiddenError("Your provider account is awaiting verification")

    profile.is_online = is_online
    if lat is not None and lng is not None:
        profile.current_lat = lat
        profile.current_lng = lng
    await db.flush()
    await db.refresh(profile)
    logger.info("Provider %s (%s) online=%s", provider_id, kind.value, is_online)
    return profile


async def list_open_requests_for_provider(
    db: AsyncSession,
    provider_id: uuid.UUID,
    kind: ServiceKind,
    radius_km: float | None = None,
) -> list[OpenRequestMatch]:
    """
    Requests the provider can still bid on.

    Ride/parcel: within ``radius_km`` of the provider's last location, nearest
    first; offline providers see nothing. Home service: requests in the
    provider's categories, newest first. Own requests and requests the
    provider already has a pending bid on are never listed.
    """
    profile = await _get_profile(db, provider_id, kind)
    if not profile.is_verified:
        raise ForbiddenError("Your provider account is awaiting verification")

    adapter = adapter_for(kind)
    if adapter.radius_based and not profile.is_online:
        return []
    if adapter.radius_based and not profile.has_location:
        raise ConflictError("Share your location to see nearby requests")

    already_bid = select(Bid.request_id).where(
        Bid.provider_id == provider_id,
        Bid.status == BidStatus.PENDING,
    )
    stmt = (
        select(ServiceRequest)
        .where(
            ServiceRequest.kind == kind,
            ServiceRequest.status.in_(OPEN_STATUSES),
            ServiceRequest.provider_id.is_(None),
            ServiceRequest.owner_id != provider_id,
            ServiceRequest.id.not_in(already_bid),
        )
        .order_by(ServiceRequest.created_at.desc())
    )
    candidates = (await db.execute(stmt)).scalars().all()

    if not adapter.radius_based:
        categories = set(profile.service_categories or [])
        return [
            OpenRequestMatch(request=req, distance_km=None)
            for req in candidates
            if req.payload.get("service_category") in categories
        ]

    radius = radius_km if radius_km is not None else settings.PROVIDER_SEARCH_RADIUS_KM
    matches = []
    for req in candidates:
        if req.origin_lat is None or req.origin_lng is None:
            continue
        distance = haversine_km(profile.current_lat, profile.current_lng, req.origin_lat, req.origin_lng)
        if distance <= radius:
            matches.append(OpenRequestMatch(request=req, distance_km=round(distance, 2)))
    matches.sort(key=lambda m: m.distance_km)
    return matches


async def find_providers_near(
    db: AsyncSession,
    kind: ServiceKind,
    lat: float,
    lng: float,
    radius_km: float,
    exclude_user_id: uuid.UUID | None = None,
) -> list[tuple[User, float]]:
    """Verified, online providers of ``kind`` within ``radius_km``, nearest first."""
    stmt = (
        select(ProviderProfile, User)
        .join(User, User.id == ProviderProfile.user_id)
        .where(
            ProviderProfile.kind == kind,
            ProviderProfile.is_verified.is_(True),
            ProviderProfile.is_online.is_(True),
            ProviderProfile.current_lat.is_not(None),
            ProviderProfile.current_lng.is_not(None),
        )
    )
    if exclude_user_id is not None:
        stmt = stmt.where(User.id != exclude_user_id)

    nearby = []
    for profile, user in (await db.execute(stmt)).all():
        distance = haversine_km(lat, lng, profile.current_lat, profile.current_lng)
        if distance <= radius_km:
            nearby.append((user, round(distance, 2)))
    nearby.sort(key=lambda pair: pair[1])
    return nearby
