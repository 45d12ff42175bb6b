"""Provider-side endpoints: presence, the open-request feed, and the provider's own jobs."""
from fastapi import APIRouter

from marketplace.dependencies import CurrentIdentity, DbSession
from marketplace.models.enums import ServiceKind
from marketplace.schemas.provider import PresenceUpdate, ProviderProfilePublic
from marketplace.schemas.request import OpenRequest, RequestPublic
from marketplace.services import request_service, spatial_service
from marketplace.services.errors import MarketplaceError

router = APIRouter(prefix="/providers", tags=["providers"])


@router.put("/me/presence", response_model=ProviderProfilePublic)
async def update_presence(body: PresenceUpdate, identity: CurrentIdentity, db: DbSession):
    try:
        profile = await spatial_service.update_presence(
            db, identity.user_id, body.kind, body.is_online, body.lat, body.lng
        )
        await db.commit()
    except MarketplaceError:
        await db.rollback()
        raise
    return profile


@router.get("/me/open-requests", response_model=list[OpenRequest])
async def list_open_requests(kind: ServiceKind, identity: CurrentIdentity, db: DbSession):
    matches = await spatial_service.list_open_requests_for_provider(db, identity.user_id, kind)
    return [
        OpenRequest(
            **RequestPublic.model_validate(match.request).model_dump(),
            distance_km=match.distance_km,
        )
        for match in matches
    ]


@router.get("/me/jobs", response_model=list[RequestPublic])
async def list_my_jobs(identity: CurrentIdentity, db: DbSession, kind: ServiceKind | None = None):
    """Requests the caller has been matched to and not yet finished."""
    return await request_service.list_jobs_for_provider(db, identity.user_id, kind)


@router.get("/me/history", response_model=list[RequestPublic])
async def get_history(identity: CurrentIdentity, db: DbSession, kind: ServiceKind | None = None):
    return await request_service.list_history(db, identity.user_id, as_provider=True, kind=kind)
