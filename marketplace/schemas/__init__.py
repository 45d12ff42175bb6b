from marketplace.schemas.common import ErrorResponse, HealthResponse, Place  # noqa: F401
from marketplace.schemas.request import (  # noqa: F401
    CancelRequest,
    HomeServicePayload,
    OpenRequest,
    ParcelPayload,
    RequestCreate,
    RequestPayload,
    RequestPublic,
    RidePayload,
)
from marketplace.schemas.bid import BidAccepted, BidCreate, BidPublic, BidWithProvider  # noqa: F401
from marketplace.schemas.provider import PresenceUpdate, ProviderProfilePublic  # noqa: F401
from marketplace.schemas.rating import (  # noqa: F401
    RatingCheck,
    RatingCreate,
    RatingPublic,
    RatingSummary,
)
from marketplace.schemas.user import PushTokenUpdate, UserPublic  # noqa: F401
