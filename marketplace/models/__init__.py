# Import all models so Alembic autogenerate and SQLAlchemy can see them
from marketplace.models.enums import (  # noqa: F401
    BidStatus,
    CancellationActor,
    RequestStatus,
    ServiceKind,
)
from marketplace.models.user import User  # noqa: F401
from marketplace.models.provider_profile import ProviderProfile  # noqa: F401
from marketplace.models.service_request import ServiceRequest  # noqa: F401
from marketplace.models.bid import Bid  # noqa: F401
from marketplace.models.cancellation import CancellationReason  # noqa: F401
from marketplace.models.rating import Rating  # noqa: F401
from marketplace.models.audit_log import AuditLog  # noqa: F401

__all__ = [
    "ServiceKind",
    "RequestStatus",
    "BidStatus",
    "CancellationActor",
    "User",
    "ProviderProfile",
    "ServiceRequest",
    "Bid",
    "CancellationReason",
    "Rating",
    "AuditLog",
]
