import enum


class ServiceKind(str, enum.Enum):
    RIDE = "ride"
    PARCEL = "parcel"
    HOME_SERVICE = "home_service"


class RequestStatus(str, enum.Enum):
    SEARCHING = "searching"
    BID_RECEIVED = "bid_received"
    ACCEPTED = "accepted"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (RequestStatus.COMPLETED, RequestStatus.CANCELLED)


OPEN_STATUSES = (RequestStatus.SEARCHING, RequestStatus.BID_RECEIVED)
BOUND_STATUSES = (RequestStatus.ACCEPTED, RequestStatus.IN_PROGRESS)
NON_TERMINAL_STATUSES = OPEN_STATUSES + BOUND_STATUSES


class BidStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class CancellationActor(str, enum.Enum):
    OWNER = "owner"
    PROVIDER = "provider"


def enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    """Persist enum values (``in_progress``) rather than member names."""
    return [member.value for member in enum_cls]
