import uuid
from datetime import datetime

from sqlalchemy import DateTime, Enum as SQLEnum, ForeignKey, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from marketplace.database import Base
from marketplace.models.enums import CancellationActor, enum_values

CANCELLATION_REASONS: tuple[str, ...] = (
    "Changed my mind",
    "Found another provider",
    "Provider too far away",
    "Price too high",
    "No providers available",
    "Emergency came up",
    "Wrong destination",
    "Other",
)
OTHER_REASON = "Other"


class CancellationReason(Base):
    __tablename__ = "cancellation_reasons"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    request_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("service_requests.id", ondelete="CASCADE"), nullable=False, index=True
    )
    cancelled_by: Mapped[CancellationActor] = mapped_column(
        SQLEnum(CancellationActor, name="cancellation_actor_enum", values_callable=enum_values),
        nullable=False,
    )
    actor_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)

    reason: Mapped[str] = mapped_column(String(100), nullable=False)
    custom_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
