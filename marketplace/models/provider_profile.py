import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum as SQLEnum,
    Float,
    ForeignKey,
    String,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from marketplace.database import Base
from marketplace.models.enums import ServiceKind, enum_values


class ProviderProfile(Base):
    """A user's registration as a driver, courier or service professional for one kind."""

    __tablename__ = "provider_profiles"
    __table_args__ = (UniqueConstraint("user_id", "kind", name="uq_provider_profile_user_kind"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    kind: Mapped[ServiceKind] = mapped_column(
        SQLEnum(ServiceKind, name="service_kind_enum", values_callable=enum_values),
        nullable=False,
    )

    is_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_online: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    current_lat: Mapped[float | None] = mapped_column(Float, nullable=True)
    current_lng: Mapped[float | None] = mapped_column(Float, nullable=True)

    # Home-service categories offered, e.g. ["plumbing", "electrical"]
    service_categories: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    vehicle_registration: Mapped[str | None] = mapped_column(String(30), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), onupdate=func.now(), nullable=True
    )

    user: Mapped["User"] = relationship("User", back_populates="provider_profiles")

    @property
    def has_location(self) -> bool:
        return self.current_lat is not None and self.current_lng is not None
