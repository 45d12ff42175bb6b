import uuid
from datetime import datetime

from sqlalchemy import JSON, DateTime, Enum as SQLEnum, Float, ForeignKey, Index, Uuid, func, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from marketplace.database import Base, utcnow
from marketplace.models.enums import RequestStatus, ServiceKind, enum_values

_ACTIVE_STATUSES = "status IN ('searching', 'bid_received', 'accepted', 'in_progress')"


class ServiceRequest(Base):
    __tablename__ = "service_requests"
    __table_args__ = (
        # An owner holds at most one open or in-flight request per kind.
        Index(
            "uq_service_requests_one_active_per_owner_kind",
            "owner_id",
            "kind",
            unique=True,
            postgresql_where=text(_ACTIVE_STATUSES),
            sqlite_where=text(_ACTIVE_STATUSES),
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    kind: Mapped[ServiceKind] = mapped_column(
        SQLEnum(ServiceKind, name="service_kind_enum", values_callable=enum_values),
        nullable=False,
        index=True,
    )
    owner_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    # Bound provider's user id; set only once a bid has been accepted.
    provider_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("users.id"), nullable=True, index=True
    )

    # Kind-specific body (pickup/destination, job description...) tagged with "kind".
    payload: Mapped[dict] = mapped_column(JSON, nullable=False)
    origin_lat: Mapped[float | None] = mapped_column(Float, nullable=True)
    origin_lng: Mapped[float | None] = mapped_column(Float, nullable=True)

    price: Mapped[float] = mapped_column(Float, nullable=False)
    final_price: Mapped[float | None] = mapped_column(Float, nullable=True)

    status: Mapped[RequestStatus] = mapped_column(
        SQLEnum(RequestStatus, name="request_status_enum", values_callable=enum_values),
        default=RequestStatus.SEARCHING,
        nullable=False,
        index=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), onupdate=func.now(), nullable=True
    )

    bids: Mapped[list["Bid"]] = relationship(
        "Bid", back_populates="request", cascade="all, delete-orphan", passive_deletes=True
    )
    audit_logs: Mapped[list["AuditLog"]] = relationship(
        "AuditLog", back_populates="request", cascade="all, delete-orphan", passive_deletes=True
    )
