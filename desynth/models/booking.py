"""Booking ORM — a buyer's claim on a production slot, with its frozen fee snapshot.

Invariants:
    - id is UUID primary key
    - fee_breakdown is written once at creation and never recomputed from live rates
    - status follows core/state_machines.BOOKING_TRANSITIONS; rows are never deleted
    - status changes go through conditional UPDATEs (services/booking_lifecycle.py)

Design Decisions:
    - JSON column for fee_breakdown: copy-on-write snapshot, no join to fee config
    - Numeric(18, 2) for currency amounts: Decimal end-to-end, no float drift
    - facility_owner_id denormalized from the slot: notification target and dispute party
    - escrow relationship is lazy="raise": services select escrows explicitly, so an
      implicit load under asyncio raises at the attribute access
"""

import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import String, Text, Boolean, DateTime, JSON, Numeric
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.dialects.postgresql import UUID

from desynth.db.base import Base


class Booking(Base):
    """Booking aggregate — owns at most one crypto escrow."""
    __tablename__ = "bookings"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    buyer_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    facility_owner_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    slot_id: Mapped[str] = mapped_column(String(64), nullable=False)
    base_amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="reserved",
    )
    payment_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="pending",
    )
    payment_method: Mapped[str] = mapped_column(String(20), nullable=False)
    fee_breakdown: Mapped[dict] = mapped_column(JSON, nullable=False)
    vertical: Mapped[str] = mapped_column(String(40), nullable=False)
    facility_type: Mapped[str] = mapped_column(String(40), nullable=False)
    settlement_token: Mapped[str] = mapped_column(
        String(16), nullable=False, default="ETH",
    )
    is_priority: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    requires_insurance: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False,
    )
    requires_tokenization: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False,
    )
    requires_audit: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False,
    )
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    cancelled_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )

    escrow: Mapped["Escrow | None"] = relationship(
        "Escrow", back_populates="booking", uselist=False, lazy="raise",
    )
