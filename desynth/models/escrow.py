"""Escrow ORM — on-chain custody record for one booking's crypto payment.

Invariants:
    - booking_id is UNIQUE: at most one escrow per booking (the creation idempotency key)
    - funding_tx_hash is UNIQUE when set: one transaction funds one escrow
    - status moves forward only (core/state_machines.ESCROW_TRANSITIONS)
    - terminal rows (released, resolved) are retained for audit, never deleted

Design Decisions:
    - Numeric(36, 18) for amount: holds wei-precision token amounts
    - Timestamps per transition (funded_at, disputed_at, ...) instead of a history table:
      release guard reads disputed_at directly
"""

import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import String, DateTime, Numeric, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.dialects.postgresql import UUID

from desynth.db.base import Base


class Escrow(Base):
    """Escrow entity — crypto custody for a single booking."""
    __tablename__ = "crypto_escrows"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    booking_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("bookings.id"),
        nullable=False, unique=True,
    )
    buyer_address: Mapped[str] = mapped_column(String(42), nullable=False)
    facility_address: Mapped[str] = mapped_column(String(42), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(36, 18), nullable=False)
    token_address: Mapped[str] = mapped_column(String(42), nullable=False)
    network: Mapped[str] = mapped_column(String(32), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="created",
    )
    funding_tx_hash: Mapped[str | None] = mapped_column(
        String(66), nullable=True, unique=True,
    )
    release_tx_hash: Mapped[str | None] = mapped_column(String(66), nullable=True)
    dispute_winner: Mapped[str | None] = mapped_column(String(20), nullable=True)
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
    funded_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    released_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    disputed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    resolved_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )

    booking: Mapped["Booking"] = relationship(
        "Booking", back_populates="escrow", lazy="raise",
    )
