"""BlockchainTransaction ORM — append-only audit log of escrow funding and release.

Invariants:
    - Rows are only inserted, in the same DB transaction as the escrow transition
    - booking_id links to the owning booking

Design Decisions:
    - Audit table, not enforcement: no guard reads it (escrow.status is the source of truth)
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import String, BigInteger, DateTime, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.dialects.postgresql import UUID

from desynth.db.base import Base


class BlockchainTransaction(Base):
    """Audit entry for an on-chain escrow event."""
    __tablename__ = "blockchain_transactions"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    booking_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("bookings.id"), nullable=False, index=True,
    )
    tx_hash: Mapped[str | None] = mapped_column(String(66), nullable=True)
    type: Mapped[str] = mapped_column(String(30), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    block_number: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    gas_used: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
