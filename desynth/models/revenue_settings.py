"""RevenueSettings ORM — versioned admin fee-rate configuration.

Invariants:
    - Append-only: each admin update inserts a new row; the newest row is current
    - fee_rates holds FeeRates.to_dict() (Decimals as strings)

Design Decisions:
    - Versions instead of in-place update: the rate history stays auditable, and
      bookings never reference this table (they carry their own snapshot)
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import String, DateTime, JSON
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.dialects.postgresql import UUID

from desynth.db.base import Base


class RevenueSettings(Base):
    """One version of the fee-rate configuration."""
    __tablename__ = "revenue_settings"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    fee_rates: Mapped[dict] = mapped_column(JSON, nullable=False)
    updated_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        index=True,
    )
