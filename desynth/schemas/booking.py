"""Booking Schemas — fee quote, booking creation and the booking/escrow read views.

Invariants:
    - Amounts accepted as JSON string or number and parsed to Decimal by the core
      (non-numeric / non-finite input -> ValidationError naming the field)
    - Views expose exactly the persisted attributes, camelCase on the wire

Design Decisions:
    - payment_method typed as the PaymentMethod enum: unknown methods fail at the
      boundary with a 400 before pricing runs
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import Field

from desynth.core.domain_types import PaymentMethod
from desynth.core.fee_pricing import BookingContext
from desynth.core.validation import to_decimal
from desynth.schemas.common import CamelModel

AmountInput = str | int | float


class FeeQuoteRequest(CamelModel):
    """Pricing inputs shared by quotes and booking creation."""
    base_amount: AmountInput
    vertical: str = Field(min_length=1, max_length=40)
    facility_type: str = Field(min_length=1, max_length=40)
    payment_method: PaymentMethod
    transaction_size: AmountInput | None = None
    is_priority: bool = False
    requires_insurance: bool = False
    requires_tokenization: bool = False
    requires_audit: bool = False
    settlement_token: str = Field("ETH", min_length=1, max_length=16)

    def to_context(self) -> BookingContext:
        return BookingContext(
            vertical=self.vertical,
            facility_type=self.facility_type,
            payment_method=self.payment_method,
            transaction_size=(
                to_decimal(self.transaction_size, "transactionSize")
                if self.transaction_size is not None else None
            ),
            is_priority=self.is_priority,
            requires_insurance=self.requires_insurance,
            requires_tokenization=self.requires_tokenization,
            requires_audit=self.requires_audit,
            settlement_token=self.settlement_token,
        )


class BookingCreate(FeeQuoteRequest):
    slot_id: str = Field(min_length=1, max_length=64)
    facility_owner_id: str | None = Field(None, max_length=64)


class BookingCancel(CamelModel):
    reason: str | None = Field(None, max_length=500)


class BookingView(CamelModel):
    id: UUID
    buyer_id: str
    facility_owner_id: str | None
    slot_id: str
    base_amount: Decimal
    total_amount: Decimal
    status: str
    payment_status: str
    payment_method: str
    fee_breakdown: dict
    vertical: str
    facility_type: str
    settlement_token: str
    is_priority: bool
    requires_insurance: bool
    requires_tokenization: bool
    requires_audit: bool
    cancellation_reason: str | None
    created_at: datetime
    updated_at: datetime
    cancelled_at: datetime | None


class EscrowView(CamelModel):
    id: UUID
    booking_id: UUID
    buyer_address: str
    facility_address: str
    amount: Decimal
    token_address: str
    network: str
    status: str
    funding_tx_hash: str | None
    release_tx_hash: str | None
    dispute_winner: str | None
    created_at: datetime
    updated_at: datetime
    funded_at: datetime | None
    released_at: datetime | None
    disputed_at: datetime | None
    resolved_at: datetime | None


def booking_view(booking) -> dict:
    return BookingView.model_validate(booking).to_wire()


def escrow_view(escrow) -> dict | None:
    if escrow is None:
        return None
    return EscrowView.model_validate(escrow).to_wire()
