"""Fee Pricing Engine — pure (base amount, booking context) -> itemized FeeBreakdown.

Invariants:
    - PURE: no IO, no state; the only side effect is a warning log on unknown tiers
    - Each of the seven components is rounded independently (ROUND_HALF_UP, Decimal)
    - total_fees == sum(rounded components) — the aggregate is never re-rounded
    - total_amount == base_amount + total_fees
    - net_to_facility == base_amount - sum(facility-side components) <= base_amount
    - Only invalid numeric input raises (ValidationError); business rules never do

Design Decisions:
    - Decimal throughout: float drift would break the exact-sum invariant
    - PaymentMethod handlers in one explicit table, checked for exhaustiveness at
      import: a new payment variant cannot silently skip escrow/stablecoin rules
    - Commission tiers as data (COMMISSION_TIERS), rates clamped into the admin band
    - Auditor-network fee is opt-in (requires_audit): it is a per-booking service
"""

import logging
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Callable

from desynth.core.domain_types import (
    BookingVertical, FacilityType, FeeComponent, PaymentMethod,
)
from desynth.core.errors import ValidationError
from desynth.core.fee_rates import DEFAULT_FEE_RATES, FeeRates, RateBand, TokenizationRates
from desynth.core.validation import to_decimal

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
ZERO = Decimal("0")


@dataclass(frozen=True)
class BookingContext:
    """Everything besides the base amount that selects fee rules."""
    vertical: str
    facility_type: str
    payment_method: PaymentMethod
    transaction_size: Decimal | None = None
    is_priority: bool = False
    requires_insurance: bool = False
    requires_tokenization: bool = False
    requires_audit: bool = False
    settlement_token: str = "ETH"


@dataclass(frozen=True)
class FeeBreakdown:
    """Itemized fees. Stored on the booking as an immutable snapshot."""
    base_amount: Decimal
    booking_commission: Decimal
    escrow_service_fee: Decimal
    tokenization_fee: Decimal
    stablecoin_settlement_fee: Decimal
    insurance_pool_fee: Decimal
    auditor_network_fee: Decimal
    priority_matching_fee: Decimal
    total_fees: Decimal
    total_amount: Decimal
    net_to_facility: Decimal
    commission_rate: Decimal
    facility_side_components: tuple[str, ...] = ()

    def components(self) -> dict[FeeComponent, Decimal]:
        return {c: getattr(self, c.value) for c in FeeComponent}

    def to_snapshot(self) -> dict:
        """JSON-safe camelCase dict; Decimals as strings to keep exactness."""
        return {
            "baseAmount": str(self.base_amount),
            "bookingCommission": str(self.booking_commission),
            "escrowServiceFee": str(self.escrow_service_fee),
            "tokenizationFee": str(self.tokenization_fee),
            "stablecoinSettlementFee": str(self.stablecoin_settlement_fee),
            "insurancePoolFee": str(self.insurance_pool_fee),
            "auditorNetworkFee": str(self.auditor_network_fee),
            "priorityMatchingFee": str(self.priority_matching_fee),
            "totalFees": str(self.total_fees),
            "totalAmount": str(self.total_amount),
            "netToFacility": str(self.net_to_facility),
            "commissionRate": str(self.commission_rate),
            "facilitySideComponents": list(self.facility_side_components),
        }

    @classmethod
    def from_snapshot(cls, data: dict) -> "FeeBreakdown":
        return cls(
            base_amount=Decimal(data["baseAmount"]),
            booking_commission=Decimal(data["bookingCommission"]),
            escrow_service_fee=Decimal(data["escrowServiceFee"]),
            tokenization_fee=Decimal(data["tokenizationFee"]),
            stablecoin_settlement_fee=Decimal(data["stablecoinSettlementFee"]),
            insurance_pool_fee=Decimal(data["insurancePoolFee"]),
            auditor_network_fee=Decimal(data["auditorNetworkFee"]),
            priority_matching_fee=Decimal(data["priorityMatchingFee"]),
            total_fees=Decimal(data["totalFees"]),
            total_amount=Decimal(data["totalAmount"]),
            net_to_facility=Decimal(data["netToFacility"]),
            commission_rate=Decimal(data["commissionRate"]),
            facility_side_components=tuple(data.get("facilitySideComponents", ())),
        )


# ─── Booking commission tiers ───────────────────────────────────

@dataclass(frozen=True)
class CommissionTier:
    """First matching tier wins; unmatched recognized bookings use band.default."""
    vertical: BookingVertical
    applies: Callable[[Decimal], bool]
    rate: Callable[[RateBand], Decimal]
    label: str


COMMISSION_TIERS: tuple[CommissionTier, ...] = (
    CommissionTier(
        BookingVertical.CDMO, lambda size: size > Decimal("50000"),
        lambda band: band.min, "large_cdmo_run",
    ),
    CommissionTier(
        BookingVertical.SEQUENCING, lambda size: size < Decimal("2000"),
        lambda band: band.max, "small_sequencing_run",
    ),
    CommissionTier(
        BookingVertical.CLOUD_LAB, lambda size: size >= Decimal("10000"),
        lambda band: Decimal("0.035"), "cloud_lab",
    ),
    CommissionTier(
        BookingVertical.ACADEMIC, lambda size: True,
        lambda band: Decimal("0.025"), "academic_discount",
    ),
)


def select_commission_rate(
    context: BookingContext, size: Decimal, band: RateBand,
) -> Decimal:
    """Pick the commission rate inside [band.min, band.max]."""
    try:
        vertical = BookingVertical(context.vertical)
        FacilityType(context.facility_type)
    except ValueError:
        logger.warning(
            "Unrecognized vertical/facility type "
            f"({context.vertical!r}, {context.facility_type!r}); using default commission",
        )
        return band.default

    for tier in COMMISSION_TIERS:
        if tier.vertical == vertical and tier.applies(size):
            return band.clamp(tier.rate(band))
    return band.default


def tokenization_fee(base_amount: Decimal, rates: TokenizationRates) -> Decimal:
    """max(flat, pct * base), capped for small transactions."""
    fee = max(rates.flat, base_amount * rates.percentage)
    if base_amount < rates.small_transaction_threshold:
        fee = min(fee, rates.small_transaction_cap)
    return fee


# ─── Payment-method handlers ────────────────────────────────────

PaymentFeeHandler = Callable[
    [Decimal, BookingContext, FeeRates], dict[FeeComponent, Decimal],
]


def _card_fees(base: Decimal, context: BookingContext, rates: FeeRates) -> dict:
    return {}


def _bank_transfer_fees(base: Decimal, context: BookingContext, rates: FeeRates) -> dict:
    return {}


def _crypto_fees(base: Decimal, context: BookingContext, rates: FeeRates) -> dict:
    fees = {FeeComponent.ESCROW_SERVICE_FEE: base * rates.escrow_service_fee.default}
    if context.settlement_token.upper() in rates.stable_tokens:
        fees[FeeComponent.STABLECOIN_SETTLEMENT_FEE] = (
            base * rates.stablecoin_settlement_fee.default
        )
    return fees


PAYMENT_METHOD_FEES: dict[PaymentMethod, PaymentFeeHandler] = {
    PaymentMethod.CARD: _card_fees,
    PaymentMethod.CRYPTO: _crypto_fees,
    PaymentMethod.BANK_TRANSFER: _bank_transfer_fees,
}

_unhandled = set(PaymentMethod) - set(PAYMENT_METHOD_FEES)
if _unhandled:
    raise RuntimeError(f"Payment methods without fee handler: {sorted(_unhandled)}")


# ─── Entry point ────────────────────────────────────────────────

def calculate_fees(
    base_amount: object,
    context: BookingContext,
    rates: FeeRates = DEFAULT_FEE_RATES,
    quantum: Decimal = CENT,
) -> FeeBreakdown:
    """Compute the itemized fee breakdown for one booking."""
    base = to_decimal(base_amount, "baseAmount")
    if base < 0:
        raise ValidationError("Base amount must be >= 0", "baseAmount")
    size = _transaction_size(context, base)

    rate = select_commission_rate(context, size, rates.booking_commission)
    raw: dict[FeeComponent, Decimal] = {c: ZERO for c in FeeComponent}
    raw[FeeComponent.BOOKING_COMMISSION] = base * rate
    raw.update(PAYMENT_METHOD_FEES[PaymentMethod(context.payment_method)](
        base, context, rates,
    ))
    if context.requires_tokenization:
        raw[FeeComponent.TOKENIZATION_FEE] = tokenization_fee(base, rates.tokenization_fee)
    if context.requires_insurance:
        raw[FeeComponent.INSURANCE_POOL_FEE] = base * rates.insurance_pool_fee.default
    if context.is_priority:
        raw[FeeComponent.PRIORITY_MATCHING_FEE] = base * rates.priority_matching_fee.default
    if context.requires_audit:
        raw[FeeComponent.AUDITOR_NETWORK_FEE] = rates.auditor_network_fee.default

    rounded = {c: round_half_up(v, quantum) for c, v in raw.items()}
    total_fees = sum(rounded.values(), ZERO)
    withheld = sum((rounded[c] for c in rates.facility_side_components), ZERO)

    return FeeBreakdown(
        base_amount=base,
        total_fees=total_fees,
        total_amount=base + total_fees,
        net_to_facility=base - withheld,
        commission_rate=rate,
        facility_side_components=tuple(
            sorted(c.value for c in rates.facility_side_components),
        ),
        **{c.value: amount for c, amount in rounded.items()},
    )


def round_half_up(value: Decimal, quantum: Decimal = CENT) -> Decimal:
    return value.quantize(quantum, rounding=ROUND_HALF_UP)


def currency_quantum(decimals: int) -> Decimal:
    """Smallest currency unit: 2 -> Decimal("0.01")."""
    return Decimal(1).scaleb(-decimals)


def _transaction_size(context: BookingContext, base: Decimal) -> Decimal:
    """Tier-selection size; falls back to the base amount when absent or unusable."""
    if context.transaction_size is None:
        return base
    try:
        return to_decimal(context.transaction_size, "transactionSize")
    except ValidationError:
        logger.warning(
            f"Unusable transaction size {context.transaction_size!r}; using base amount",
        )
        return base
