"""Domain Types — closed enumerations and identity types for bookings, escrows and fees.

Invariants:
    - BookingId / EscrowId wrap UUIDs — never pass bare strings past the validation layer
    - Every status, method and role is a str Enum — no raw string comparisons in services
    - PaymentMethod is the only switch for payment-specific fee rules (see fee_pricing)

Design Decisions:
    - NewType over dataclass wrappers: zero runtime cost, full type-checker support
    - str Enums: serialize to JSON and to String DB columns without custom encoders
"""

from decimal import Decimal
from enum import Enum
from typing import NewType
from uuid import UUID


# ─── Identity Types ──────────────────────────────────────────────

BookingId = NewType("BookingId", UUID)
EscrowId = NewType("EscrowId", UUID)


# ─── Constants ───────────────────────────────────────────────────

MAX_ESCROW_AMOUNT = Decimal("1000000")
ZERO_ADDRESS = "0x" + "0" * 40  # native ETH


# ─── Booking ─────────────────────────────────────────────────────

class BookingStatus(str, Enum):
    """Booking lifecycle states — maps to bookings.status."""
    RESERVED = "reserved"
    PROCESSING = "processing"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    DISPUTED = "disputed"


class BookingEvent(str, Enum):
    """Events that drive booking transitions."""
    ESCROW_CREATED = "escrow_created"
    ESCROW_FUNDED = "escrow_funded"
    ESCROW_RELEASED = "escrow_released"
    ESCROW_DISPUTED = "escrow_disputed"
    RESOLVED_FOR_FACILITY = "resolved_for_facility"
    RESOLVED_FOR_BUYER = "resolved_for_buyer"
    CANCEL = "cancel"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    RELEASED = "released"
    REFUNDED = "refunded"
    CANCELLED = "cancelled"


class PaymentMethod(str, Enum):
    """Closed set of payment variants. Adding one requires a fee handler."""
    CARD = "card"
    CRYPTO = "crypto"
    BANK_TRANSFER = "bank_transfer"


class BookingVertical(str, Enum):
    CDMO = "cdmo"
    SEQUENCING = "sequencing"
    CLOUD_LAB = "cloud_lab"
    FERMENTATION = "fermentation"
    ACADEMIC = "academic"


class FacilityType(str, Enum):
    BIOPROCESSING = "bioprocessing"
    CELL_CULTURE = "cell_culture"
    ANALYTICAL = "analytical"
    FORMULATION = "formulation"
    MANUFACTURING = "manufacturing"


# ─── Escrow ──────────────────────────────────────────────────────

class EscrowStatus(str, Enum):
    """Escrow custody states — maps to crypto_escrows.status."""
    CREATED = "created"
    FUNDED = "funded"
    RELEASED = "released"
    DISPUTED = "disputed"
    RESOLVED = "resolved"


class EscrowEvent(str, Enum):
    FUND = "fund"
    RELEASE = "release"
    DISPUTE = "dispute"
    RESOLVE = "resolve"


class DisputeWinner(str, Enum):
    BUYER = "buyer"
    FACILITY = "facility"


class TransactionType(str, Enum):
    """Audit log entry kinds — maps to blockchain_transactions.type."""
    ESCROW_FUNDING = "escrow_funding"
    ESCROW_RELEASE = "escrow_release"


# ─── Fees ────────────────────────────────────────────────────────

class FeeComponent(str, Enum):
    """The seven independently-rounded fee components of a breakdown."""
    BOOKING_COMMISSION = "booking_commission"
    ESCROW_SERVICE_FEE = "escrow_service_fee"
    TOKENIZATION_FEE = "tokenization_fee"
    STABLECOIN_SETTLEMENT_FEE = "stablecoin_settlement_fee"
    INSURANCE_POOL_FEE = "insurance_pool_fee"
    AUDITOR_NETWORK_FEE = "auditor_network_fee"
    PRIORITY_MATCHING_FEE = "priority_matching_fee"


# ─── Access ──────────────────────────────────────────────────────

class ActorRole(str, Enum):
    """Caller roles asserted by the upstream gateway (X-Actor-Role)."""
    BUYER = "buyer"
    FACILITY = "facility"
    AUDITOR = "auditor"
    ARBITER = "arbiter"
    ADMIN = "admin"
    ANONYMOUS = "anonymous"


class Capability(str, Enum):
    RELEASE_ESCROW = "release_escrow"
    RESOLVE_DISPUTE = "resolve_dispute"
    MANAGE_FEE_RATES = "manage_fee_rates"
    CANCEL_ANY_BOOKING = "cancel_any_booking"
