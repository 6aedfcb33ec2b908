"""Input Validation — format and bound checks for ids, addresses, hashes, networks and amounts.

Invariants:
    - All functions are PURE: parse or raise ValidationError naming the field at fault
    - Validation runs before any repository or RPC access

Design Decisions:
    - Services validate, not only schemas: services are callable without the HTTP layer
"""

import re
from collections.abc import Collection
from decimal import Decimal, InvalidOperation
from uuid import UUID

from desynth.core.domain_types import BookingId, MAX_ESCROW_AMOUNT
from desynth.core.errors import ValidationError

_UUID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE,
)
_ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")
_TX_HASH_RE = re.compile(r"^0x[a-fA-F0-9]{64}$")


def parse_booking_id(value: object, field: str = "bookingId") -> BookingId:
    if isinstance(value, UUID):
        return BookingId(value)
    if not isinstance(value, str) or not _UUID_RE.match(value):
        raise ValidationError("Invalid booking ID", field)
    return BookingId(UUID(value))


def parse_eth_address(value: object, field: str = "facilityAddress") -> str:
    if not isinstance(value, str) or not _ADDRESS_RE.match(value):
        raise ValidationError("Invalid address format", field)
    return value


def parse_tx_hash(value: object, field: str = "txHash") -> str:
    if not isinstance(value, str) or not _TX_HASH_RE.match(value):
        raise ValidationError("Invalid transaction hash", field)
    return value.lower()


def parse_network(value: object, supported: Collection[str], field: str = "network") -> str:
    """Network name from the deployment allowlist; anything else is rejected."""
    if not isinstance(value, str) or value not in supported:
        raise ValidationError(
            f"Unsupported network (expected one of: {', '.join(sorted(supported))})", field,
        )
    return value


def parse_escrow_amount(value: object, field: str = "amount") -> Decimal:
    """0 < amount <= MAX_ESCROW_AMOUNT."""
    amount = to_decimal(value, field)
    if amount <= 0:
        raise ValidationError("Amount must be positive", field)
    if amount > MAX_ESCROW_AMOUNT:
        raise ValidationError("Amount exceeds maximum limit", field)
    return amount


def to_decimal(value: object, field: str) -> Decimal:
    """Finite Decimal from int/float/str/Decimal; bools and NaN/inf rejected."""
    if isinstance(value, bool) or not isinstance(value, (int, float, str, Decimal)):
        raise ValidationError("Invalid amount format", field)
    try:
        amount = Decimal(str(value).strip()) if not isinstance(value, Decimal) else value
    except InvalidOperation:
        raise ValidationError("Invalid amount format", field)
    if not amount.is_finite():
        raise ValidationError("Amount must be a finite number", field)
    return amount
