"""Domain Types — verifies enumerations and identity types.

Tests:
    - NewType wrappers are the wrapped UUID
    - Status enums match the persisted string values
    - Fee components are exactly the seven itemized fees
"""

from uuid import uuid4

from desynth.core.domain_types import (
    BookingId, BookingStatus, EscrowId, EscrowStatus, FeeComponent, PaymentMethod,
    ZERO_ADDRESS,
)


def test_identity_types_wrap_uuid():
    uid = uuid4()
    assert BookingId(uid) == uid
    assert EscrowId(uid) == uid


def test_booking_status_values():
    assert {s.value for s in BookingStatus} == {
        "reserved", "processing", "confirmed", "completed", "cancelled", "disputed",
    }


def test_escrow_status_values():
    assert {s.value for s in EscrowStatus} == {
        "created", "funded", "released", "disputed", "resolved",
    }


def test_fee_component_has_exactly_seven_members():
    assert len(FeeComponent) == 7


def test_payment_methods_closed_set():
    assert set(PaymentMethod) == {
        PaymentMethod.CARD, PaymentMethod.CRYPTO, PaymentMethod.BANK_TRANSFER,
    }


def test_str_enums_compare_to_values():
    assert BookingStatus.RESERVED == "reserved"
    assert EscrowStatus("funded") is EscrowStatus.FUNDED


def test_zero_address_is_valid_length():
    assert len(ZERO_ADDRESS) == 42
