"""State Machines — explicit transition tables for bookings and escrows.

Invariants:
    - (from_state, event) -> to_state; anything absent from the table is rejected
    - Terminal states have no outgoing edges
    - Escrow states never regress: every edge moves forward along
      created -> funded -> (released | disputed -> resolved)
    - All functions are PURE: no IO, raise InvalidStateError on illegal transitions

Design Decisions:
    - Tables over if/elif chains: every legal move is visible in one place, and
      tests can enumerate them
    - Cancel from DISPUTED is deliberately absent: only the arbiter ends a dispute
"""

from desynth.core.domain_types import (
    BookingStatus, BookingEvent, EscrowStatus, EscrowEvent,
)
from desynth.core.errors import InvalidStateError


BOOKING_TRANSITIONS: dict[tuple[BookingStatus, BookingEvent], BookingStatus] = {
    (BookingStatus.RESERVED, BookingEvent.ESCROW_CREATED): BookingStatus.PROCESSING,
    (BookingStatus.PROCESSING, BookingEvent.ESCROW_FUNDED): BookingStatus.CONFIRMED,
    (BookingStatus.CONFIRMED, BookingEvent.ESCROW_RELEASED): BookingStatus.COMPLETED,
    (BookingStatus.CONFIRMED, BookingEvent.ESCROW_DISPUTED): BookingStatus.DISPUTED,
    (BookingStatus.DISPUTED, BookingEvent.RESOLVED_FOR_FACILITY): BookingStatus.COMPLETED,
    (BookingStatus.DISPUTED, BookingEvent.RESOLVED_FOR_BUYER): BookingStatus.CANCELLED,
    (BookingStatus.RESERVED, BookingEvent.CANCEL): BookingStatus.CANCELLED,
    (BookingStatus.PROCESSING, BookingEvent.CANCEL): BookingStatus.CANCELLED,
    (BookingStatus.CONFIRMED, BookingEvent.CANCEL): BookingStatus.CANCELLED,
}

ESCROW_TRANSITIONS: dict[tuple[EscrowStatus, EscrowEvent], EscrowStatus] = {
    (EscrowStatus.CREATED, EscrowEvent.FUND): EscrowStatus.FUNDED,
    (EscrowStatus.FUNDED, EscrowEvent.RELEASE): EscrowStatus.RELEASED,
    (EscrowStatus.FUNDED, EscrowEvent.DISPUTE): EscrowStatus.DISPUTED,
    (EscrowStatus.DISPUTED, EscrowEvent.RESOLVE): EscrowStatus.RESOLVED,
}

TERMINAL_BOOKING_STATES = frozenset({BookingStatus.COMPLETED, BookingStatus.CANCELLED})
TERMINAL_ESCROW_STATES = frozenset({EscrowStatus.RELEASED, EscrowStatus.RESOLVED})


def booking_sources(event: BookingEvent) -> list[BookingStatus]:
    """States from which `event` is legal, in table order."""
    return [src for (src, ev) in BOOKING_TRANSITIONS if ev == event]


def escrow_sources(event: EscrowEvent) -> list[EscrowStatus]:
    return [src for (src, ev) in ESCROW_TRANSITIONS if ev == event]


def next_booking_status(current: BookingStatus, event: BookingEvent) -> BookingStatus:
    """Resolve a booking transition or raise InvalidStateError."""
    target = BOOKING_TRANSITIONS.get((current, event))
    if target is None:
        raise InvalidStateError(
            f"Booking cannot handle '{event.value}' while {current.value}",
            current=current.value,
            expected=[s.value for s in booking_sources(event)],
        )
    return target


def next_escrow_status(current: EscrowStatus, event: EscrowEvent) -> EscrowStatus:
    """Resolve an escrow transition or raise InvalidStateError."""
    target = ESCROW_TRANSITIONS.get((current, event))
    if target is None:
        raise InvalidStateError(
            f"Escrow cannot handle '{event.value}' while {current.value}",
            current=current.value,
            expected=[s.value for s in escrow_sources(event)],
        )
    return target
