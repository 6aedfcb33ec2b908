"""Dispute Arbiter — records the admin decision that terminates a disputed escrow.

Invariants:
    - Only actors holding RESOLVE_DISPUTE (admin) may resolve
    - Requires escrow.status == disputed; resolved is terminal, a second call is rejected
      and never overwrites dispute_winner
    - Escrow -> resolved and booking -> completed | cancelled commit together
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from desynth.core.access import Actor, require_capability
from desynth.core.domain_types import (
    BookingEvent, Capability, DisputeWinner, EscrowEvent, PaymentStatus,
)
from desynth.core.errors import ErrorContext, ValidationError
from desynth.core.validation import parse_booking_id
from desynth.db.session import atomic
from desynth.models.booking import Booking
from desynth.services.booking_lifecycle import utcnow
from desynth.services.escrow_coordinator import EscrowCoordinator

logger = logging.getLogger(__name__)

_OUTCOMES = {
    DisputeWinner.FACILITY: (BookingEvent.RESOLVED_FOR_FACILITY, PaymentStatus.RELEASED),
    DisputeWinner.BUYER: (BookingEvent.RESOLVED_FOR_BUYER, PaymentStatus.REFUNDED),
}


def parse_winner(value: object) -> DisputeWinner:
    try:
        return DisputeWinner(value)
    except ValueError:
        raise ValidationError(
            f"Winner must be one of {[w.value for w in DisputeWinner]}", "winner",
        )


class DisputeArbiter:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.escrows = EscrowCoordinator(db)

    async def resolve_dispute(
        self, booking_id: object, winner: object, actor: Actor,
    ) -> Booking:
        """Terminate the dispute in favour of `winner`; returns the finalized booking."""
        bid = parse_booking_id(booking_id)
        decided = parse_winner(winner)
        require_capability(actor, Capability.RESOLVE_DISPUTE)
        context = ErrorContext(booking_id=str(bid), action="resolve_dispute")
        event, payment_status = _OUTCOMES[decided]

        async with atomic(self.db):
            await self.escrows.transition(
                bid, EscrowEvent.RESOLVE, context,
                dispute_winner=decided.value, resolved_at=utcnow(),
            )
            booking = await self.escrows.bookings.get_booking(bid)
            await self.escrows.bookings.apply_event(
                booking, event, payment_status=payment_status.value,
            )

        logger.info(
            f"Dispute resolved for {decided.value} by {actor.id}",
            extra={"booking_id": str(bid)},
        )
        return booking
