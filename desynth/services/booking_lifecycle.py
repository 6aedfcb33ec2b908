"""Booking Lifecycle — creates bookings with a fee snapshot and drives booking transitions.

Invariants:
    - fee_breakdown is computed once, at creation, with the rates current at that moment
    - Every status change is a conditional UPDATE keyed on the expected current status;
      rowcount != 1 means a concurrent writer won and the change is rejected
    - apply_event() never commits: escrow + booking writes share the caller's transaction
    - Cancel refused while the escrow holds funds (funded / disputed)
    - Cancellation notification is fire-and-forget, sent only after the commit

Design Decisions:
    - Transition legality from core/state_machines (pure), persistence here (shell)
    - Notification failures logged, never raised: the cancel already happened
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from desynth.core.access import Actor
from desynth.core.boundary_protocols import NotificationSink
from desynth.core.domain_types import (
    BookingEvent, BookingId, BookingStatus, Capability, EscrowStatus, PaymentStatus,
)
from desynth.core.errors import (
    ErrorContext, ForbiddenError, InvalidStateError, ResourceNotFoundError,
)
from desynth.core.fee_pricing import CENT, BookingContext, calculate_fees
from desynth.core.state_machines import next_booking_status
from desynth.core.validation import parse_booking_id
from desynth.db.session import atomic
from desynth.models.booking import Booking
from desynth.models.escrow import Escrow
from desynth.services.fee_rate_store import FeeRateStore

logger = logging.getLogger(__name__)

_ESCROW_HOLDS_FUNDS = frozenset({EscrowStatus.FUNDED.value, EscrowStatus.DISPUTED.value})


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BookingLifecycle:
    """Owns the booking state machine and its persistence."""

    def __init__(
        self, db: AsyncSession, notifier: NotificationSink | None = None,
        quantum: Decimal = CENT,
    ):
        self.db = db
        self._notifier = notifier
        self._quantum = quantum

    async def create_booking(
        self,
        buyer: Actor,
        slot_id: str,
        base_amount: object,
        context: BookingContext,
        facility_owner_id: str | None = None,
    ) -> Booking:
        """Price the booking with current rates and persist it as reserved."""
        if buyer.id is None:
            raise ForbiddenError("Anonymous callers cannot create bookings")
        rates = await FeeRateStore(self.db).load_current()
        breakdown = calculate_fees(base_amount, context, rates, self._quantum)

        booking = Booking(
            buyer_id=buyer.id,
            facility_owner_id=facility_owner_id,
            slot_id=slot_id,
            base_amount=breakdown.base_amount,
            total_amount=breakdown.total_amount,
            status=BookingStatus.RESERVED.value,
            payment_status=PaymentStatus.PENDING.value,
            payment_method=context.payment_method.value,
            fee_breakdown=breakdown.to_snapshot(),
            vertical=context.vertical,
            facility_type=context.facility_type,
            settlement_token=context.settlement_token.upper(),
            is_priority=context.is_priority,
            requires_insurance=context.requires_insurance,
            requires_tokenization=context.requires_tokenization,
            requires_audit=context.requires_audit,
        )
        async with atomic(self.db):
            self.db.add(booking)
        logger.info(
            f"Booking created: total {breakdown.total_amount}",
            extra={"booking_id": str(booking.id)},
        )
        return booking

    async def get_booking(self, booking_id: object) -> Booking:
        """Fresh read of a booking; raises ResourceNotFoundError."""
        bid = parse_booking_id(booking_id)
        result = await self.db.execute(
            select(Booking)
            .where(Booking.id == bid)
            .execution_options(populate_existing=True),
        )
        booking = result.scalar_one_or_none()
        if booking is None:
            raise ResourceNotFoundError(
                "Booking", str(bid), ErrorContext(booking_id=str(bid)),
            )
        return booking

    async def cancel_booking(
        self, booking_id: object, actor: Actor, reason: str | None = None,
    ) -> Booking:
        """Buyer or admin cancel; refused once funds are in custody."""
        bid = parse_booking_id(booking_id)
        async with atomic(self.db):
            booking = await self.get_booking(bid)
            is_buyer = actor.id is not None and actor.id == booking.buyer_id
            if not (is_buyer or actor.can(Capability.CANCEL_ANY_BOOKING)):
                raise ForbiddenError("Only the buyer or an admin can cancel this booking")

            escrow_status = await self._escrow_status(bid)
            if escrow_status in _ESCROW_HOLDS_FUNDS:
                raise InvalidStateError(
                    "Cannot cancel while the escrow holds funds",
                    current=escrow_status,
                    expected=[EscrowStatus.CREATED.value],
                    code="ESCROW_FUNDED",
                )

            now = utcnow()
            await self.apply_event(
                booking, BookingEvent.CANCEL,
                payment_status=PaymentStatus.CANCELLED.value,
                cancellation_reason=reason,
                cancelled_at=now,
            )

        logger.info(
            f"Booking cancelled by {actor.id}", extra={"booking_id": str(bid)},
        )
        await self._notify_cancellation(booking, reason)
        return booking

    async def apply_event(
        self, booking: Booking, event: BookingEvent, **changes,
    ) -> BookingStatus:
        """Compare-and-swap the booking to its next status. Does not commit."""
        current = BookingStatus(booking.status)
        target = next_booking_status(current, event)
        result = await self.db.execute(
            update(Booking)
            .where(Booking.id == booking.id, Booking.status == current.value)
            .values(status=target.value, updated_at=utcnow(), **changes)
            .execution_options(synchronize_session=False),
        )
        if result.rowcount != 1:
            raise InvalidStateError(
                "Booking was modified concurrently",
                current=current.value, expected=[current.value],
                context=ErrorContext(booking_id=str(booking.id)),
            )
        await self.db.refresh(booking)
        return target

    async def _escrow_status(self, booking_id: BookingId) -> str | None:
        result = await self.db.execute(
            select(Escrow.status).where(Escrow.booking_id == booking_id),
        )
        return result.scalar_one_or_none()

    async def _notify_cancellation(self, booking: Booking, reason: str | None) -> None:
        if self._notifier is None or not booking.facility_owner_id:
            return
        message = f"Booking {booking.id} for slot {booking.slot_id} was cancelled."
        if reason:
            message += f" Reason: {reason}"
        try:
            await self._notifier.notify(
                booking.facility_owner_id, "Booking cancelled", message,
                notification_type="booking_cancelled", urgent=True,
            )
        except Exception as e:
            logger.error(
                f"Cancellation notification failed: {e}",
                extra={"booking_id": str(booking.id)},
            )
