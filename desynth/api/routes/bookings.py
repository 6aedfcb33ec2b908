"""Bookings — create (with fee snapshot), read and cancel.

Invariants:
    - Creation prices the booking with the fee rates current at request time
    - Cancel is limited to the buyer or an admin (enforced in BookingLifecycle)
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from desynth.api.dependencies import enforce_rate_limit, get_actor, get_notifier
from desynth.config import get_settings
from desynth.core.access import Actor
from desynth.core.boundary_protocols import NotificationSink
from desynth.core.fee_pricing import currency_quantum
from desynth.infrastructure.database import get_db
from desynth.schemas.booking import BookingCancel, BookingCreate, booking_view
from desynth.schemas.common import success
from desynth.services.booking_lifecycle import BookingLifecycle

router = APIRouter(prefix="/api/v1/bookings", tags=["bookings"])


@router.post(
    "", status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(enforce_rate_limit)],
)
async def create_booking(
    body: BookingCreate,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    """Create a reserved booking with an immutable fee breakdown."""
    quantum = currency_quantum(get_settings().currency_decimals)
    booking = await BookingLifecycle(db, quantum=quantum).create_booking(
        actor, body.slot_id, body.base_amount, body.to_context(),
        facility_owner_id=body.facility_owner_id,
    )
    return success(booking_view(booking))


@router.get("/{booking_id}")
async def get_booking(booking_id: str, db: AsyncSession = Depends(get_db)):
    booking = await BookingLifecycle(db).get_booking(booking_id)
    return success(booking_view(booking))


@router.post("/{booking_id}/cancel", dependencies=[Depends(enforce_rate_limit)])
async def cancel_booking(
    booking_id: str,
    body: BookingCancel | None = None,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_actor),
    notifier: NotificationSink = Depends(get_notifier),
):
    """Cancel a booking; notifies the facility owner."""
    booking = await BookingLifecycle(db, notifier).cancel_booking(
        booking_id, actor, reason=body.reason if body else None,
    )
    return success(booking_view(booking))
