"""Fees — quote preview and admin fee-rate configuration.

Invariants:
    - Quotes use the current stored rates and persist nothing
    - PUT /rates replaces the whole configuration (admin only); existing bookings keep
      their snapshots
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from desynth.api.dependencies import get_actor
from desynth.config import get_settings
from desynth.core.access import Actor
from desynth.core.fee_pricing import calculate_fees, currency_quantum
from desynth.infrastructure.database import get_db
from desynth.schemas.booking import FeeQuoteRequest
from desynth.schemas.common import success
from desynth.schemas.fees import FeeRatesModel
from desynth.services.fee_rate_store import FeeRateStore

router = APIRouter(prefix="/api/v1/fees", tags=["fees"])


@router.post("/quote")
async def quote_fees(body: FeeQuoteRequest, db: AsyncSession = Depends(get_db)):
    """Preview the itemized fee breakdown for a prospective booking."""
    rates = await FeeRateStore(db).load_current()
    quantum = currency_quantum(get_settings().currency_decimals)
    breakdown = calculate_fees(body.base_amount, body.to_context(), rates, quantum)
    return success(breakdown.to_snapshot())


@router.get("/rates")
async def get_rates(db: AsyncSession = Depends(get_db)):
    rates = await FeeRateStore(db).load_current()
    return success(FeeRatesModel.from_rates(rates).to_wire())


@router.put("/rates")
async def update_rates(
    body: FeeRatesModel,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    rates = await FeeRateStore(db).update(body.to_rates_dict(), actor)
    return success(FeeRatesModel.from_rates(rates).to_wire())
