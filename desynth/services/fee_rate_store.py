"""Fee Rate Store — loads and versions the admin-mutable FeeRates.

Invariants:
    - load_current() returns the newest revenue_settings row, or DEFAULT_FEE_RATES when
      the table is empty
    - update() appends a new version; earlier versions and booking snapshots untouched
    - Only actors holding MANAGE_FEE_RATES may update
"""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from desynth.core.access import Actor, require_capability
from desynth.core.domain_types import Capability
from desynth.core.errors import ConfigError, ValidationError
from desynth.core.fee_rates import DEFAULT_FEE_RATES, FeeRates
from desynth.db.session import atomic
from desynth.models.revenue_settings import RevenueSettings

logger = logging.getLogger(__name__)


class FeeRateStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def load_current(self) -> FeeRates:
        result = await self.db.execute(
            select(RevenueSettings)
            .order_by(RevenueSettings.created_at.desc())
            .limit(1),
        )
        row = result.scalar_one_or_none()
        if row is None:
            return DEFAULT_FEE_RATES
        try:
            return FeeRates.from_dict(row.fee_rates)
        except ValidationError as e:
            logger.error(f"Stored fee rates {row.id} are invalid: {e.message}")
            raise ConfigError(
                f"Stored fee rates are invalid: {e.message}", setting="revenue_settings",
            )

    async def update(self, data: dict, actor: Actor) -> FeeRates:
        """Validate and store a full replacement of the fee rates."""
        require_capability(actor, Capability.MANAGE_FEE_RATES)
        rates = FeeRates.from_dict(data)
        async with atomic(self.db):
            self.db.add(RevenueSettings(fee_rates=rates.to_dict(), updated_by=actor.id))
        logger.info(f"Fee rates updated by {actor.id}")
        return rates
