"""Fee Schemas — wire layout of FeeRates and FeeBreakdown.

Invariants:
    - Band ordering (min <= default <= max) is checked by core FeeRates, not here
    - Decimals travel as JSON strings in responses
"""

from decimal import Decimal

from desynth.core.domain_types import FeeComponent
from desynth.core.fee_rates import FeeRates
from desynth.schemas.common import CamelModel


class RateBandModel(CamelModel):
    min: Decimal
    default: Decimal
    max: Decimal


class TokenizationRatesModel(CamelModel):
    flat: Decimal
    percentage: Decimal
    small_transaction_cap: Decimal
    small_transaction_threshold: Decimal


class FeeRatesModel(CamelModel):
    booking_commission: RateBandModel
    escrow_service_fee: RateBandModel
    tokenization_fee: TokenizationRatesModel
    stablecoin_settlement_fee: RateBandModel
    insurance_pool_fee: RateBandModel
    auditor_network_fee: RateBandModel
    priority_matching_fee: RateBandModel
    stable_tokens: list[str] | None = None
    facility_side_components: list[FeeComponent] | None = None

    def to_rates_dict(self) -> dict:
        """Snake_case layout accepted by FeeRates.from_dict."""
        return self.model_dump(mode="json", exclude_none=True)

    @classmethod
    def from_rates(cls, rates: FeeRates) -> "FeeRatesModel":
        return cls.model_validate(rates.to_dict())
