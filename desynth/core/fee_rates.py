"""Fee Rates — admin-mutable fee configuration as immutable value objects.

Invariants:
    - Every band satisfies 0 <= min <= default <= max (percentages also <= 1)
    - FeeRates is frozen: an admin edit produces a new instance, never mutates one
      already used to price a booking
    - to_dict() / from_dict() round-trip through JSON with Decimal values as strings

Design Decisions:
    - Percentages stored as fractions (0.03 == 3%), flat fees in currency units
    - facility_side_components is configuration, not computed: it names the components
      withheld from the facility payout
    - Auditor-network band is a flat currency band, not a percentage
"""

from dataclasses import dataclass, field, replace
from decimal import Decimal

from desynth.core.domain_types import FeeComponent
from desynth.core.errors import ValidationError
from desynth.core.validation import to_decimal


@dataclass(frozen=True)
class RateBand:
    """{minimum, default, maximum} band for a fee category."""
    min: Decimal
    default: Decimal
    max: Decimal

    def clamp(self, rate: Decimal) -> Decimal:
        return min(max(rate, self.min), self.max)

    def check(self, name: str, is_percentage: bool = True) -> None:
        if self.min < 0:
            raise ValidationError(f"{name}: minimum must be >= 0", name)
        if not (self.min <= self.default <= self.max):
            raise ValidationError(f"{name}: requires min <= default <= max", name)
        if is_percentage and self.max > 1:
            raise ValidationError(f"{name}: percentage must be <= 1", name)

    def to_dict(self) -> dict:
        return {"min": str(self.min), "default": str(self.default), "max": str(self.max)}

    @classmethod
    def from_dict(cls, name: str, data: dict) -> "RateBand":
        return cls(
            min=to_decimal(_require(data, "min", name), name),
            default=to_decimal(_require(data, "default", name), name),
            max=to_decimal(_require(data, "max", name), name),
        )


@dataclass(frozen=True)
class TokenizationRates:
    """{flat, percentage} pair plus the small-transaction ceiling."""
    flat: Decimal
    percentage: Decimal
    small_transaction_cap: Decimal
    small_transaction_threshold: Decimal

    def check(self, name: str = "tokenization_fee") -> None:
        if self.flat < 0 or self.small_transaction_cap < 0:
            raise ValidationError(f"{name}: amounts must be >= 0", name)
        if not (0 <= self.percentage <= 1):
            raise ValidationError(f"{name}: percentage must be within [0, 1]", name)
        if self.small_transaction_threshold < 0:
            raise ValidationError(f"{name}: threshold must be >= 0", name)

    def to_dict(self) -> dict:
        return {
            "flat": str(self.flat),
            "percentage": str(self.percentage),
            "small_transaction_cap": str(self.small_transaction_cap),
            "small_transaction_threshold": str(self.small_transaction_threshold),
        }

    @classmethod
    def from_dict(cls, name: str, data: dict) -> "TokenizationRates":
        return cls(**{
            key: to_decimal(_require(data, key, name), name)
            for key in (
                "flat", "percentage",
                "small_transaction_cap", "small_transaction_threshold",
            )
        })


_PERCENTAGE_BANDS = (
    "booking_commission", "escrow_service_fee", "stablecoin_settlement_fee",
    "insurance_pool_fee", "priority_matching_fee",
)


@dataclass(frozen=True)
class FeeRates:
    """Complete fee configuration used to price one booking."""
    booking_commission: RateBand
    escrow_service_fee: RateBand
    tokenization_fee: TokenizationRates
    stablecoin_settlement_fee: RateBand
    insurance_pool_fee: RateBand
    auditor_network_fee: RateBand
    priority_matching_fee: RateBand
    stable_tokens: frozenset[str] = field(
        default_factory=lambda: frozenset({"USDC", "USDT", "DAI"}),
    )
    facility_side_components: frozenset[FeeComponent] = field(
        default_factory=lambda: frozenset({
            FeeComponent.BOOKING_COMMISSION,
            FeeComponent.AUDITOR_NETWORK_FEE,
            FeeComponent.PRIORITY_MATCHING_FEE,
        }),
    )

    def check(self) -> "FeeRates":
        """Validate every band; returns self for chaining."""
        for name in _PERCENTAGE_BANDS:
            getattr(self, name).check(name)
        self.auditor_network_fee.check("auditor_network_fee", is_percentage=False)
        self.tokenization_fee.check()
        return self

    def with_changes(self, **changes) -> "FeeRates":
        return replace(self, **changes).check()

    def to_dict(self) -> dict:
        data: dict = {name: getattr(self, name).to_dict() for name in _PERCENTAGE_BANDS}
        data["auditor_network_fee"] = self.auditor_network_fee.to_dict()
        data["tokenization_fee"] = self.tokenization_fee.to_dict()
        data["stable_tokens"] = sorted(self.stable_tokens)
        data["facility_side_components"] = sorted(
            c.value for c in self.facility_side_components
        )
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "FeeRates":
        """Parse stored/admin JSON. Raises ValidationError on bad shape or values."""
        if not isinstance(data, dict):
            raise ValidationError("Fee rates must be an object", "feeRates")
        bands = {
            name: RateBand.from_dict(name, _require(data, name, "feeRates"))
            for name in (*_PERCENTAGE_BANDS, "auditor_network_fee")
        }
        tokenization = TokenizationRates.from_dict(
            "tokenization_fee", _require(data, "tokenization_fee", "feeRates"),
        )
        extras: dict = {}
        if "stable_tokens" in data:
            extras["stable_tokens"] = frozenset(
                str(t).upper() for t in data["stable_tokens"]
            )
        if "facility_side_components" in data:
            try:
                extras["facility_side_components"] = frozenset(
                    FeeComponent(c) for c in data["facility_side_components"]
                )
            except ValueError:
                raise ValidationError(
                    "Unknown fee component in facility_side_components",
                    "facility_side_components",
                )
        return cls(tokenization_fee=tokenization, **bands, **extras).check()


def _require(data: dict, key: str, name: str):
    if not isinstance(data, dict) or key not in data:
        raise ValidationError(f"{name}: missing '{key}'", name)
    return data[key]


DEFAULT_FEE_RATES = FeeRates(
    booking_commission=RateBand(Decimal("0.02"), Decimal("0.03"), Decimal("0.05")),
    escrow_service_fee=RateBand(Decimal("0.001"), Decimal("0.0015"), Decimal("0.002")),
    tokenization_fee=TokenizationRates(
        flat=Decimal("10"),
        percentage=Decimal("0.0025"),
        small_transaction_cap=Decimal("50"),
        small_transaction_threshold=Decimal("20000"),
    ),
    stablecoin_settlement_fee=RateBand(
        Decimal("0.001"), Decimal("0.0015"), Decimal("0.002"),
    ),
    insurance_pool_fee=RateBand(Decimal("0.0005"), Decimal("0.00075"), Decimal("0.001")),
    auditor_network_fee=RateBand(Decimal("250"), Decimal("300"), Decimal("500")),
    priority_matching_fee=RateBand(Decimal("0.005"), Decimal("0.0075"), Decimal("0.01")),
).check()
