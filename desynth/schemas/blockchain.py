"""Blockchain Service Schema — the single action-dispatch request body.

Invariants:
    - Only `action` is required at the boundary; per-action fields are validated by the
      services so malformed ids, addresses and hashes name the offending field
"""

from pydantic import Field

from desynth.schemas.common import CamelModel


class BlockchainServiceRequest(CamelModel):
    action: str = Field(max_length=40)
    booking_id: str | None = None
    amount: str | int | float | None = None
    facility_address: str | None = None
    buyer_address: str | None = None
    token_address: str | None = None
    network: str | None = Field(None, max_length=32)
    tx_hash: str | None = None
    winner: str | None = None

    def payload(self) -> dict:
        """Per-action arguments, snake_case, without the action name."""
        return self.model_dump(exclude={"action"})
