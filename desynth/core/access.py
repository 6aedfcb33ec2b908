"""Access Rules — capability checks for the actor asserted by the upstream gateway.

Invariants:
    - Authentication is external; Actor is trusted input from the gateway headers
    - Capabilities derive only from role (ROLE_CAPABILITIES); party checks (buyer,
      facility owner) compare actor.id against the booking record
    - PURE: raise ForbiddenError, never return error dicts

Design Decisions:
    - Explicit role -> capability table: auditing who may release funds is one lookup
"""

from dataclasses import dataclass

from desynth.core.domain_types import ActorRole, Capability
from desynth.core.errors import ForbiddenError


ROLE_CAPABILITIES: dict[ActorRole, frozenset[Capability]] = {
    ActorRole.ADMIN: frozenset(Capability),
    ActorRole.ARBITER: frozenset({Capability.RELEASE_ESCROW}),
    ActorRole.AUDITOR: frozenset({Capability.RELEASE_ESCROW}),
    ActorRole.BUYER: frozenset(),
    ActorRole.FACILITY: frozenset(),
    ActorRole.ANONYMOUS: frozenset(),
}


@dataclass(frozen=True)
class Actor:
    id: str | None
    role: ActorRole = ActorRole.ANONYMOUS

    def can(self, capability: Capability) -> bool:
        return capability in ROLE_CAPABILITIES[self.role]


ANONYMOUS = Actor(id=None)
SYSTEM_ADMIN = Actor(id="system", role=ActorRole.ADMIN)


def require_capability(actor: Actor, capability: Capability) -> None:
    if not actor.can(capability):
        raise ForbiddenError(
            f"Role '{actor.role.value}' lacks capability '{capability.value}'",
        )


def is_booking_party(
    actor: Actor, buyer_id: str, facility_owner_id: str | None,
) -> bool:
    """Buyer (role buyer) or facility owner (role facility) of this booking."""
    if actor.id is None:
        return False
    if actor.role == ActorRole.BUYER:
        return actor.id == buyer_id
    if actor.role == ActorRole.FACILITY:
        return facility_owner_id is not None and actor.id == facility_owner_id
    return False
