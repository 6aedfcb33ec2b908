"""Action Dispatch — explicit routing from blockchain-service action name to handler.

Invariants:
    - Every action->handler mapping is visible in one dict, no getattr magic
    - Unknown actions raise InvalidActionError (400 INVALID_ACTION)
    - Handlers return the `data` part of the {success, data} envelope, camelCase
    - The transaction verifier is built only when confirm_escrow runs, so missing RPC
      credentials never block the other actions

Design Decisions:
    - One coordinator per request, sharing the request's AsyncSession
"""

import logging
from collections.abc import Collection
from typing import Callable

from sqlalchemy.ext.asyncio import AsyncSession

from desynth.core.access import Actor
from desynth.core.boundary_protocols import TransactionVerifier
from desynth.core.errors import InvalidActionError
from desynth.core.validation import parse_booking_id, parse_tx_hash
from desynth.schemas.booking import booking_view, escrow_view
from desynth.services.dispute_arbiter import DisputeArbiter
from desynth.services.escrow_coordinator import EscrowCoordinator

logger = logging.getLogger(__name__)


class ActionDispatch:
    """Routes action -> handler. Explicit registration, no auto-discovery."""

    def __init__(
        self,
        db: AsyncSession,
        verifier_factory: Callable[[], TransactionVerifier],
        min_confirmations: int = 1,
        default_network: str = "sepolia",
        networks: Collection[str] = (),
    ):
        self._db = db
        self._verifier_factory = verifier_factory
        self._min_confirmations = min_confirmations
        self._default_network = default_network
        self._networks = tuple(networks)

        self._handlers = {
            "create_escrow": self._create_escrow,
            "confirm_escrow": self._confirm_escrow,
            "release_escrow": self._release_escrow,
            "get_status": self._get_status,
            "dispute_escrow": self._dispute_escrow,
            "resolve_dispute": self._resolve_dispute,
        }

    @property
    def actions(self) -> list[str]:
        return sorted(self._handlers)

    async def execute(self, action: str, payload: dict, actor: Actor) -> dict:
        handler = self._handlers.get(action)
        if handler is None:
            raise InvalidActionError(action, self.actions)
        logger.info(
            "Blockchain service request",
            extra={"action": action, "booking_id": payload.get("booking_id")},
        )
        return await handler(payload, actor)

    def _coordinator(self, verifier: TransactionVerifier | None = None) -> EscrowCoordinator:
        return EscrowCoordinator(
            self._db, verifier,
            min_confirmations=self._min_confirmations,
            default_network=self._default_network,
            networks=self._networks,
        )

    async def _create_escrow(self, payload: dict, actor: Actor) -> dict:
        _, escrow = await self._coordinator().create_escrow(
            payload.get("booking_id"),
            payload.get("amount"),
            payload.get("facility_address"),
            buyer_address=payload.get("buyer_address"),
            network=payload.get("network"),
            token_address=payload.get("token_address"),
        )
        return {
            "bookingId": str(escrow.booking_id),
            "totalAmount": str(escrow.amount),
            "facilityAddress": escrow.facility_address,
        }

    async def _confirm_escrow(self, payload: dict, actor: Actor) -> dict:
        booking_id, tx_hash = payload.get("booking_id"), payload.get("tx_hash")
        # format errors must surface before RPC credentials are required
        parse_booking_id(booking_id)
        parse_tx_hash(tx_hash)
        coordinator = self._coordinator(self._verifier_factory())
        result = await coordinator.confirm_escrow(booking_id, tx_hash)
        return {
            "txHash": result.tx_hash,
            "bookingId": str(result.booking_id),
            "confirmations": result.confirmations,
        }

    async def _release_escrow(self, payload: dict, actor: Actor) -> dict:
        booking = await self._coordinator().release_escrow(
            payload.get("booking_id"), actor, tx_hash=payload.get("tx_hash"),
        )
        return {"bookingId": str(booking.id)}

    async def _get_status(self, payload: dict, actor: Actor) -> dict:
        booking, escrow = await self._coordinator().get_status(payload.get("booking_id"))
        return {"booking": booking_view(booking), "escrow": escrow_view(escrow)}

    async def _dispute_escrow(self, payload: dict, actor: Actor) -> dict:
        booking = await self._coordinator().dispute_escrow(payload.get("booking_id"), actor)
        return {"bookingId": str(booking.id), "status": booking.status}

    async def _resolve_dispute(self, payload: dict, actor: Actor) -> dict:
        booking = await DisputeArbiter(self._db).resolve_dispute(
            payload.get("booking_id"), payload.get("winner"), actor,
        )
        return {
            "bookingId": str(booking.id),
            "winner": payload.get("winner"),
            "bookingStatus": booking.status,
        }
