"""Escrow Coordinator — owns the escrow state machine and keeps booking + escrow consistent.

Invariants:
    - Input formats validated before any row is read or the verifier is called
    - Every transition is a compare-and-swap UPDATE on (booking_id, expected status);
      escrow CAS and booking CAS run in ONE transaction, rolled back together on failure
    - confirm_escrow matches the escrow by (booking_id, status=created), never by recency
    - confirm_escrow is idempotent on the tx hash: a replay after success returns the
      stored result without writing
    - A tx hash funds at most one escrow (UNIQUE funding_tx_hash + pre-check)
    - Verifier is awaited BEFORE any write and outside any transaction: no row lock or
      open transaction is held across the RPC call
    - An escrow network comes from the deployment allowlist, never free text: it selects
      the RPC endpoint whose receipts are trusted

Design Decisions:
    - Verification rejection (TransactionNotVerifiedError, 400, retryable) kept distinct
      from TX_ALREADY_USED (InvalidStateError, 409, permanent)
    - Booking transitions delegated to BookingLifecycle.apply_event so the booking state
      machine has a single owner
    - BlockchainTransaction audit rows appended inside the same transaction
"""

import logging
from collections.abc import Collection
from dataclasses import dataclass

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from desynth.core.access import Actor, is_booking_party, require_capability
from desynth.core.boundary_protocols import TransactionVerifier
from desynth.core.domain_types import (
    ActorRole, BookingEvent, BookingId, Capability, EscrowEvent, EscrowStatus,
    PaymentStatus, TransactionType, ZERO_ADDRESS,
)
from desynth.core.errors import (
    ConfigError, ErrorContext, ForbiddenError, InvalidStateError, ResourceNotFoundError,
    TransactionNotVerifiedError,
)
from desynth.core.state_machines import next_escrow_status
from desynth.core.validation import (
    parse_booking_id, parse_escrow_amount, parse_eth_address, parse_network, parse_tx_hash,
)
from desynth.db.session import atomic
from desynth.models.blockchain_transaction import BlockchainTransaction
from desynth.models.booking import Booking
from desynth.models.escrow import Escrow
from desynth.services.booking_lifecycle import BookingLifecycle, utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConfirmationResult:
    booking_id: BookingId
    tx_hash: str
    confirmations: int | None
    replayed: bool = False


class EscrowCoordinator:
    """Orchestrates escrow creation, funding confirmation, release and dispute."""

    def __init__(
        self,
        db: AsyncSession,
        verifier: TransactionVerifier | None = None,
        min_confirmations: int = 1,
        default_network: str = "sepolia",
        networks: Collection[str] = (),
    ):
        self.db = db
        self.verifier = verifier
        self.min_confirmations = min_confirmations
        self.default_network = default_network
        self.networks = frozenset(networks) | {default_network}
        self.bookings = BookingLifecycle(db)

    # ─── create ─────────────────────────────────────────────────

    async def create_escrow(
        self,
        booking_id: object,
        amount: object,
        facility_address: object,
        buyer_address: object | None = None,
        network: str | None = None,
        token_address: object | None = None,
    ) -> tuple[Booking, Escrow]:
        """Open an escrow for a reserved booking and move the booking to processing."""
        bid = parse_booking_id(booking_id)
        value = parse_escrow_amount(amount)
        facility = parse_eth_address(facility_address, "facilityAddress")
        buyer = (
            parse_eth_address(buyer_address, "buyerAddress")
            if buyer_address is not None else ZERO_ADDRESS
        )
        token = (
            parse_eth_address(token_address, "tokenAddress")
            if token_address is not None else ZERO_ADDRESS
        )
        chain = (
            parse_network(network, self.networks)
            if network is not None else self.default_network
        )

        async with atomic(self.db):
            booking = await self.bookings.get_booking(bid)
            await self.bookings.apply_event(booking, BookingEvent.ESCROW_CREATED)
            escrow = Escrow(
                booking_id=bid,
                buyer_address=buyer,
                facility_address=facility,
                amount=value,
                token_address=token,
                network=chain,
                status=EscrowStatus.CREATED.value,
            )
            self.db.add(escrow)
            try:
                await self.db.flush()
            except IntegrityError:
                raise InvalidStateError(
                    "An escrow already exists for this booking",
                    code="ESCROW_EXISTS",
                    context=ErrorContext(booking_id=str(bid)),
                )

        logger.info(
            f"Escrow created for {value}",
            extra={"booking_id": str(bid), "escrow_id": str(escrow.id)},
        )
        return booking, escrow

    # ─── confirm ────────────────────────────────────────────────

    async def confirm_escrow(
        self, booking_id: object, tx_hash: object,
    ) -> ConfirmationResult:
        """Verify the funding transaction on-chain, then mark the escrow funded."""
        bid = parse_booking_id(booking_id)
        tx = parse_tx_hash(tx_hash)
        context = ErrorContext(booking_id=str(bid), tx_hash=tx, action="confirm_escrow")

        async with atomic(self.db):
            escrow = await self.get_escrow(bid)
            bound = await self._escrow_funded_by(tx)
            if bound is not None:
                if bound.booking_id != bid:
                    raise InvalidStateError(
                        "Transaction already used to fund another escrow",
                        code="TX_ALREADY_USED", context=context,
                    )
                logger.info("Escrow confirmation replayed", extra={"tx_hash": tx})
                return ConfirmationResult(bid, tx, None, replayed=True)
            if escrow.status != EscrowStatus.CREATED.value:
                next_escrow_status(EscrowStatus(escrow.status), EscrowEvent.FUND)
            network = escrow.network

        # read transaction closed: no connection is held across the RPC call
        if self.verifier is None:
            raise ConfigError(
                "No transaction verifier configured for escrow confirmation",
                setting="rpc_api_key", context=context,
            )
        verification = await self.verifier.verify(tx, network)
        if not verification.verified:
            raise TransactionNotVerifiedError(
                "Transaction verification failed or not confirmed",
                code="TX_VERIFICATION_FAILED", context=context,
            )
        confirmations = verification.confirmations or 0
        if confirmations < self.min_confirmations:
            raise TransactionNotVerifiedError(
                "Transaction needs more confirmations",
                code="INSUFFICIENT_CONFIRMATIONS",
                confirmations=confirmations, context=context,
            )

        now = utcnow()
        async with atomic(self.db):
            try:
                await self.transition(
                    bid, EscrowEvent.FUND, context,
                    funding_tx_hash=tx, funded_at=now,
                )
            except IntegrityError:
                raise InvalidStateError(
                    "Transaction already used to fund another escrow",
                    code="TX_ALREADY_USED", context=context,
                )
            booking = await self.bookings.get_booking(bid)
            await self.bookings.apply_event(
                booking, BookingEvent.ESCROW_FUNDED,
                payment_status=PaymentStatus.PAID.value,
            )
            self.db.add(BlockchainTransaction(
                booking_id=bid,
                tx_hash=tx,
                type=TransactionType.ESCROW_FUNDING.value,
                status="confirmed",
                block_number=verification.block_number,
                gas_used=verification.gas_used,
            ))

        logger.info(
            "Escrow funded",
            extra={"booking_id": str(bid), "tx_hash": tx, "confirmations": confirmations},
        )
        return ConfirmationResult(bid, tx, confirmations)

    # ─── release / dispute ──────────────────────────────────────

    async def release_escrow(
        self, booking_id: object, actor: Actor, tx_hash: object | None = None,
    ) -> Booking:
        """Pay out a funded, undisputed escrow and complete the booking."""
        bid = parse_booking_id(booking_id)
        release_tx = parse_tx_hash(tx_hash) if tx_hash is not None else None
        require_capability(actor, Capability.RELEASE_ESCROW)
        context = ErrorContext(booking_id=str(bid), tx_hash=release_tx, action="release_escrow")

        async with atomic(self.db):
            escrow = await self.get_escrow(bid)
            if escrow.status == EscrowStatus.FUNDED.value and escrow.disputed_at is not None:
                raise InvalidStateError(
                    "Escrow is under dispute",
                    current=escrow.status,
                    expected=[EscrowStatus.FUNDED.value],
                    context=context,
                )
            await self.transition(
                bid, EscrowEvent.RELEASE, context,
                extra_where=(Escrow.disputed_at.is_(None),),
                release_tx_hash=release_tx, released_at=utcnow(),
            )
            booking = await self.bookings.get_booking(bid)
            await self.bookings.apply_event(
                booking, BookingEvent.ESCROW_RELEASED,
                payment_status=PaymentStatus.RELEASED.value,
            )
            self.db.add(BlockchainTransaction(
                booking_id=bid,
                tx_hash=release_tx,
                type=TransactionType.ESCROW_RELEASE.value,
                status="confirmed",
            ))

        logger.info(
            f"Escrow released by {actor.id}", extra={"booking_id": str(bid)},
        )
        return booking

    async def dispute_escrow(self, booking_id: object, actor: Actor) -> Booking:
        """Freeze a funded escrow; only the arbiter can end the dispute."""
        bid = parse_booking_id(booking_id)
        context = ErrorContext(booking_id=str(bid), action="dispute_escrow")

        async with atomic(self.db):
            booking = await self.bookings.get_booking(bid)
            if not (
                actor.role == ActorRole.ADMIN
                or is_booking_party(actor, booking.buyer_id, booking.facility_owner_id)
            ):
                raise ForbiddenError(
                    "Only the buyer, the facility owner or an admin can dispute",
                    context,
                )
            await self.transition(
                bid, EscrowEvent.DISPUTE, context,
                extra_where=(Escrow.disputed_at.is_(None),),
                disputed_at=utcnow(),
            )
            await self.bookings.apply_event(booking, BookingEvent.ESCROW_DISPUTED)

        logger.info(f"Escrow disputed by {actor.id}", extra={"booking_id": str(bid)})
        return booking

    # ─── reads ──────────────────────────────────────────────────

    async def get_status(self, booking_id: object) -> tuple[Booking, Escrow | None]:
        bid = parse_booking_id(booking_id)
        booking = await self.bookings.get_booking(bid)
        return booking, await self.find_escrow(bid)

    async def find_escrow(self, booking_id: BookingId) -> Escrow | None:
        result = await self.db.execute(
            select(Escrow)
            .where(Escrow.booking_id == booking_id)
            .execution_options(populate_existing=True),
        )
        return result.scalar_one_or_none()

    async def get_escrow(self, booking_id: BookingId) -> Escrow:
        escrow = await self.find_escrow(booking_id)
        if escrow is None:
            raise ResourceNotFoundError(
                "Escrow", str(booking_id), ErrorContext(booking_id=str(booking_id)),
            )
        return escrow

    # ─── internals ──────────────────────────────────────────────

    async def _escrow_funded_by(self, tx_hash: str) -> Escrow | None:
        result = await self.db.execute(
            select(Escrow).where(Escrow.funding_tx_hash == tx_hash),
        )
        return result.scalar_one_or_none()

    async def transition(
        self,
        booking_id: BookingId,
        event: EscrowEvent,
        context: ErrorContext,
        extra_where: tuple = (),
        **changes,
    ) -> EscrowStatus:
        """Compare-and-swap the escrow to its next status. Does not commit."""
        escrow = await self.get_escrow(booking_id)
        current = EscrowStatus(escrow.status)
        target = next_escrow_status(current, event)
        result = await self.db.execute(
            update(Escrow)
            .where(
                Escrow.booking_id == booking_id,
                Escrow.status == current.value,
                *extra_where,
            )
            .values(status=target.value, updated_at=utcnow(), **changes)
            .execution_options(synchronize_session=False),
        )
        if result.rowcount != 1:
            raise InvalidStateError(
                "Escrow was modified concurrently",
                current=current.value, expected=[current.value], context=context,
            )
        return target
