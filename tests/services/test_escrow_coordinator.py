"""Escrow Coordinator — tests for escrow creation, funding, release and dispute.

Tests cover:
    - create_escrow moves the booking to processing; second create rejected
    - confirm_escrow verifies before writing, is idempotent on the tx hash and
      refuses a hash already bound to another escrow
    - Verification failures leave escrow and booking untouched
    - release blocked while disputed; dispute restricted to booking parties
    - escrow networks limited to the deployment allowlist
    - the verifier runs outside any open transaction
"""

from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select

from desynth.core.access import Actor
from desynth.core.boundary_protocols import TransactionVerification
from desynth.core.domain_types import ActorRole, ZERO_ADDRESS
from desynth.core.errors import (
    ConfigError, ForbiddenError, InvalidStateError, ResourceNotFoundError,
    TransactionNotVerifiedError, ValidationError,
)
from desynth.models.blockchain_transaction import BlockchainTransaction
from desynth.models.booking import Booking
from desynth.models.escrow import Escrow
from desynth.services.booking_lifecycle import BookingLifecycle
from desynth.services.escrow_coordinator import EscrowCoordinator

from tests.services.fakes import (
    ADMIN, ARBITER, BUYER, BUYER_ADDRESS, FACILITY_ADDRESS, FUNDING_TX, OTHER_TX, OWNER,
)


async def _statuses(db, booking_id) -> tuple[str, str | None]:
    booking_status = (await db.execute(
        select(Booking.status).where(Booking.id == booking_id),
    )).scalar_one()
    escrow_status = (await db.execute(
        select(Escrow.status).where(Escrow.booking_id == booking_id),
    )).scalar_one_or_none()
    return booking_status, escrow_status


# ─── create ─────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_create_escrow_moves_booking_to_processing(test_db, make_booking):
    booking_id = await make_booking()
    coordinator = EscrowCoordinator(test_db)

    booking, escrow = await coordinator.create_escrow(
        str(booking_id), "1030.5", FACILITY_ADDRESS, buyer_address=BUYER_ADDRESS,
    )

    assert booking.status == "processing"
    assert escrow.status == "created"
    assert escrow.amount == Decimal("1030.5")
    assert escrow.network == "sepolia"
    assert escrow.buyer_address == BUYER_ADDRESS
    assert escrow.token_address == ZERO_ADDRESS


@pytest.mark.asyncio
async def test_create_escrow_defaults_buyer_to_zero_address(test_db, make_booking):
    booking_id = await make_booking()
    _, escrow = await EscrowCoordinator(test_db, default_network="mainnet").create_escrow(
        booking_id, 10, FACILITY_ADDRESS,
    )
    assert escrow.buyer_address == ZERO_ADDRESS
    assert escrow.network == "mainnet"


@pytest.mark.asyncio
async def test_second_create_escrow_rejected(test_db, make_booking):
    booking_id = await make_booking()
    coordinator = EscrowCoordinator(test_db)
    await coordinator.create_escrow(booking_id, "100", FACILITY_ADDRESS)

    with pytest.raises(InvalidStateError):
        await coordinator.create_escrow(booking_id, "100", FACILITY_ADDRESS)

    count = (await test_db.execute(
        select(Escrow.id).where(Escrow.booking_id == booking_id),
    )).scalars().all()
    assert len(count) == 1


@pytest.mark.asyncio
async def test_create_escrow_validates_before_reading(test_db):
    coordinator = EscrowCoordinator(test_db)
    with pytest.raises(ValidationError) as exc_info:
        await coordinator.create_escrow(uuid4(), "100", "0xnothex")
    assert exc_info.value.field == "facilityAddress"

    with pytest.raises(ValidationError) as exc_info:
        await coordinator.create_escrow(uuid4(), "2000000", FACILITY_ADDRESS)
    assert exc_info.value.field == "amount"


@pytest.mark.asyncio
async def test_create_escrow_for_missing_booking(test_db):
    with pytest.raises(ResourceNotFoundError) as exc_info:
        await EscrowCoordinator(test_db).create_escrow(uuid4(), "100", FACILITY_ADDRESS)
    assert exc_info.value.code == "BOOKING_NOT_FOUND"


@pytest.mark.asyncio
async def test_create_escrow_for_cancelled_booking_rejected(test_db, make_booking):
    booking_id = await make_booking()
    await BookingLifecycle(test_db).cancel_booking(booking_id, BUYER)

    with pytest.raises(InvalidStateError):
        await EscrowCoordinator(test_db).create_escrow(booking_id, "100", FACILITY_ADDRESS)
    assert await _statuses(test_db, booking_id) == ("cancelled", None)


# ─── confirm ────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_confirm_escrow_funds_and_confirms_booking(test_db, make_escrow, fake_verifier):
    booking_id = await make_escrow()
    coordinator = EscrowCoordinator(test_db, fake_verifier)

    result = await coordinator.confirm_escrow(booking_id, FUNDING_TX.upper().replace("0X", "0x"))

    assert result.tx_hash == FUNDING_TX
    assert result.confirmations == 3
    assert not result.replayed
    assert fake_verifier.calls == [(FUNDING_TX, "sepolia")]
    assert await _statuses(test_db, booking_id) == ("confirmed", "funded")

    escrow = await coordinator.get_escrow(booking_id)
    assert escrow.funding_tx_hash == FUNDING_TX
    assert escrow.funded_at is not None
    payment_status = (await test_db.execute(
        select(Booking.payment_status).where(Booking.id == booking_id),
    )).scalar_one()
    assert payment_status == "paid"


@pytest.mark.asyncio
async def test_confirm_escrow_appends_audit_row(test_db, make_escrow):
    booking_id = await make_escrow(funded=True)
    rows = (await test_db.execute(
        select(BlockchainTransaction).where(BlockchainTransaction.booking_id == booking_id),
    )).scalars().all()
    assert len(rows) == 1
    assert rows[0].type == "escrow_funding"
    assert rows[0].tx_hash == FUNDING_TX
    assert rows[0].block_number == 100
    assert rows[0].gas_used == 21000


@pytest.mark.asyncio
async def test_confirm_escrow_replay_is_idempotent(test_db, make_escrow, fake_verifier):
    booking_id = await make_escrow(funded=True)
    fake_verifier.calls.clear()

    result = await EscrowCoordinator(test_db, fake_verifier).confirm_escrow(
        booking_id, FUNDING_TX,
    )

    assert result.replayed
    assert result.confirmations is None
    assert fake_verifier.calls == []
    rows = (await test_db.execute(select(BlockchainTransaction.id))).scalars().all()
    assert len(rows) == 1


@pytest.mark.asyncio
async def test_confirm_escrow_rejects_hash_bound_to_other_escrow(
    test_db, make_escrow, fake_verifier,
):
    await make_escrow(funded=True)
    second = await make_escrow()

    with pytest.raises(InvalidStateError) as exc_info:
        await EscrowCoordinator(test_db, fake_verifier).confirm_escrow(second, FUNDING_TX)

    assert exc_info.value.code == "TX_ALREADY_USED"
    assert await _statuses(test_db, second) == ("processing", "created")


@pytest.mark.asyncio
async def test_unverified_transaction_leaves_state_untouched(
    test_db, make_escrow, fake_verifier,
):
    booking_id = await make_escrow()
    fake_verifier.result = TransactionVerification(verified=False, error="receipt not found")

    with pytest.raises(TransactionNotVerifiedError) as exc_info:
        await EscrowCoordinator(test_db, fake_verifier).confirm_escrow(booking_id, FUNDING_TX)

    assert exc_info.value.code == "TX_VERIFICATION_FAILED"
    assert exc_info.value.http_status == 400
    assert await _statuses(test_db, booking_id) == ("processing", "created")


@pytest.mark.asyncio
async def test_shallow_transaction_reports_confirmations(test_db, make_escrow, fake_verifier):
    booking_id = await make_escrow()
    fake_verifier.result = TransactionVerification(
        verified=True, block_number=100, confirmations=1,
    )
    coordinator = EscrowCoordinator(test_db, fake_verifier, min_confirmations=6)

    with pytest.raises(TransactionNotVerifiedError) as exc_info:
        await coordinator.confirm_escrow(booking_id, FUNDING_TX)

    assert exc_info.value.code == "INSUFFICIENT_CONFIRMATIONS"
    assert exc_info.value.confirmations == 1
    assert await _statuses(test_db, booking_id) == ("processing", "created")


@pytest.mark.asyncio
async def test_retry_after_failed_verification_succeeds(test_db, make_escrow, fake_verifier):
    booking_id = await make_escrow()
    coordinator = EscrowCoordinator(test_db, fake_verifier)
    fake_verifier.result = TransactionVerification(verified=False, error="timeout")
    with pytest.raises(TransactionNotVerifiedError):
        await coordinator.confirm_escrow(booking_id, FUNDING_TX)

    fake_verifier.result = TransactionVerification(verified=True, confirmations=2)
    result = await coordinator.confirm_escrow(booking_id, FUNDING_TX)
    assert result.confirmations == 2


@pytest.mark.asyncio
async def test_confirm_without_escrow(test_db, make_booking, fake_verifier):
    booking_id = await make_booking()
    with pytest.raises(ResourceNotFoundError) as exc_info:
        await EscrowCoordinator(test_db, fake_verifier).confirm_escrow(booking_id, FUNDING_TX)
    assert exc_info.value.code == "ESCROW_NOT_FOUND"
    assert fake_verifier.calls == []


@pytest.mark.asyncio
async def test_confirm_released_escrow_with_new_hash_rejected(
    test_db, make_escrow, fake_verifier,
):
    booking_id = await make_escrow(funded=True)
    coordinator = EscrowCoordinator(test_db, fake_verifier)
    await coordinator.release_escrow(booking_id, ADMIN)
    fake_verifier.calls.clear()

    with pytest.raises(InvalidStateError):
        await coordinator.confirm_escrow(booking_id, OTHER_TX)
    assert fake_verifier.calls == []


@pytest.mark.asyncio
async def test_confirm_validates_hash_first(test_db, fake_verifier):
    with pytest.raises(ValidationError) as exc_info:
        await EscrowCoordinator(test_db, fake_verifier).confirm_escrow(uuid4(), "0x12")
    assert exc_info.value.field == "txHash"


# ─── release ────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_release_completes_booking(test_db, make_escrow):
    booking_id = await make_escrow(funded=True)
    coordinator = EscrowCoordinator(test_db)

    booking = await coordinator.release_escrow(booking_id, ARBITER, tx_hash=OTHER_TX)

    assert booking.status == "completed"
    assert booking.payment_status == "released"
    escrow = await coordinator.get_escrow(booking_id)
    assert escrow.status == "released"
    assert escrow.release_tx_hash == OTHER_TX
    types = (await test_db.execute(
        select(BlockchainTransaction.type).where(
            BlockchainTransaction.booking_id == booking_id,
        ),
    )).scalars().all()
    assert sorted(types) == ["escrow_funding", "escrow_release"]


@pytest.mark.asyncio
async def test_release_requires_capability(test_db, make_escrow):
    booking_id = await make_escrow(funded=True)
    with pytest.raises(ForbiddenError):
        await EscrowCoordinator(test_db).release_escrow(booking_id, BUYER)
    assert await _statuses(test_db, booking_id) == ("confirmed", "funded")


@pytest.mark.asyncio
async def test_release_unfunded_escrow_rejected(test_db, make_escrow):
    booking_id = await make_escrow()
    with pytest.raises(InvalidStateError):
        await EscrowCoordinator(test_db).release_escrow(booking_id, ADMIN)
    assert await _statuses(test_db, booking_id) == ("processing", "created")


@pytest.mark.asyncio
async def test_release_disputed_escrow_rejected(test_db, make_escrow):
    booking_id = await make_escrow(disputed=True)
    with pytest.raises(InvalidStateError):
        await EscrowCoordinator(test_db).release_escrow(booking_id, ADMIN)
    assert await _statuses(test_db, booking_id) == ("disputed", "disputed")


@pytest.mark.asyncio
async def test_release_twice_rejected(test_db, make_escrow):
    booking_id = await make_escrow(funded=True)
    coordinator = EscrowCoordinator(test_db)
    await coordinator.release_escrow(booking_id, ADMIN)
    with pytest.raises(InvalidStateError):
        await coordinator.release_escrow(booking_id, ADMIN)


# ─── dispute ────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_buyer_disputes_funded_escrow(test_db, make_escrow):
    booking_id = await make_escrow(funded=True)
    booking = await EscrowCoordinator(test_db).dispute_escrow(booking_id, BUYER)
    assert booking.status == "disputed"
    escrow = await EscrowCoordinator(test_db).get_escrow(booking_id)
    assert escrow.status == "disputed"
    assert escrow.disputed_at is not None


@pytest.mark.asyncio
async def test_facility_owner_may_dispute(test_db, make_escrow):
    booking_id = await make_escrow(funded=True)
    booking = await EscrowCoordinator(test_db).dispute_escrow(booking_id, OWNER)
    assert booking.status == "disputed"


@pytest.mark.asyncio
async def test_outsider_cannot_dispute(test_db, make_escrow):
    booking_id = await make_escrow(funded=True)
    outsider = Actor(id="buyer-99", role=ActorRole.BUYER)
    with pytest.raises(ForbiddenError):
        await EscrowCoordinator(test_db).dispute_escrow(booking_id, outsider)
    assert await _statuses(test_db, booking_id) == ("confirmed", "funded")


@pytest.mark.asyncio
async def test_dispute_requires_funded_escrow(test_db, make_escrow):
    booking_id = await make_escrow()
    with pytest.raises(InvalidStateError):
        await EscrowCoordinator(test_db).dispute_escrow(booking_id, ADMIN)
    assert await _statuses(test_db, booking_id) == ("processing", "created")


# ─── reads ──────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_get_status_without_escrow(test_db, make_booking):
    booking_id = await make_booking()
    booking, escrow = await EscrowCoordinator(test_db).get_status(str(booking_id))
    assert booking.status == "reserved"
    assert escrow is None


# ─── network allowlist ──────────────────────────────────────────

@pytest.mark.asyncio
async def test_create_escrow_rejects_unlisted_network(test_db, make_booking):
    booking_id = await make_booking()

    with pytest.raises(ValidationError) as exc_info:
        await EscrowCoordinator(test_db).create_escrow(
            booking_id, "100", FACILITY_ADDRESS, network="attacker.example/#",
        )

    assert exc_info.value.field == "network"
    assert await _statuses(test_db, booking_id) == ("reserved", None)


@pytest.mark.asyncio
async def test_create_escrow_accepts_allowlisted_network(test_db, make_booking):
    booking_id = await make_booking()
    _, escrow = await EscrowCoordinator(test_db, networks=["holesky"]).create_escrow(
        booking_id, "100", FACILITY_ADDRESS, network="holesky",
    )
    assert escrow.network == "holesky"


# ─── confirmation depth / verifier boundary ─────────────────────

@pytest.mark.asyncio
async def test_unconfirmed_transaction_rejected_at_default_depth(
    test_db, make_escrow, fake_verifier,
):
    booking_id = await make_escrow()
    fake_verifier.result = TransactionVerification(
        verified=True, block_number=100, confirmations=0,
    )

    with pytest.raises(TransactionNotVerifiedError) as exc_info:
        await EscrowCoordinator(test_db, fake_verifier).confirm_escrow(booking_id, FUNDING_TX)

    assert exc_info.value.code == "INSUFFICIENT_CONFIRMATIONS"
    assert exc_info.value.confirmations == 0
    assert await _statuses(test_db, booking_id) == ("processing", "created")


class _SessionStateVerifier:
    """Records whether the session had an open transaction during verify()."""

    def __init__(self, db):
        self._db = db
        self.in_transaction: list[bool] = []

    async def verify(self, tx_hash, network):
        self.in_transaction.append(self._db.in_transaction())
        return TransactionVerification(verified=True, block_number=100, confirmations=3)


@pytest.mark.asyncio
async def test_no_transaction_open_during_verification(test_db, make_escrow):
    booking_id = await make_escrow()
    verifier = _SessionStateVerifier(test_db)

    await EscrowCoordinator(test_db, verifier).confirm_escrow(booking_id, FUNDING_TX)

    assert verifier.in_transaction == [False]
    assert await _statuses(test_db, booking_id) == ("confirmed", "funded")


@pytest.mark.asyncio
async def test_confirm_without_verifier_is_config_error(test_db, make_escrow):
    booking_id = await make_escrow()

    with pytest.raises(ConfigError) as exc_info:
        await EscrowCoordinator(test_db).confirm_escrow(booking_id, FUNDING_TX)

    assert exc_info.value.code == "CONFIG_ERROR"
    assert exc_info.value.http_status == 500
    assert await _statuses(test_db, booking_id) == ("processing", "created")
