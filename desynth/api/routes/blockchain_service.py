"""Blockchain Service — single action-dispatch endpoint for escrow operations.

Invariants:
    - Rate limited per client before the body is dispatched
    - Response envelope is {success: true, data: {...}}; errors via global handlers
"""

from typing import Callable

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from desynth.api.dependencies import enforce_rate_limit, get_actor, get_verifier_factory
from desynth.config import get_settings
from desynth.core.access import Actor
from desynth.core.boundary_protocols import TransactionVerifier
from desynth.infrastructure.database import get_db
from desynth.schemas.blockchain import BlockchainServiceRequest
from desynth.schemas.common import success
from desynth.services.action_dispatch import ActionDispatch

router = APIRouter(prefix="/api/v1/blockchain-service", tags=["blockchain"])


@router.post("", dependencies=[Depends(enforce_rate_limit)])
async def blockchain_service(
    body: BlockchainServiceRequest,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_actor),
    verifier_factory: Callable[[], TransactionVerifier] = Depends(get_verifier_factory),
):
    """Dispatch `action` to its escrow handler."""
    settings = get_settings()
    dispatch = ActionDispatch(
        db, verifier_factory,
        min_confirmations=settings.min_confirmations,
        default_network=settings.default_network,
        networks=settings.networks(),
    )
    return success(await dispatch.execute(body.action, body.payload(), actor))
