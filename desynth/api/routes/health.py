"""Health & Readiness Probes — liveness, plus readiness gated on the database.

Invariants:
    - GET /health/ answers 200 whenever the process serves requests
    - GET /health/ready answers 503 only when the database is unreachable
    - RPC configuration is reported, not enforced: bookings and fees work without it,
      only escrow confirmation needs a verifier

Design Decisions:
    - db_manager read through the module at call time: it is assigned in the lifespan,
      after this module is imported
"""

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

import desynth.infrastructure.database as db_module
from desynth.config import Settings, get_settings

router = APIRouter(prefix="/api/v1/health", tags=["health"])


def _rpc_state(settings: Settings) -> str:
    return "configured" if settings.rpc_api_key or settings.rpc_urls else "missing"


@router.get("/", status_code=status.HTTP_200_OK)
async def health_check():
    return {"status": "healthy", "service": "desynth-settlement", "version": "1.0.0"}


@router.get("/ready")
async def readiness_check():
    manager = db_module.db_manager
    checks = {
        "database": "healthy" if manager and await manager.health_check() else "unavailable",
        "rpc": _rpc_state(get_settings()),
    }
    if checks["database"] != "healthy":
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "not_ready", "reason": "database_unavailable", "checks": checks},
        )
    return {"status": "ready", "checks": checks}
