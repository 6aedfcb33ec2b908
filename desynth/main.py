"""Desynth Settlement API — FastAPI application entry point.

Invariants:
    - Routers listed explicitly in ROUTERS (no auto-discovery)
    - Engine created in the lifespan and disposed on shutdown
    - Rate-limit headers exposed to browsers through CORS

Design Decisions:
    - create_app() builds the app; module-level `app` is what uvicorn imports
    - Memory rate limiter warns at startup: it only holds for a single process
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

import desynth.infrastructure.database as db_module
from desynth.api.error_handlers import register_error_handlers
from desynth.api.routes import blockchain_service, bookings, fees, health
from desynth.config import Settings, get_settings
from desynth.infrastructure.observability import setup_logging

logger = logging.getLogger(__name__)

ROUTERS = (health.router, blockchain_service.router, bookings.router, fees.router)
EXPOSED_HEADERS = ["Retry-After", "X-RateLimit-Remaining", "X-RateLimit-Reset"]


def _start(settings: Settings) -> None:
    setup_logging(settings.log_level, settings.log_format)
    db_module.init_db(
        settings.database_url,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
    )
    if settings.rate_limit_backend == "memory":
        logger.warning(
            "In-memory rate limiter active: limits are per process, "
            "set RATE_LIMIT_BACKEND=database when running several instances",
        )


@asynccontextmanager
async def lifespan(app: FastAPI):
    _start(get_settings())
    logger.info("Settlement API started")
    yield
    if db_module.db_manager:
        await db_module.db_manager.dispose()
    logger.info("Settlement API stopped")


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()
    application = FastAPI(
        title="Desynth Settlement API", version="1.0.0", lifespan=lifespan,
    )
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=EXPOSED_HEADERS,
    )
    for router in ROUTERS:
        application.include_router(router)
    register_error_handlers(application)
    return application


app = create_app()
