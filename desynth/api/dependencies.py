"""Request Dependencies — actor identity, verifier factory and rate limiting for routes.

Invariants:
    - Actor comes from gateway headers (X-Actor-Id, X-Actor-Role); no id -> anonymous
    - Rate-limited routes always carry X-RateLimit-Remaining / X-RateLimit-Reset
    - Rejected requests raise RateLimitError (429) before the route body runs

Design Decisions:
    - get_rate_limiter is lru_cached: one limiter per process, like get_settings()
    - Verifier handed out as a factory: building it validates RPC credentials, which
      only confirm_escrow needs
    - Client key is the socket peer. Behind N trusted proxies (TRUSTED_PROXY_COUNT) it is
      the Nth X-Forwarded-For hop from the right: hops left of it are client-supplied
"""

import time
from functools import lru_cache
from typing import Callable

from fastapi import Depends, Header, Request, Response

from desynth.config import get_settings
from desynth.core.access import ANONYMOUS, Actor
from desynth.core.boundary_protocols import (
    NotificationSink, RateLimiter, TransactionVerifier,
)
from desynth.core.domain_types import ActorRole
from desynth.core.errors import ErrorContext, RateLimitError, ValidationError
from desynth.core.rate_limit import RateLimitDecision
from desynth.infrastructure.database import session_scope
from desynth.infrastructure.notifier import DatabaseNotificationSink
from desynth.infrastructure.rate_limiter import (
    DatabaseSlidingWindowLimiter, InMemorySlidingWindowLimiter,
)
from desynth.infrastructure.rpc_client import build_transaction_verifier


def get_actor(
    x_actor_id: str | None = Header(None),
    x_actor_role: str | None = Header(None),
) -> Actor:
    if not x_actor_id:
        return ANONYMOUS
    try:
        role = ActorRole(x_actor_role) if x_actor_role else ActorRole.BUYER
    except ValueError:
        raise ValidationError(f"Unknown actor role {x_actor_role!r}", "X-Actor-Role")
    return Actor(id=x_actor_id, role=role)


def get_verifier_factory() -> Callable[[], TransactionVerifier]:
    return lambda: build_transaction_verifier(get_settings())


def get_notifier() -> NotificationSink:
    return DatabaseNotificationSink(session_scope)


@lru_cache
def get_rate_limiter() -> RateLimiter:
    settings = get_settings()
    if settings.rate_limit_backend == "database":
        return DatabaseSlidingWindowLimiter(
            session_scope,
            settings.rate_limit_max_requests,
            settings.rate_limit_window_seconds,
        )
    return InMemorySlidingWindowLimiter(
        settings.rate_limit_max_requests, settings.rate_limit_window_seconds,
    )


def client_key(request: Request, trusted_proxies: int = 0) -> str:
    peer = request.client.host if request.client else "unknown"
    if trusted_proxies <= 0:
        return peer
    hops = [
        hop.strip() for hop in request.headers.get("x-forwarded-for", "").split(",")
        if hop.strip()
    ]
    if len(hops) < trusted_proxies:
        return peer
    return hops[-trusted_proxies]


async def enforce_rate_limit(
    request: Request,
    response: Response,
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> RateLimitDecision:
    key = client_key(request, get_settings().trusted_proxy_count)
    decision = await limiter.hit(key)
    response.headers["X-RateLimit-Remaining"] = str(decision.remaining)
    response.headers["X-RateLimit-Reset"] = str(decision.reset_at_ms)
    if not decision.allowed:
        raise RateLimitError(
            remaining=decision.remaining,
            reset_at_ms=decision.reset_at_ms,
            retry_after_ms=decision.retry_after_ms(time.time()),
            context=ErrorContext(debug_info={"client_key": key}),
        )
    return decision
