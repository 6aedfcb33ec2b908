"""Rate Limiter Backends — sliding-window admission behind the RateLimiter protocol.

Invariants:
    - Both backends decide with core/rate_limit.evaluate_window (identical admission)
    - Rejected requests never consume budget
    - InMemorySlidingWindowLimiter is per-process: correct for a SINGLE instance only.
      Multi-instance deployments must use DatabaseSlidingWindowLimiter
      (RATE_LIMIT_BACKEND=database)
    - DatabaseSlidingWindowLimiter may over-reject under a race, never over-admit

Design Decisions:
    - deque per client key for the in-memory log: O(1) expiry from the left; clients
      idle for a whole window are swept at most once per window
    - Database log prunes expired rows for ALL clients on every hit, so keys that never
      return do not accumulate
    - Database log commits the candidate hit BEFORE counting: of two racing requests,
      the later committer always sees the earlier one
    - Injectable clock: window tests without sleeping
"""

import logging
import time
from collections import deque
from contextlib import AbstractAsyncContextManager
from typing import Callable

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from desynth.core.rate_limit import RateLimitDecision, evaluate_window
from desynth.models.rate_limit_hit import RateLimitHit

logger = logging.getLogger(__name__)

SessionScope = Callable[[], AbstractAsyncContextManager[AsyncSession]]


class InMemorySlidingWindowLimiter:
    """Per-process sliding-window log keyed by client."""

    def __init__(
        self, max_requests: int, window_seconds: float,
        clock: Callable[[], float] = time.time,
    ):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._history: dict[str, deque[float]] = {}
        self._next_sweep = 0.0

    @property
    def tracked_keys(self) -> int:
        return len(self._history)

    async def hit(self, client_key: str) -> RateLimitDecision:
        now = self._clock()
        cutoff = now - self.window_seconds
        if now >= self._next_sweep:
            self._sweep(cutoff)
            self._next_sweep = now + self.window_seconds

        history = self._history.get(client_key) or deque()
        while history and history[0] <= cutoff:
            history.popleft()

        decision = evaluate_window(
            list(history), now, self.max_requests, self.window_seconds,
        )
        if decision.allowed:
            history.append(now)
        else:
            logger.warning(
                "Rate limit exceeded", extra={"client_key": client_key},
            )
        if history:
            self._history[client_key] = history
        else:
            self._history.pop(client_key, None)
        return decision

    def _sweep(self, cutoff: float) -> None:
        """Drop clients whose newest hit has left the window."""
        expired = [key for key, hits in self._history.items() if not hits or hits[-1] <= cutoff]
        for key in expired:
            del self._history[key]

    def reset(self) -> None:
        self._history.clear()
        self._next_sweep = 0.0


class DatabaseSlidingWindowLimiter:
    """Sliding-window log shared across instances via the rate_limit_hits table."""

    def __init__(
        self, session_scope: SessionScope, max_requests: int, window_seconds: float,
        clock: Callable[[], float] = time.time,
    ):
        self._session_scope = session_scope
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock

    async def hit(self, client_key: str) -> RateLimitDecision:
        now = self._clock()
        cutoff = now - self.window_seconds
        async with self._session_scope() as db:
            await db.execute(
                delete(RateLimitHit).where(RateLimitHit.hit_at <= cutoff),
            )
            candidate = RateLimitHit(client_key=client_key, hit_at=now)
            db.add(candidate)
            await db.commit()

            result = await db.execute(
                select(RateLimitHit.hit_at).where(
                    RateLimitHit.client_key == client_key,
                    RateLimitHit.hit_at > cutoff,
                    RateLimitHit.id != candidate.id,
                ),
            )
            others = list(result.scalars().all())
            decision = evaluate_window(
                others, now, self.max_requests, self.window_seconds,
            )
            if not decision.allowed:
                await db.execute(
                    delete(RateLimitHit).where(RateLimitHit.id == candidate.id),
                )
                await db.commit()
                logger.warning(
                    "Rate limit exceeded", extra={"client_key": client_key},
                )
        return decision
