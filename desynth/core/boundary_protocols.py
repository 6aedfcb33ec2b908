"""Boundary Protocols — contracts between core/services and external collaborators.

Invariants:
    - Core NEVER imports from shell — dependency arrows point inward only
    - Blockchain reads, notifications and rate-limit counters accessed through
      Protocol types; implementations injected by the shell
    - TransactionVerifier.verify never raises: failures come back as verified=False

Design Decisions:
    - Protocol over ABC: structural subtyping, test fakes need no inheritance
    - Async in Protocol: implementations do IO, the pure decision logic they feed
      (state_machines, rate_limit) stays sync
"""

from dataclasses import dataclass
from typing import Protocol

from desynth.core.rate_limit import RateLimitDecision


@dataclass(frozen=True)
class TransactionVerification:
    """Result of a read-only receipt lookup."""
    verified: bool
    block_number: int | None = None
    confirmations: int | None = None
    gas_used: int | None = None
    error: str | None = None


class TransactionVerifier(Protocol):
    """Contract for on-chain receipt verification — implemented by shell."""
    async def verify(self, tx_hash: str, network: str) -> TransactionVerification: ...


class NotificationSink(Protocol):
    """Contract for fire-and-forget user notifications — implemented by shell."""
    async def notify(
        self, user_id: str, title: str, message: str,
        notification_type: str = "booking", urgent: bool = False,
    ) -> None: ...


class RateLimiter(Protocol):
    """Contract for per-client sliding-window admission — implemented by shell."""
    async def hit(self, client_key: str) -> RateLimitDecision: ...
