"""Sliding-Window Admission — pure decision over a client's hit timestamps.

Invariants:
    - A hit at time t counts while t > now - window (strict: hits exactly one window
      old have expired)
    - allowed iff live hits (excluding the candidate) < max_requests
    - reset_at is when the oldest live hit expires; now + window when none are live

Design Decisions:
    - Same decision function for the in-memory and database backends, so both
      admit exactly the same sequences
    - Seconds (float) in, epoch milliseconds out (resetAt wire format)
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    remaining: int
    reset_at: float  # epoch seconds

    @property
    def reset_at_ms(self) -> int:
        return int(self.reset_at * 1000)

    def retry_after_ms(self, now: float) -> int:
        return max(0, int((self.reset_at - now) * 1000))


def live_hits(hits: list[float], now: float, window_seconds: float) -> list[float]:
    cutoff = now - window_seconds
    return sorted(t for t in hits if t > cutoff)


def evaluate_window(
    hits: list[float], now: float, max_requests: int, window_seconds: float,
) -> RateLimitDecision:
    """Decide whether one more request fits in the window ending at `now`."""
    live = live_hits(hits, now, window_seconds)
    reset_at = (live[0] + window_seconds) if live else (now + window_seconds)
    if len(live) >= max_requests:
        return RateLimitDecision(allowed=False, remaining=0, reset_at=reset_at)
    return RateLimitDecision(
        allowed=True, remaining=max_requests - len(live) - 1, reset_at=reset_at,
    )
