"""RateLimitHit ORM — shared sliding-window log for multi-instance rate limiting.

Invariants:
    - One row per admitted request; rejected requests delete their own row
    - Rows older than the window are pruned, for every client, on each hit

Design Decisions:
    - Epoch seconds as Float: window arithmetic without timezone handling
"""

from sqlalchemy import String, Float, Integer
from sqlalchemy.orm import Mapped, mapped_column

from desynth.db.base import Base


class RateLimitHit(Base):
    __tablename__ = "rate_limit_hits"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    client_key: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    hit_at: Mapped[float] = mapped_column(Float, nullable=False, index=True)
