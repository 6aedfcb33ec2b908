"""ORM Models — SQLAlchemy declarative models for all settlement entities.

Invariants:
    - All models inherit from Base (db/base.py)
    - Booking is the aggregate root; escrow and audit rows are scoped by booking_id

Design Decisions:
    - One file per entity for locality
    - All models imported here so SQLAlchemy resolves string-based relationship()
      references before any query runs (standard SQLAlchemy pattern)
"""

from desynth.models.booking import Booking  # noqa: F401
from desynth.models.escrow import Escrow  # noqa: F401
from desynth.models.blockchain_transaction import BlockchainTransaction  # noqa: F401
from desynth.models.revenue_settings import RevenueSettings  # noqa: F401
from desynth.models.notification import Notification  # noqa: F401
from desynth.models.rate_limit_hit import RateLimitHit  # noqa: F401
