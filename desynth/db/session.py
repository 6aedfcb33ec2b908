"""Unit of Work — commit-or-rollback scope for multi-row settlement writes.

Invariants:
    - Everything written inside `atomic(db)` commits together or not at all
    - Any exception inside the scope rolls the session back, then propagates unchanged
    - IntegrityError is re-raised as-is so callers can map constraint hits to domain errors

Design Decisions:
    - Separate from infrastructure/database.py: services run without FastAPI too
      (tests, scripts), where no DatabaseSessionManager wraps the session
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession


@asynccontextmanager
async def atomic(db: AsyncSession) -> AsyncGenerator[AsyncSession, None]:
    """Commit on clean exit, roll back on any exception."""
    try:
        yield db
        await db.commit()
    except BaseException:
        await db.rollback()
        raise
