"""Notification Sink — writes user notifications to the outbox table for delivery.

Invariants:
    - notify() NEVER raises: a failed write is logged, the caller's action stands
    - Runs in its own session, after the caller committed its state change

Design Decisions:
    - Outbox table over a direct push: delivery (email, chat) is an external service
"""

import logging
from contextlib import AbstractAsyncContextManager
from typing import Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from desynth.core.errors import DatabaseError
from desynth.models.notification import Notification

logger = logging.getLogger(__name__)


class DatabaseNotificationSink:
    """NotificationSink persisting into the notifications table."""

    def __init__(
        self, session_scope: Callable[[], AbstractAsyncContextManager[AsyncSession]],
    ):
        self._session_scope = session_scope

    async def notify(
        self, user_id: str, title: str, message: str,
        notification_type: str = "booking", urgent: bool = False,
    ) -> None:
        try:
            async with self._session_scope() as db:
                db.add(Notification(
                    user_id=user_id, type=notification_type,
                    title=title, message=message, urgent=urgent,
                ))
                await db.commit()
        except (SQLAlchemyError, DatabaseError) as e:
            logger.error(f"Failed to store notification for {user_id}: {e}")
