"""
Borrower Notification Sink

Records notifications for a downstream delivery mechanism. Nothing here renders
or sends messages; rows in library_notifications are picked up by whatever
delivers them (in-app inbox, email, SMS).
"""

import logging
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .models import LibraryNotification
from .schemas import NotificationEvent

logger = logging.getLogger(__name__)


class NotificationSink(Protocol):
    """Destination for borrower notifications."""

    async def notify(self, event: NotificationEvent) -> None:
        """Record one notification. Raises on failure."""
        ...


class DatabaseNotificationSink:
    """NotificationSink that inserts into the library_notifications table."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self._session_maker = session_maker

    async def notify(self, event: NotificationEvent) -> None:
        """
        Persist a notification for the borrower.

        Args:
            event: The notification to record
        """
        notification = LibraryNotification(
            borrower_id=event.borrower_id,
            title=event.title,
            message=event.message,
            notification_type=event.severity,
            reference_id=event.reference_id,
            created_at=event.created_at,
        )

        async with self._session_maker() as db:
            db.add(notification)
            await db.commit()

        logger.debug(
            f"Recorded '{event.title}' notification for borrower {event.borrower_id} "
            f"(reference {event.reference_id})"
        )
