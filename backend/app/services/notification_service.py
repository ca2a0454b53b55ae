"""
Notification Service.

Handles creation and state management of in-app teaching notifications.
"""

import logging
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy import select, update, desc
from datetime import datetime, timezone
from typing import Optional, Dict, Any, List, Iterable

from backend.app.models.notification import Notification, NotificationType

logger = logging.getLogger(__name__)

TITLES = {
    NotificationType.NEW_BOOKING: "New booking",
    NotificationType.BOOKING_CANCELLED: "Booking cancelled",
    NotificationType.SESSION_CANCELLED: "Class cancelled by teacher",
    NotificationType.LESSON_COMPLETED: "Lesson completed",
    NotificationType.INFO: "Notice",
}


class NotificationService:

    @staticmethod
    async def create_notification(
        db: AsyncSession,
        user_id: int,
        type: NotificationType = NotificationType.INFO,
        payload: Optional[Dict[str, Any]] = None,
        title: Optional[str] = None
    ) -> Notification:
        """Create a single notification."""
        notif = Notification(
            user_id=user_id,
            type=type,
            title=title or TITLES[type],
            payload=payload
        )
        db.add(notif)
        await db.flush()  # Caller commits
        return notif

    @staticmethod
    async def list_for_user(
        db: AsyncSession,
        user_id: int,
        unread_only: bool = False,
        limit: int = 50
    ) -> List[Notification]:
        query = select(Notification).where(Notification.user_id == user_id)
        if unread_only:
            query = query.where(Notification.is_read == False)  # noqa: E712
        query = query.order_by(desc(Notification.created_at), desc(Notification.id)).limit(limit)
        result = await db.execute(query)
        return list(result.scalars().all())

    @staticmethod
    async def mark_read(db: AsyncSession, notification_id: int, user_id: int) -> bool:
        """Mark a notification as read."""
        stmt = update(Notification).where(
            Notification.id == notification_id,
            Notification.user_id == user_id
        ).values(
            is_read=True,
            read_at=datetime.now(timezone.utc)
        )
        result = await db.execute(stmt)
        return result.rowcount > 0

    @staticmethod
    async def mark_all_read(db: AsyncSession, user_id: int) -> int:
        """Mark all notifications for user as read."""
        stmt = update(Notification).where(
            Notification.user_id == user_id,
            Notification.is_read == False  # noqa: E712
        ).values(
            is_read=True,
            read_at=datetime.now(timezone.utc)
        )
        result = await db.execute(stmt)
        return result.rowcount


class Notifier:
    """
    Fire-and-forget delivery of teaching events.

    Writes in its own session, never the caller's unit of work. Failures are
    logged and swallowed: a lost notification must not fail a booking.
    """

    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    async def notify(self, user_ids: Iterable[int], event_type: NotificationType, payload: Dict[str, Any]) -> int:
        recipients = sorted({uid for uid in user_ids if uid})
        if not recipients:
            return 0
        try:
            async with self._session_factory() as db:
                for uid in recipients:
                    await NotificationService.create_notification(db, uid, event_type, payload)
                await db.commit()
        except Exception:
            logger.exception("Failed to deliver %s to users %s", event_type.value, recipients)
            return 0

        logger.info("Delivered %s to users %s", event_type.value, recipients)
        return len(recipients)
