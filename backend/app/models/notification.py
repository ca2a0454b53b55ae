"""
Notification Database Model.

In-app teaching notifications written by the side-effect dispatcher.
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, JSON, Enum
from sqlalchemy.sql import func
from backend.app.db.session import Base
import enum


class NotificationType(str, enum.Enum):
    NEW_BOOKING = "NEW_BOOKING"
    BOOKING_CANCELLED = "BOOKING_CANCELLED"
    SESSION_CANCELLED = "SESSION_CANCELLED"
    LESSON_COMPLETED = "LESSON_COMPLETED"
    INFO = "INFO"


class Notification(Base):
    """
    In-App Notification.
    Stores teaching events for users.
    """
    __tablename__ = "notifications"
    __mapper_args__ = {"eager_defaults": True}

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Recipient
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    # Content
    type = Column(Enum(NotificationType), default=NotificationType.INFO, nullable=False)
    title = Column(String(255), nullable=False)
    payload = Column(JSON, nullable=True)

    # State
    is_read = Column(Boolean, default=False, nullable=False, index=True)
    read_at = Column(DateTime(timezone=True), nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<Notification(id={self.id}, user={self.user_id}, type='{self.type.value}')>"
