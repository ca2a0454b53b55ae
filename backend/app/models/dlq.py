"""
Dead Letter Queue (DLQ) Model.

Side effects that failed after a booking committed. The booking itself is
never affected; rows here are for an operator to retry or dismiss.
"""

from typing import Any, Dict, Optional
from sqlalchemy import Column, Integer, String, Text, DateTime, JSON, Enum
from sqlalchemy.sql import func
from backend.app.db.session import Base
import enum

MAX_ERROR_LENGTH = 2000


class DLQStatus(str, enum.Enum):
    FAILED = "FAILED"
    RESOLVED = "RESOLVED"


class DeadLetterQueue(Base):
    """
    Failed post-commit side effects (meeting provisioning, join-link writes).
    """
    __tablename__ = "dead_letter_queue"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    task_name = Column(String(100), nullable=False, index=True)
    booking_id = Column(Integer, nullable=True, index=True)
    error_message = Column(Text, nullable=False)
    payload = Column(JSON, nullable=True)

    status = Column(Enum(DLQStatus), default=DLQStatus.FAILED, nullable=False, index=True)
    retry_count = Column(Integer, default=0)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    last_retry_at = Column(DateTime(timezone=True), nullable=True)

    @classmethod
    def from_exception(
        cls,
        task_name: str,
        exc: BaseException,
        payload: Dict[str, Any],
        attempts: int = 1,
        booking_id: Optional[int] = None,
    ) -> "DeadLetterQueue":
        return cls(
            task_name=task_name,
            booking_id=booking_id if booking_id is not None else payload.get("booking_id"),
            error_message=f"{type(exc).__name__}: {exc}"[:MAX_ERROR_LENGTH],
            payload=payload,
            status=DLQStatus.FAILED,
            retry_count=attempts,
        )

    def __repr__(self):
        return f"<DLQ(id={self.id}, task='{self.task_name}', booking={self.booking_id}, status='{self.status}')>"
