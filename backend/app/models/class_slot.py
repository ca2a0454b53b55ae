"""
Class Slot database model.

A bookable unit of teaching time. The status column is the
mutual-exclusion gate for bookings.
"""

from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Enum, CheckConstraint, Index
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.models.booking_enums import SlotStatus


class ClassSlot(Base):
    """
    Class Slot model.

    Transitions OPEN -> BOOKED only through a conditional update
    (see SlotStore.try_transition). Cancelling a booking re-opens the slot.
    """
    __tablename__ = "class_slots"
    __mapper_args__ = {"eager_defaults": True}  # server-side timestamps loaded on flush

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Ownership - slot belongs to a teacher
    owner_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)

    # Time window
    start_at = Column(DateTime(timezone=True), nullable=False)
    end_at = Column(DateTime(timezone=True), nullable=False)

    status = Column(Enum(SlotStatus), default=SlotStatus.OPEN, nullable=False, index=True)
    price_credits = Column(Integer, nullable=False)
    meeting_link = Column(String(2000), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        CheckConstraint("end_at > start_at", name="ck_class_slots_window"),
        CheckConstraint("price_credits > 0", name="ck_class_slots_price_positive"),
        Index('ix_class_slots_owner_start', 'owner_id', 'start_at'),
        Index('ix_class_slots_status_start', 'status', 'start_at'),
    )

    def __repr__(self):
        return f"<ClassSlot(id={self.id}, owner_id={self.owner_id}, status='{self.status.value}')>"
