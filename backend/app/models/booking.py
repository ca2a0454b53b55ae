"""
Booking database model.

Links a student, a slot and the ledger entry that paid for it.
"""

from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Enum, CheckConstraint, Index, text
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.models.booking_enums import BookingStatus


class Booking(Base):
    """
    Booking model.

    price_credits is copied from the slot at booking time and never changes;
    the debit entry amount is always -price_credits.
    Only one BOOKED booking per slot (partial unique index), so a slot
    released by a cancellation can be booked again.
    """
    __tablename__ = "bookings"
    __mapper_args__ = {"eager_defaults": True}

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    slot_id = Column(Integer, ForeignKey('class_slots.id'), nullable=False, index=True)
    student_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)
    teacher_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)

    status = Column(Enum(BookingStatus), default=BookingStatus.BOOKED, nullable=False, index=True)
    price_credits = Column(Integer, nullable=False)

    # Set in the same unit of work, after the debit entry is appended
    debit_entry_id = Column(Integer, ForeignKey('credit_ledger_entries.id'), nullable=True)

    booked_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancellation_reason = Column(String(100), nullable=True)

    __table_args__ = (
        CheckConstraint("price_credits > 0", name="ck_bookings_price_positive"),
        Index(
            'ix_bookings_active_slot', 'slot_id', unique=True,
            postgresql_where=text("status = 'BOOKED'"),
            sqlite_where=text("status = 'BOOKED'"),
        ),
        Index('ix_bookings_student_booked_at', 'student_id', 'booked_at'),
    )

    def __repr__(self):
        return f"<Booking(id={self.id}, slot_id={self.slot_id}, status='{self.status.value}')>"
