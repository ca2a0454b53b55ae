"""
Booking Store (Domain Logic).

Booking records joining a student, a slot and the debit that paid for it.
"""

from datetime import datetime, timezone
from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, desc

from backend.app.models.booking import Booking
from backend.app.models.class_slot import ClassSlot
from backend.app.models.credit_ledger_entry import CreditLedgerEntry
from backend.app.models.booking_enums import BookingStatus


class BookingStore:

    @staticmethod
    async def create(db: AsyncSession, slot: ClassSlot, student_id: int) -> Booking:
        """
        Create an active booking for a slot the caller has already claimed.

        Raises:
            IntegrityError: If another active booking already holds the slot
        """
        booking = Booking(
            slot_id=slot.id,
            student_id=student_id,
            teacher_id=slot.owner_id,
            status=BookingStatus.BOOKED,
            price_credits=slot.price_credits,
            booked_at=datetime.now(timezone.utc),
        )
        db.add(booking)
        await db.flush()  # Will raise IntegrityError if the slot already has an active booking
        return booking

    @staticmethod
    async def link_debit_entry(db: AsyncSession, booking: Booking, entry: CreditLedgerEntry) -> None:
        booking.debit_entry_id = entry.id
        await db.flush()

    @staticmethod
    async def get(db: AsyncSession, booking_id: int) -> Optional[Booking]:
        result = await db.execute(select(Booking).where(Booking.id == booking_id))
        return result.scalar_one_or_none()

    @staticmethod
    async def find_active_for_slot(db: AsyncSession, slot_id: int) -> Optional[Booking]:
        result = await db.execute(
            select(Booking).where(
                Booking.slot_id == slot_id,
                Booking.status == BookingStatus.BOOKED
            )
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def try_close(
        db: AsyncSession,
        booking_id: int,
        to_status: BookingStatus,
        cancellation_reason: Optional[str] = None
    ) -> bool:
        """
        Move a BOOKED booking to a terminal status in a single conditional UPDATE.

        Returns:
            False if the booking was no longer BOOKED
        """
        values = {"status": to_status}
        if to_status == BookingStatus.CANCELLED:
            values["cancelled_at"] = datetime.now(timezone.utc)
            values["cancellation_reason"] = cancellation_reason

        result = await db.execute(
            update(Booking)
            .where(Booking.id == booking_id, Booking.status == BookingStatus.BOOKED)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    @staticmethod
    async def list_for_student(
        db: AsyncSession,
        student_id: int,
        status: Optional[BookingStatus] = None,
        limit: int = 200
    ) -> List[Booking]:
        query = select(Booking).where(Booking.student_id == student_id)
        if status:
            query = query.where(Booking.status == status)
        query = query.order_by(desc(Booking.booked_at), desc(Booking.id)).limit(limit)
        result = await db.execute(query)
        return list(result.scalars().all())

    @staticmethod
    async def list_for_teacher(
        db: AsyncSession,
        teacher_id: int,
        status: Optional[BookingStatus] = None,
        limit: int = 200
    ) -> List[Booking]:
        query = select(Booking).where(Booking.teacher_id == teacher_id)
        if status:
            query = query.where(Booking.status == status)
        query = query.order_by(desc(Booking.booked_at), desc(Booking.id)).limit(limit)
        result = await db.execute(query)
        return list(result.scalars().all())
