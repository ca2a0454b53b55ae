"""
Slot Store (Domain Logic).

Class slot records. `try_transition` is the only mutual-exclusion
primitive between concurrent bookings of the same slot.
"""

from datetime import datetime
from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update

from backend.app.models.class_slot import ClassSlot
from backend.app.models.booking_enums import SlotStatus


class SlotStore:

    @staticmethod
    async def get(db: AsyncSession, slot_id: int) -> Optional[ClassSlot]:
        result = await db.execute(select(ClassSlot).where(ClassSlot.id == slot_id))
        return result.scalar_one_or_none()

    @staticmethod
    async def try_transition(
        db: AsyncSession,
        slot_id: int,
        from_status: SlotStatus,
        to_status: SlotStatus
    ) -> bool:
        """
        Compare-and-set the slot status in a single UPDATE.

        Returns:
            True if the slot was in `from_status` and is now `to_status`,
            False if another writer got there first.
        """
        result = await db.execute(
            update(ClassSlot)
            .where(ClassSlot.id == slot_id, ClassSlot.status == from_status)
            .values(status=to_status)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    @staticmethod
    async def force_status(db: AsyncSession, slot_id: int, to_status: SlotStatus) -> None:
        """Unconditional status write, for callers that already hold the slot."""
        await db.execute(
            update(ClassSlot)
            .where(ClassSlot.id == slot_id)
            .values(status=to_status)
            .execution_options(synchronize_session=False)
        )

    @staticmethod
    async def create(
        db: AsyncSession,
        owner_id: int,
        start_at: datetime,
        end_at: datetime,
        price_credits: int,
        meeting_link: Optional[str] = None
    ) -> ClassSlot:
        slot = ClassSlot(
            owner_id=owner_id,
            start_at=start_at,
            end_at=end_at,
            price_credits=price_credits,
            meeting_link=meeting_link,
            status=SlotStatus.OPEN,
        )
        db.add(slot)
        await db.flush()
        return slot

    @staticmethod
    async def update_details(
        db: AsyncSession,
        slot_id: int,
        price_credits: Optional[int] = None,
        meeting_link: Optional[str] = None
    ) -> bool:
        """
        Change price or meeting link of a slot that is not CANCELLED.
        Never touches status.

        A new price only applies to future bookings; existing bookings keep
        the price they paid.

        Returns:
            False if the slot is missing or already cancelled; nothing is written then.
        """
        values = {}
        if price_credits is not None:
            values["price_credits"] = price_credits
        if meeting_link is not None:
            values["meeting_link"] = meeting_link

        if not values:
            raise ValueError("Nothing to update")

        result = await db.execute(
            update(ClassSlot)
            .where(ClassSlot.id == slot_id, ClassSlot.status != SlotStatus.CANCELLED)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    @staticmethod
    async def list_slots(
        db: AsyncSession,
        owner_id: Optional[int] = None,
        status: Optional[SlotStatus] = None,
        start_from: Optional[datetime] = None,
        start_to: Optional[datetime] = None,
        limit: int = 500
    ) -> List[ClassSlot]:
        query = select(ClassSlot)
        if owner_id:
            query = query.where(ClassSlot.owner_id == owner_id)
        if status:
            query = query.where(ClassSlot.status == status)
        if start_from:
            query = query.where(ClassSlot.start_at >= start_from)
        if start_to:
            query = query.where(ClassSlot.start_at <= start_to)

        query = query.order_by(ClassSlot.start_at).limit(limit)
        result = await db.execute(query)
        return list(result.scalars().all())
