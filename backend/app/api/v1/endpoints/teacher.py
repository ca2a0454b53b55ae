"""
Teacher API Endpoints.

Slot management and lesson outcomes, with strict ownership: a teacher only
ever sees and changes their own slots and bookings. Slot status changes are
delegated to the BookingEngine; only price and meeting link are edited here.
"""

from typing import List, Optional
from datetime import datetime
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.db.session import get_db
from backend.app.core.config import settings
from backend.app.core.dependencies import get_booking_engine
from backend.app.core.exceptions import BookingRuleViolation, raise_for_failure
from backend.app.core.guards import ensure_owned, require_role
from backend.app.domain.booking.booking_engine import BookingEngine
from backend.app.domain.booking.booking_store import BookingStore
from backend.app.domain.booking.results import InvalidState
from backend.app.domain.booking.slot_store import SlotStore
from backend.app.models.booking_enums import BookingStatus, SlotStatus
from backend.app.models.enums import UserRole
from backend.app.schemas.booking import BookingResponse
from backend.app.schemas.slot import SlotCreate, SlotListResponse, SlotResponse, SlotUpdate
from backend.app.services.audit import log_event, AuditAction

router = APIRouter(prefix="/teacher", tags=["Teacher"])

teacher_only = require_role([UserRole.TEACHER])


@router.post("/slots", response_model=SlotResponse, status_code=status.HTTP_201_CREATED)
async def create_slot(
    slot_data: SlotCreate,
    current_user: dict = Depends(teacher_only),
    db: AsyncSession = Depends(get_db)
):
    """Publish a new OPEN slot owned by the authenticated teacher."""
    slot = await SlotStore.create(
        db,
        owner_id=current_user["user_id"],
        start_at=slot_data.start_at,
        end_at=slot_data.end_at,
        price_credits=slot_data.price_credits,
        meeting_link=slot_data.meeting_link,
    )
    await db.commit()
    await db.refresh(slot)

    await log_event(
        db=db,
        action=AuditAction.SLOT_CREATED,
        actor_id=current_user["user_id"],
        actor_username=current_user["sub"],
        metadata={
            "slot_id": slot.id,
            "start_at": slot.start_at.isoformat(),
            "price_credits": slot.price_credits
        }
    )

    return SlotResponse.model_validate(slot)


@router.get("/slots", response_model=SlotListResponse)
async def list_own_slots(
    status_filter: Optional[SlotStatus] = Query(None, alias="status"),
    start_from: Optional[datetime] = Query(None),
    start_to: Optional[datetime] = Query(None),
    current_user: dict = Depends(teacher_only),
    db: AsyncSession = Depends(get_db)
):
    slots = await SlotStore.list_slots(
        db,
        owner_id=current_user["user_id"],
        status=status_filter,
        start_from=start_from,
        start_to=start_to,
    )
    return SlotListResponse(
        slots=[SlotResponse.model_validate(s) for s in slots],
        total=len(slots)
    )


@router.patch("/slots/{slot_id}", response_model=SlotResponse)
async def update_slot(
    slot_id: int,
    slot_data: SlotUpdate,
    current_user: dict = Depends(teacher_only),
    engine: BookingEngine = Depends(get_booking_engine),
    db: AsyncSession = Depends(get_db)
):
    """
    Update price / meeting link, or cancel the slot with status=CANCELLED.

    A body may do one or the other, not both. A cancelled slot can no
    longer be edited. A new price applies to future bookings only. Cancelling a booked slot
    refunds the student the price they paid.
    """
    slot = await SlotStore.get(db, slot_id)
    ensure_owned(slot, slot.owner_id if slot else None, current_user, "Slot", slot_id)

    update_data = slot_data.model_dump(exclude_none=True, exclude={"status"})
    if update_data:
        updated = await SlotStore.update_details(
            db, slot_id,
            price_credits=update_data.get("price_credits"),
            meeting_link=update_data.get("meeting_link"),
        )
        if not updated:
            await db.rollback()
            raise BookingRuleViolation(InvalidState(
                resource="Slot", resource_id=slot_id, current_status=SlotStatus.CANCELLED.value
            ))
        await db.commit()
        await db.refresh(slot)

        await log_event(
            db=db,
            action=AuditAction.SLOT_UPDATED,
            actor_id=current_user["user_id"],
            actor_username=current_user["sub"],
            metadata={"slot_id": slot_id, "updated_fields": list(update_data.keys())}
        )

    if slot_data.status == SlotStatus.CANCELLED.value:
        result = raise_for_failure(await engine.cancel_slot(current_user["user_id"], slot_id))
        refunded = result.cancelled_booking
        await log_event(
            db=db,
            action=AuditAction.SLOT_CANCELLED,
            actor_id=current_user["user_id"],
            actor_username=current_user["sub"],
            target_user_id=refunded.student_id if refunded else None,
            metadata={
                "slot_id": slot_id,
                "booking_id": refunded.id if refunded else None,
                "refund_entry_id": result.refund_entry.id if result.refund_entry else None
            }
        )
        return SlotResponse.model_validate(result.slot)

    return SlotResponse.model_validate(slot)


@router.get("/bookings", response_model=List[BookingResponse])
async def list_teacher_bookings(
    status_filter: Optional[BookingStatus] = Query(None, alias="status"),
    current_user: dict = Depends(teacher_only),
    db: AsyncSession = Depends(get_db)
):
    """Bookings of the teacher's slots, newest first."""
    bookings = await BookingStore.list_for_teacher(
        db, current_user["user_id"], status=status_filter, limit=settings.ledger_window_size
    )
    return [BookingResponse.model_validate(b) for b in bookings]


@router.post("/bookings/{booking_id}/complete", response_model=BookingResponse)
async def complete_booking(
    booking_id: int,
    current_user: dict = Depends(teacher_only),
    engine: BookingEngine = Depends(get_booking_engine),
    db: AsyncSession = Depends(get_db)
):
    """Mark the lesson as delivered. The credits stay spent."""
    result = raise_for_failure(await engine.complete_booking(current_user["user_id"], booking_id))

    await log_event(
        db=db,
        action=AuditAction.BOOKING_COMPLETED,
        actor_id=current_user["user_id"],
        actor_username=current_user["sub"],
        target_user_id=result.booking.student_id,
        metadata={"booking_id": booking_id, "slot_id": result.booking.slot_id}
    )

    return BookingResponse.model_validate(result.booking)


@router.post("/bookings/{booking_id}/no-show", response_model=BookingResponse)
async def mark_no_show(
    booking_id: int,
    current_user: dict = Depends(teacher_only),
    engine: BookingEngine = Depends(get_booking_engine),
    db: AsyncSession = Depends(get_db)
):
    """Mark the student absent. No refund."""
    result = raise_for_failure(await engine.mark_no_show(current_user["user_id"], booking_id))

    await log_event(
        db=db,
        action=AuditAction.BOOKING_NO_SHOW,
        actor_id=current_user["user_id"],
        actor_username=current_user["sub"],
        target_user_id=result.booking.student_id,
        metadata={"booking_id": booking_id, "slot_id": result.booking.slot_id}
    )

    return BookingResponse.model_validate(result.booking)
