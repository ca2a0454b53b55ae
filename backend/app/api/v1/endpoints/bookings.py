"""
Student Booking API Endpoints.

Booking and cancellation go through the BookingEngine; this layer only
validates input, translates result variants to HTTP and writes audit entries.
"""

from typing import List, Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.db.session import get_db
from backend.app.core.config import settings
from backend.app.core.dependencies import get_booking_engine
from backend.app.core.exceptions import raise_for_failure
from backend.app.core.guards import require_role
from backend.app.domain.booking.booking_engine import BookingEngine
from backend.app.domain.booking.booking_store import BookingStore
from backend.app.models.booking_enums import BookingStatus
from backend.app.models.enums import UserRole
from backend.app.schemas.booking import (
    BookingCreate, BookingCreatedResponse, BookingResponse, MeetingOutcomeResponse, OkResponse,
)
from backend.app.services.audit import log_event, AuditAction

router = APIRouter(prefix="/bookings", tags=["Bookings"])


@router.post("", response_model=BookingCreatedResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(
    booking_data: BookingCreate,
    current_user: dict = Depends(require_role([UserRole.STUDENT])),
    engine: BookingEngine = Depends(get_booking_engine),
    db: AsyncSession = Depends(get_db)
):
    """
    Book an open slot.

    Debits the slot price from the student's ledger in the same unit of work
    that marks the slot BOOKED. The meeting is provisioned after commit;
    its outcome is reported but never fails the booking.
    """
    result = raise_for_failure(await engine.create_booking(current_user["user_id"], booking_data.slot_id))
    booking, slot, outcome = result.booking, result.slot, result.meeting_outcome

    await log_event(
        db=db,
        action=AuditAction.BOOKING_CREATED,
        actor_id=current_user["user_id"],
        actor_username=current_user["sub"],
        target_user_id=booking.teacher_id,
        metadata={
            "booking_id": booking.id,
            "slot_id": slot.id,
            "price_credits": booking.price_credits,
            "debit_entry_id": result.debit_entry.id
        }
    )

    meeting_link = slot.meeting_link
    if outcome is not None and outcome.join_link:
        meeting_link = outcome.join_link

    return BookingCreatedResponse(
        booking_id=booking.id,
        slot_id=slot.id,
        teacher_id=booking.teacher_id,
        status=booking.status,
        price_credits=booking.price_credits,
        booked_at=booking.booked_at,
        slot_start=slot.start_at,
        slot_end=slot.end_at,
        meeting_link=meeting_link,
        meeting_outcome=MeetingOutcomeResponse(**outcome.as_dict()) if outcome else None
    )


@router.post("/{booking_id}/cancel", response_model=OkResponse)
async def cancel_booking(
    booking_id: int,
    current_user: dict = Depends(require_role([UserRole.STUDENT])),
    engine: BookingEngine = Depends(get_booking_engine),
    db: AsyncSession = Depends(get_db)
):
    """
    Cancel an active booking and refund the price paid.

    Bookings of other students answer 404, not 403.
    """
    result = raise_for_failure(await engine.cancel_booking(current_user["user_id"], booking_id))

    await log_event(
        db=db,
        action=AuditAction.BOOKING_CANCELLED,
        actor_id=current_user["user_id"],
        actor_username=current_user["sub"],
        target_user_id=result.booking.teacher_id,
        metadata={
            "booking_id": booking_id,
            "slot_id": result.booking.slot_id,
            "refund_entry_id": result.refund_entry.id,
            "refunded_credits": result.refund_entry.amount
        }
    )

    return OkResponse()


@router.get("", response_model=List[BookingResponse])
async def list_my_bookings(
    status_filter: Optional[BookingStatus] = Query(None, alias="status"),
    current_user: dict = Depends(require_role([UserRole.STUDENT])),
    db: AsyncSession = Depends(get_db)
):
    """List own bookings, newest first."""
    bookings = await BookingStore.list_for_student(
        db, current_user["user_id"], status=status_filter, limit=settings.ledger_window_size
    )
    return [BookingResponse.model_validate(b) for b in bookings]
