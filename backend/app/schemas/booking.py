"""
Booking Schemas.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional
from backend.app.models.booking_enums import BookingStatus


class BookingCreate(BaseModel):
    slot_id: int = Field(..., gt=0, description="Class slot to book")


class MeetingOutcomeResponse(BaseModel):
    status: str
    join_link: Optional[str] = None
    reason: Optional[str] = None


class BookingCreatedResponse(BaseModel):
    """Returned by POST /bookings."""
    booking_id: int
    slot_id: int
    teacher_id: int
    status: BookingStatus
    price_credits: int
    booked_at: datetime
    slot_start: datetime
    slot_end: datetime
    meeting_link: Optional[str] = None
    meeting_outcome: Optional[MeetingOutcomeResponse] = None


class BookingResponse(BaseModel):
    id: int
    slot_id: int
    student_id: int
    teacher_id: int
    status: BookingStatus
    price_credits: int
    debit_entry_id: Optional[int] = None
    booked_at: datetime
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None

    class Config:
        from_attributes = True


class OkResponse(BaseModel):
    ok: bool = True
