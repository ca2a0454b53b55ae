"""
BigBlueButton join endpoint.

The join link stored on a booked slot points here. Browsers open it
directly, so the token may come as `?token=` instead of a header.
Mounted at the application root, next to /health.
"""

from typing import Optional
from fastapi import APIRouter, Depends, status
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.db.session import get_db
from backend.app.core.config import settings
from backend.app.core.dependencies import get_current_user_header_or_query, get_meeting_provisioner
from backend.app.core.exceptions import AppException, InsufficientPermissionsError, ResourceNotFoundError
from backend.app.domain.booking.booking_store import BookingStore
from backend.app.domain.booking.slot_store import SlotStore
from backend.app.models.enums import UserRole
from backend.app.models.user import User
from backend.app.services.meeting_provisioner import BbbMeetingProvisioner
from backend.app.services.side_effects import meeting_id_for_slot

router = APIRouter(prefix="/bbb", tags=["Meetings"])


@router.get("/sessions/{slot_id}/join", response_class=RedirectResponse, status_code=status.HTTP_302_FOUND)
async def join_session(
    slot_id: int,
    current_user: dict = Depends(get_current_user_header_or_query),
    provisioner: Optional[BbbMeetingProvisioner] = Depends(get_meeting_provisioner),
    db: AsyncSession = Depends(get_db)
):
    """
    Redirect to the signed BBB join URL.

    Only the booked student, the slot's teacher or an admin may join.
    The teacher joins as moderator, everyone else as attendee.
    """
    slot = await SlotStore.get(db, slot_id)
    if slot is None:
        raise ResourceNotFoundError("Slot", slot_id)

    role = current_user["role"]
    if role == UserRole.STUDENT.value:
        booking = await BookingStore.find_active_for_slot(db, slot_id)
        if booking is None or booking.student_id != current_user["user_id"]:
            raise InsufficientPermissionsError("Only the booked student can join this session")
    elif role == UserRole.TEACHER.value and slot.owner_id != current_user["user_id"]:
        raise InsufficientPermissionsError("Only the slot's teacher can join this session")

    if provisioner is None:
        raise AppException(
            message="BBB is not configured on the backend",
            error_code="ERR_BBB_NOT_CONFIGURED",
            status_code=status.HTTP_501_NOT_IMPLEMENTED
        )

    user = await db.get(User, current_user["user_id"])
    join_url = provisioner.join_url(
        meeting_id_for_slot(slot.id),
        full_name=user.display_name or user.username,
        moderator=role == UserRole.TEACHER.value,
        logout_url=settings.cors_origin.rstrip("/"),
    )
    return RedirectResponse(join_url, status_code=status.HTTP_302_FOUND)
