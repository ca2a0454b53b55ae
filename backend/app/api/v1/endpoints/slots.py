"""
Public Slot Browsing.

Read-only; students use this to find open slots before booking.
"""

from datetime import datetime
from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.db.session import get_db
from backend.app.domain.booking.slot_store import SlotStore
from backend.app.models.booking_enums import SlotStatus
from backend.app.schemas.slot import SlotListResponse, SlotResponse

router = APIRouter(prefix="/slots", tags=["Slots"])


@router.get("", response_model=SlotListResponse)
async def list_slots(
    teacher_id: Optional[int] = Query(None, gt=0),
    status_filter: Optional[SlotStatus] = Query(SlotStatus.OPEN, alias="status"),
    start_from: Optional[datetime] = Query(None),
    start_to: Optional[datetime] = Query(None),
    db: AsyncSession = Depends(get_db)
):
    """List slots ordered by start time. Defaults to OPEN slots."""
    slots = await SlotStore.list_slots(
        db,
        owner_id=teacher_id,
        status=status_filter,
        start_from=start_from,
        start_to=start_to,
    )
    return SlotListResponse(
        slots=[SlotResponse.model_validate(s) for s in slots],
        total=len(slots)
    )
