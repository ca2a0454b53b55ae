"""
Class Slot Schemas.
"""

from pydantic import BaseModel, Field, model_validator
from datetime import datetime
from typing import Literal, Optional, List
from backend.app.models.booking_enums import SlotStatus


class SlotCreate(BaseModel):
    """Schema for a teacher publishing a new slot."""
    start_at: datetime
    end_at: datetime
    price_credits: int = Field(..., gt=0, description="Price in credits")
    meeting_link: Optional[str] = Field(None, max_length=2000)

    @model_validator(mode="after")
    def check_window(self):
        if self.end_at <= self.start_at:
            raise ValueError("end_at must be after start_at")
        return self


class SlotUpdate(BaseModel):
    """
    Schema for updating a slot.

    Status can only be set to CANCELLED here; every other transition
    belongs to the booking engine.
    """
    price_credits: Optional[int] = Field(None, gt=0)
    meeting_link: Optional[str] = Field(None, max_length=2000)
    status: Optional[Literal["CANCELLED"]] = None

    @model_validator(mode="after")
    def check_single_intent(self):
        if self.status is not None and (self.price_credits is not None or self.meeting_link is not None):
            raise ValueError("Cancel a slot or edit its details, not both in one request")
        return self


class SlotResponse(BaseModel):
    id: int
    owner_id: int
    start_at: datetime
    end_at: datetime
    status: SlotStatus
    price_credits: int
    meeting_link: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class SlotListResponse(BaseModel):
    slots: List[SlotResponse]
    total: int
