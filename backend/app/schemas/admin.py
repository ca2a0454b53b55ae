"""
Admin schemas.
"""

from pydantic import BaseModel
from datetime import datetime
from typing import Optional, List
from backend.app.models.dlq import DLQStatus


class AuditLogResponse(BaseModel):
    """Schema for audit log entry."""
    id: int
    actor_id: Optional[int]
    actor_username: Optional[str]
    action: str
    target_user_id: Optional[int]
    meta_data: Optional[dict]
    timestamp: datetime

    class Config:
        from_attributes = True


class AuditTrailResponse(BaseModel):
    """Schema for audit trail list."""
    logs: List[AuditLogResponse]
    total: int


class DeadLetterResponse(BaseModel):
    id: int
    task_name: str
    booking_id: Optional[int]
    error_message: str
    payload: Optional[dict]
    status: DLQStatus
    retry_count: int
    created_at: datetime

    class Config:
        from_attributes = True
