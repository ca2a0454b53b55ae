"""
Authentication Pydantic schemas.

Users are provisioned outside this service; only read and logout shapes live here.
"""

from pydantic import BaseModel
from datetime import datetime
from typing import Optional
from backend.app.models.enums import UserRole


class UserResponse(BaseModel):
    """
    Schema for user information response.

    Used by GET /auth/me endpoint.
    """
    id: int
    email: str
    username: str
    display_name: Optional[str] = None
    role: UserRole
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True


class LogoutResponse(BaseModel):
    ok: bool = True
