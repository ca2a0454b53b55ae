"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from backend.app.api.v1.endpoints import (
    auth, admin, bookings, credits, slots, teacher, notifications
)

router = APIRouter()

router.include_router(auth.router)

# Student-facing booking and credits
router.include_router(slots.router)
router.include_router(bookings.router)
router.include_router(credits.router)

# Slot owners
router.include_router(teacher.router)

router.include_router(admin.router)
router.include_router(notifications.router)
