"""
Admin API Endpoints.

Credit corrections plus read-only views of the audit trail and of failed
post-commit side effects.
"""

from typing import List, Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc
from backend.app.db.session import get_db
from backend.app.core.dependencies import get_booking_engine
from backend.app.core.exceptions import raise_for_failure
from backend.app.core.guards import require_role
from backend.app.domain.booking.booking_engine import BookingEngine
from backend.app.models.dlq import DeadLetterQueue, DLQStatus
from backend.app.models.enums import UserRole
from backend.app.schemas.admin import AuditLogResponse, AuditTrailResponse, DeadLetterResponse
from backend.app.schemas.credits import CreditAdjustmentRequest, CreditAdjustmentResponse
from backend.app.services.audit import log_event, AuditAction, get_audit_trail

router = APIRouter(prefix="/admin", tags=["Admin"])

admin_only = require_role([UserRole.ADMIN])


@router.post("/users/{user_id}/credits", response_model=CreditAdjustmentResponse)
async def adjust_user_credits(
    user_id: int,
    adjustment: CreditAdjustmentRequest,
    admin: dict = Depends(admin_only),
    engine: BookingEngine = Depends(get_booking_engine),
    db: AsyncSession = Depends(get_db)
):
    """
    Post a signed ADMIN_ADJUST entry (admin-only).

    A negative adjustment that would take the balance below zero answers 402.
    """
    posted = raise_for_failure(
        await engine.adjust_credits(user_id, adjustment.amount, adjustment.reason, admin["user_id"])
    )

    await log_event(
        db=db,
        action=AuditAction.CREDITS_ADJUSTED,
        actor_id=admin["user_id"],
        actor_username=admin["sub"],
        target_user_id=user_id,
        metadata={
            "entry_id": posted.entry.id,
            "amount": adjustment.amount,
            "reason": adjustment.reason,
            "balance": posted.balance
        }
    )

    return CreditAdjustmentResponse(balance=posted.balance)


@router.get("/audit-logs", response_model=AuditTrailResponse)
async def get_audit_logs(
    user_id: int = Query(None, description="Filter by target user ID"),
    action: str = Query(None, description="Filter by action type"),
    limit: int = Query(100, ge=1, le=500, description="Maximum records to return"),
    admin: dict = Depends(admin_only),
    db: AsyncSession = Depends(get_db)
):
    logs = await get_audit_trail(db=db, target_user_id=user_id, action=action, limit=limit)

    return AuditTrailResponse(
        logs=[AuditLogResponse.model_validate(log) for log in logs],
        total=len(logs)
    )


@router.get("/dlq", response_model=List[DeadLetterResponse])
async def list_dead_letters(
    status_filter: Optional[DLQStatus] = Query(DLQStatus.FAILED, alias="status"),
    booking_id: Optional[int] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    admin: dict = Depends(admin_only),
    db: AsyncSession = Depends(get_db)
):
    """Failed meeting provisioning / join-link writes, newest first."""
    query = select(DeadLetterQueue)
    if status_filter:
        query = query.where(DeadLetterQueue.status == status_filter)
    if booking_id is not None:
        query = query.where(DeadLetterQueue.booking_id == booking_id)
    query = query.order_by(desc(DeadLetterQueue.created_at), desc(DeadLetterQueue.id)).limit(limit)
    result = await db.execute(query)
    return [DeadLetterResponse.model_validate(d) for d in result.scalars().all()]
