"""
Audit logging service for booking, ledger and security events.
"""

import logging
from typing import Optional, Dict, Any, List
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc
from backend.app.models.audit_log import AuditLog

logger = logging.getLogger(__name__)


class AuditAction:
    """Standardized audit action constants."""
    TOKEN_REVOKED = "TOKEN_REVOKED"

    # Bookings
    BOOKING_CREATED = "BOOKING_CREATED"
    BOOKING_CANCELLED = "BOOKING_CANCELLED"
    BOOKING_COMPLETED = "BOOKING_COMPLETED"
    BOOKING_NO_SHOW = "BOOKING_NO_SHOW"

    # Slots
    SLOT_CREATED = "SLOT_CREATED"
    SLOT_UPDATED = "SLOT_UPDATED"
    SLOT_CANCELLED = "SLOT_CANCELLED"

    # Credits
    CREDITS_PURCHASED = "CREDITS_PURCHASED"
    CREDITS_ADJUSTED = "CREDITS_ADJUSTED"


async def log_event(
    db: AsyncSession,
    action: str,
    actor_id: Optional[int] = None,
    actor_username: Optional[str] = None,
    target_user_id: Optional[int] = None,
    metadata: Optional[Dict[str, Any]] = None
) -> Optional[AuditLog]:
    """
    Record an event in the audit log and commit it.

    Called after the primary write has committed. A failed audit write is
    logged and swallowed: the caller's action already happened and must
    still be reported as such.

    Args:
        db: Request-scoped database session
        action: One of the AuditAction constants
        actor_id: ID of user performing the action
        actor_username: Username of actor
        target_user_id: ID of user affected (refunded student, adjusted user)
        metadata: Additional context as JSON

    Returns:
        The stored entry, or None if it could not be written
    """
    try:
        audit_log = AuditLog(
            actor_id=actor_id,
            actor_username=actor_username,
            action=action,
            target_user_id=target_user_id,
            meta_data=metadata
        )
        db.add(audit_log)
        await db.commit()
        await db.refresh(audit_log)
        return audit_log
    except Exception:
        logger.exception("Failed to write audit event %s for actor %s", action, actor_id)
        try:
            await db.rollback()
        except Exception as e:
            logger.warning("Rollback after failed audit write failed: %s", e)
        return None


async def get_audit_trail(
    db: AsyncSession,
    target_user_id: Optional[int] = None,
    action: Optional[str] = None,
    limit: int = 100
) -> List[AuditLog]:
    """Audit entries, most recent first, optionally filtered by target user and action."""
    query = select(AuditLog).order_by(desc(AuditLog.timestamp), desc(AuditLog.id))

    if target_user_id:
        query = query.where(AuditLog.target_user_id == target_user_id)

    if action:
        query = query.where(AuditLog.action == action)

    query = query.limit(limit)

    result = await db.execute(query)
    return list(result.scalars().all())
