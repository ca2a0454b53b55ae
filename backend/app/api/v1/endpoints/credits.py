"""
Credit API Endpoints.

Balance and history are read straight from the ledger. Purchases are a stub
that appends a PURCHASE entry without calling a payment provider.
"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.db.session import get_db
from backend.app.core.config import settings
from backend.app.core.dependencies import get_current_user, get_booking_engine
from backend.app.domain.booking.booking_engine import BookingEngine
from backend.app.domain.booking.ledger import CreditLedger
from backend.app.schemas.credits import (
    BalanceResponse, LedgerEntryResponse, LedgerResponse, PurchaseRequest, PurchaseResponse,
)
from backend.app.services.audit import log_event, AuditAction

router = APIRouter(prefix="/credits", tags=["Credits"])


@router.get("/balance", response_model=BalanceResponse)
async def get_balance(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Current balance (sum of the ledger)."""
    return BalanceResponse(balance=await CreditLedger.balance(db, current_user["user_id"]))


@router.get("/ledger", response_model=LedgerResponse)
async def list_ledger(
    limit: int = Query(settings.ledger_window_size, ge=1, le=settings.ledger_window_size),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Most recent ledger entries, newest first."""
    entries = await CreditLedger.list_recent(db, current_user["user_id"], limit=limit)
    return LedgerResponse(entries=[LedgerEntryResponse.model_validate(e) for e in entries])


@router.post("/purchase", response_model=PurchaseResponse, status_code=status.HTTP_201_CREATED)
async def purchase_credits(
    purchase: PurchaseRequest,
    current_user: dict = Depends(get_current_user),
    engine: BookingEngine = Depends(get_booking_engine),
    db: AsyncSession = Depends(get_db)
):
    posted = await engine.purchase_credits(
        current_user["user_id"], purchase.credits, purchase.method, purchase.referral_code
    )

    await log_event(
        db=db,
        action=AuditAction.CREDITS_PURCHASED,
        actor_id=current_user["user_id"],
        actor_username=current_user["sub"],
        target_user_id=current_user["user_id"],
        metadata={
            "entry_id": posted.entry.id,
            "credits": purchase.credits,
            "method": purchase.method,
            "payment_ref": posted.entry.payment_ref
        }
    )

    return PurchaseResponse(method=purchase.method, balance=posted.balance)
