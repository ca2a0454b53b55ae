"""
Credit Schemas.

Balance is derived from the ledger and is only ever returned, never accepted.
"""

from pydantic import BaseModel, Field, field_validator
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional
from backend.app.models.booking_enums import LedgerEntryKind


class BalanceResponse(BaseModel):
    balance: int


class LedgerEntryResponse(BaseModel):
    id: int
    kind: LedgerEntryKind
    amount: int
    booking_id: Optional[int] = None
    slot_id: Optional[int] = None
    payment_ref: Optional[str] = None
    meta: Optional[Dict[str, Any]] = None
    created_at: datetime

    class Config:
        from_attributes = True


class LedgerResponse(BaseModel):
    entries: List[LedgerEntryResponse]


class PurchaseRequest(BaseModel):
    """Stub purchase: no payment provider is called."""
    credits: int = Field(..., ge=1, le=500)
    method: Literal["mock_card", "mock_paypal"] = "mock_card"
    referral_code: Optional[str] = Field(None, max_length=80)


class PurchaseResponse(BaseModel):
    ok: bool = True
    method: str
    balance: int


class CreditAdjustmentRequest(BaseModel):
    amount: int = Field(..., description="Signed credit delta, never zero")
    reason: str = Field(..., min_length=1, max_length=500)

    @field_validator("amount")
    @classmethod
    def amount_not_zero(cls, v: int) -> int:
        if v == 0:
            raise ValueError("amount must not be zero")
        return v


class CreditAdjustmentResponse(BaseModel):
    ok: bool = True
    balance: int
