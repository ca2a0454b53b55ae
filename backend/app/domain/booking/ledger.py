"""
Credit Ledger (Domain Logic).

Append-only store of signed credit movements. The balance is always
derived by summing entries; there is no stored balance to drift.
"""

from typing import Any, Dict, List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, desc

from backend.app.models.credit_ledger_entry import CreditLedgerEntry
from backend.app.models.booking_enums import LedgerEntryKind


class CreditLedger:

    @staticmethod
    async def balance(db: AsyncSession, user_id: int) -> int:
        """
        Sum of all entries for the user (0 if none).

        Only trustworthy for a debit decision when read inside the same
        unit of work that writes the debit.
        """
        result = await db.execute(
            select(func.coalesce(func.sum(CreditLedgerEntry.amount), 0)).where(
                CreditLedgerEntry.user_id == user_id
            )
        )
        return int(result.scalar_one())

    @staticmethod
    async def append(
        db: AsyncSession,
        user_id: int,
        kind: LedgerEntryKind,
        amount: int,
        booking_id: Optional[int] = None,
        slot_id: Optional[int] = None,
        payment_ref: Optional[str] = None,
        meta: Optional[Dict[str, Any]] = None,
    ) -> CreditLedgerEntry:
        """
        Insert an immutable entry in the caller's unit of work.

        Never checks the balance; that is the caller's job.

        Raises:
            ValueError: If the sign of `amount` does not match `kind`
        """
        if kind == LedgerEntryKind.SPEND and amount >= 0:
            raise ValueError("SPEND entries must be negative")
        if kind in (LedgerEntryKind.PURCHASE, LedgerEntryKind.REFUND) and amount <= 0:
            raise ValueError(f"{kind.value} entries must be positive")
        if amount == 0:
            raise ValueError("Ledger entries must move credits")

        entry = CreditLedgerEntry(
            user_id=user_id,
            kind=kind,
            amount=amount,
            booking_id=booking_id,
            slot_id=slot_id,
            payment_ref=payment_ref,
            meta=meta,
        )
        db.add(entry)
        await db.flush()  # Assigns entry.id for correlation
        return entry

    @staticmethod
    async def list_recent(db: AsyncSession, user_id: int, limit: int = 200) -> List[CreditLedgerEntry]:
        """Most recent entries first (fixed window, no pagination)."""
        result = await db.execute(
            select(CreditLedgerEntry)
            .where(CreditLedgerEntry.user_id == user_id)
            .order_by(desc(CreditLedgerEntry.created_at), desc(CreditLedgerEntry.id))
            .limit(limit)
        )
        return list(result.scalars().all())
