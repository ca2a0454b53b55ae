"""
Credit Ledger Entry database model.

Immutable signed credit movements. A user's balance is the sum of their entries.
"""

from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Enum, JSON, CheckConstraint, Index, event
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.models.booking_enums import LedgerEntryKind


class CreditLedgerEntry(Base):
    """
    Credit Ledger Entry model.

    Append-only: NO updates or deletions allowed, and no balance column
    exists anywhere. The sign of `amount` is tied to `kind`.
    """
    __tablename__ = "credit_ledger_entries"
    __mapper_args__ = {"eager_defaults": True}

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    user_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)
    kind = Column(Enum(LedgerEntryKind), nullable=False, index=True)
    amount = Column(Integer, nullable=False)

    # Correlation
    booking_id = Column(Integer, nullable=True, index=True)  # bookings.debit_entry_id points here
    slot_id = Column(Integer, ForeignKey('class_slots.id'), nullable=True)
    payment_ref = Column(String(64), nullable=True)

    meta = Column(JSON, nullable=True)

    # Timestamps (Immutable - no updated_at)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        CheckConstraint(
            "(kind = 'SPEND' AND amount < 0) "
            "OR (kind IN ('PURCHASE', 'REFUND') AND amount > 0) "
            "OR (kind = 'ADMIN_ADJUST' AND amount <> 0)",
            name="ck_credit_ledger_entries_sign",
        ),
        Index('ix_credit_ledger_entries_user_created', 'user_id', 'created_at'),
    )

    def __repr__(self):
        return f"<CreditLedgerEntry(id={self.id}, kind='{self.kind.value}', amount={self.amount})>"


@event.listens_for(CreditLedgerEntry, "before_update")
def _reject_update(mapper, connection, target):
    raise ValueError(f"Ledger entry {target.id} is immutable")


@event.listens_for(CreditLedgerEntry, "before_delete")
def _reject_delete(mapper, connection, target):
    raise ValueError(f"Ledger entry {target.id} cannot be deleted")
