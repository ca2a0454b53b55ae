"""
Credit Ledger Tests.

Balance is always the sum of entries; entries never change.
"""

import pytest
from sqlalchemy.exc import IntegrityError

from backend.app.domain.booking.ledger import CreditLedger
from backend.app.models.booking_enums import LedgerEntryKind


@pytest.mark.asyncio
async def test_balance_is_zero_without_entries(db_session, student):
    assert await CreditLedger.balance(db_session, student.id) == 0


@pytest.mark.asyncio
async def test_balance_is_sum_of_entries(db_session, student, other_student):
    await CreditLedger.append(db_session, student.id, LedgerEntryKind.PURCHASE, 50)
    await CreditLedger.append(db_session, student.id, LedgerEntryKind.SPEND, -12)
    await CreditLedger.append(db_session, student.id, LedgerEntryKind.REFUND, 12)
    await CreditLedger.append(db_session, student.id, LedgerEntryKind.ADMIN_ADJUST, -5)
    await CreditLedger.append(db_session, other_student.id, LedgerEntryKind.PURCHASE, 999)
    await db_session.commit()

    assert await CreditLedger.balance(db_session, student.id) == 45
    assert await CreditLedger.balance(db_session, other_student.id) == 999


@pytest.mark.asyncio
@pytest.mark.parametrize("kind,amount", [
    (LedgerEntryKind.SPEND, 10),
    (LedgerEntryKind.PURCHASE, -10),
    (LedgerEntryKind.REFUND, 0),
    (LedgerEntryKind.ADMIN_ADJUST, 0),
])
async def test_append_rejects_wrong_sign(db_session, student, kind, amount):
    with pytest.raises(ValueError):
        await CreditLedger.append(db_session, student.id, kind, amount)


@pytest.mark.asyncio
async def test_entries_are_immutable(db_session, student):
    entry = await CreditLedger.append(db_session, student.id, LedgerEntryKind.PURCHASE, 20)
    await db_session.commit()

    entry.amount = 2000
    with pytest.raises(ValueError, match="immutable"):
        await db_session.flush()
    await db_session.rollback()

    await db_session.delete(entry)
    with pytest.raises(ValueError, match="cannot be deleted"):
        await db_session.flush()


@pytest.mark.asyncio
async def test_sign_check_constraint_in_database(db_session, student):
    """The table itself refuses a positive SPEND written around the ledger API."""
    from backend.app.models.credit_ledger_entry import CreditLedgerEntry

    db_session.add(CreditLedgerEntry(user_id=student.id, kind=LedgerEntryKind.SPEND, amount=5))
    with pytest.raises(IntegrityError):
        await db_session.flush()


@pytest.mark.asyncio
async def test_list_recent_newest_first_with_limit(db_session, student):
    for amount in (1, 2, 3, 4):
        await CreditLedger.append(db_session, student.id, LedgerEntryKind.PURCHASE, amount)
    await db_session.commit()

    entries = await CreditLedger.list_recent(db_session, student.id, limit=3)

    # Same created_at second on SQLite; id breaks the tie
    assert [e.amount for e in entries] == [4, 3, 2]
