"""
Booking Engine (Domain Logic).

Orchestrates the atomic booking and cancellation workflows across the
Slot Store, the Booking Store and the Credit Ledger.

Every operation is one unit of work (see unit_of_work.run_unit_of_work):
either all of its writes commit or none do. Side effects (meeting
provisioning, notifications) run only after the commit and can never
undo it.
"""

import logging
import uuid
from dataclasses import replace
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backend.app.core.config import settings
from backend.app.domain.booking.booking_store import BookingStore
from backend.app.domain.booking.ledger import CreditLedger
from backend.app.domain.booking.results import (
    AdjustCreditsResult, BookingCancelled, BookingClosed, BookingCreated,
    CancelBookingResult, CancelSlotResult, CloseBookingResult, CreateBookingResult,
    CreditsPosted, InsufficientCredits, InvalidState, NotFound, SlotCancelled,
    SlotUnavailable,
)
from backend.app.domain.booking.slot_store import SlotStore
from backend.app.domain.booking.unit_of_work import run_unit_of_work
from backend.app.models.booking import Booking
from backend.app.models.booking_enums import BookingStatus, LedgerEntryKind, SlotStatus
from backend.app.models.user import User
from backend.app.services.side_effects import MeetingOutcome, SideEffectDispatcher

logger = logging.getLogger(__name__)

CANCELLED_BY_STUDENT = "cancelled_by_student"
SLOT_CANCELLED_BY_OWNER = "slot_cancelled_by_owner"


class BookingEngine:
    """
    Single writer of slot status and booking records.

    Args:
        session_factory: Produces one AsyncSession per unit-of-work attempt
        dispatcher: Post-commit side effects; None disables them
        max_attempts: Retry bound for transient storage conflicts
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        dispatcher: Optional[SideEffectDispatcher] = None,
        max_attempts: Optional[int] = None,
    ):
        self._session_factory = session_factory
        self._dispatcher = dispatcher
        self._max_attempts = max_attempts or settings.booking_max_attempts

    async def _run(self, work, name: str):
        return await run_unit_of_work(
            self._session_factory, work, max_attempts=self._max_attempts, name=name
        )

    # ------------------------------------------------------------------
    # CreateBooking
    # ------------------------------------------------------------------

    async def create_booking(self, student_id: int, slot_id: int) -> CreateBookingResult:
        """
        Book an open slot for a student and debit its price.

        Flow (one unit of work):
        1. Load slot, require OPEN
        2. Recompute balance from the ledger, require balance >= price
        3. Conditional OPEN -> BOOKED transition (the real race arbiter)
        4. Create booking with the slot's current price
        5. Append the debit entry (-price)
        6. Link booking to its debit entry
        Then, after commit, hand the booking to the side-effect dispatcher.
        """
        result = await self._run(
            lambda db: self._create_booking(db, student_id, slot_id), "create_booking"
        )
        if not isinstance(result, BookingCreated):
            return result

        logger.info(
            "Booking %s created: slot=%s student=%s price=%s",
            result.booking.id, slot_id, student_id, result.booking.price_credits
        )
        if self._dispatcher is None:
            return result

        try:
            outcome = await self._dispatcher.after_booking_created(result.booking, result.slot)
        except Exception as exc:
            # The booking is committed; side effects only report
            logger.exception("Post-commit dispatch failed for booking %s", result.booking.id)
            outcome = MeetingOutcome.failed(f"dispatch_error: {type(exc).__name__}")
        return replace(result, meeting_outcome=outcome)

    async def _create_booking(self, db: AsyncSession, student_id: int, slot_id: int) -> CreateBookingResult:
        slot = await SlotStore.get(db, slot_id)
        if slot is None:
            return SlotUnavailable(slot_id=slot_id, reason="not_found")
        if slot.status != SlotStatus.OPEN:
            return SlotUnavailable(slot_id=slot_id, reason="not_open")

        balance = await CreditLedger.balance(db, student_id)
        if balance < slot.price_credits:
            return InsufficientCredits(balance=balance, required=slot.price_credits)

        if not await SlotStore.try_transition(db, slot_id, SlotStatus.OPEN, SlotStatus.BOOKED):
            return SlotUnavailable(slot_id=slot_id, reason="lost_race")
        await db.refresh(slot)

        try:
            booking = await BookingStore.create(db, slot, student_id)
        except IntegrityError:
            # Active-booking index caught a writer the status gate missed
            return SlotUnavailable(slot_id=slot_id, reason="lost_race")

        entry = await CreditLedger.append(
            db,
            user_id=student_id,
            kind=LedgerEntryKind.SPEND,
            amount=-booking.price_credits,
            booking_id=booking.id,
            slot_id=slot.id,
        )
        await BookingStore.link_debit_entry(db, booking, entry)

        return BookingCreated(booking=booking, slot=slot, debit_entry=entry)

    # ------------------------------------------------------------------
    # CancelBooking
    # ------------------------------------------------------------------

    async def cancel_booking(self, student_id: int, booking_id: int) -> CancelBookingResult:
        """
        Cancel a student's active booking, re-open the slot and refund the price paid.

        No cancellation window or penalty applies.
        """
        result = await self._run(
            lambda db: self._cancel_booking(db, student_id, booking_id), "cancel_booking"
        )
        if isinstance(result, BookingCancelled):
            logger.info("Booking %s cancelled by student %s, refunded %s", booking_id, student_id, result.refund_entry.amount)
            if self._dispatcher is not None:
                await self._dispatcher.after_booking_cancelled(result.booking)
        return result

    async def _cancel_booking(self, db: AsyncSession, student_id: int, booking_id: int) -> CancelBookingResult:
        booking = await BookingStore.get(db, booking_id)
        if booking is None or booking.student_id != student_id:
            return NotFound(resource="Booking", resource_id=booking_id)
        if booking.status != BookingStatus.BOOKED:
            return InvalidState(resource="Booking", resource_id=booking_id, current_status=booking.status.value)

        return await self._release_booking(db, booking, CANCELLED_BY_STUDENT, SlotStatus.OPEN)

    async def _release_booking(
        self,
        db: AsyncSession,
        booking: Booking,
        reason: str,
        slot_status: SlotStatus,
    ) -> CancelBookingResult:
        """Cancel + refund + slot write, inside the caller's unit of work."""
        if not await BookingStore.try_close(db, booking.id, BookingStatus.CANCELLED, reason):
            await db.refresh(booking)
            return InvalidState(resource="Booking", resource_id=booking.id, current_status=booking.status.value)
        await db.refresh(booking)

        # The booking held the slot, so no other writer can own it
        await SlotStore.force_status(db, booking.slot_id, slot_status)

        refund = await CreditLedger.append(
            db,
            user_id=booking.student_id,
            kind=LedgerEntryKind.REFUND,
            amount=booking.price_credits,
            booking_id=booking.id,
            slot_id=booking.slot_id,
            meta={"reason": reason},
        )
        return BookingCancelled(booking=booking, refund_entry=refund)

    # ------------------------------------------------------------------
    # Owner hooks
    # ------------------------------------------------------------------

    async def cancel_slot(self, owner_id: int, slot_id: int) -> CancelSlotResult:
        """
        Withdraw a slot on behalf of its owner.

        An OPEN slot becomes CANCELLED. A BOOKED slot first has its active
        booking cancelled with a full refund of the price paid, then becomes
        CANCELLED (not re-opened).
        """
        result = await self._run(
            lambda db: self._cancel_slot(db, owner_id, slot_id), "cancel_slot"
        )
        if isinstance(result, SlotCancelled):
            logger.info(
                "Slot %s cancelled by owner %s (booking refunded: %s)",
                slot_id, owner_id, result.cancelled_booking.id if result.cancelled_booking else None
            )
            if self._dispatcher is not None:
                await self._dispatcher.after_slot_cancelled(result.slot, result.cancelled_booking)
        return result

    async def _cancel_slot(self, db: AsyncSession, owner_id: int, slot_id: int) -> CancelSlotResult:
        slot = await SlotStore.get(db, slot_id)
        if slot is None or slot.owner_id != owner_id:
            return NotFound(resource="Slot", resource_id=slot_id)
        if slot.status == SlotStatus.CANCELLED:
            return InvalidState(resource="Slot", resource_id=slot_id, current_status=slot.status.value)

        if slot.status == SlotStatus.OPEN:
            if await SlotStore.try_transition(db, slot_id, SlotStatus.OPEN, SlotStatus.CANCELLED):
                await db.refresh(slot)
                return SlotCancelled(slot=slot)
            # Booked in the meantime
            await db.refresh(slot)
            if slot.status != SlotStatus.BOOKED:
                return InvalidState(resource="Slot", resource_id=slot_id, current_status=slot.status.value)

        booking = await BookingStore.find_active_for_slot(db, slot_id)
        if booking is None:
            # Booking already completed or marked no-show; the lesson is consumed
            return InvalidState(resource="Slot", resource_id=slot_id, current_status=slot.status.value)

        released = await self._release_booking(db, booking, SLOT_CANCELLED_BY_OWNER, SlotStatus.CANCELLED)
        if not isinstance(released, BookingCancelled):
            return released
        await db.refresh(slot)
        return SlotCancelled(slot=slot, cancelled_booking=released.booking, refund_entry=released.refund_entry)

    async def complete_booking(self, owner_id: int, booking_id: int) -> CloseBookingResult:
        """Teacher marks a lesson as delivered. No ledger movement."""
        return await self._close_booking(owner_id, booking_id, BookingStatus.COMPLETED)

    async def mark_no_show(self, owner_id: int, booking_id: int) -> CloseBookingResult:
        """Teacher marks the student absent. The price paid is kept."""
        return await self._close_booking(owner_id, booking_id, BookingStatus.NO_SHOW)

    async def _close_booking(self, owner_id: int, booking_id: int, to_status: BookingStatus) -> CloseBookingResult:
        async def work(db: AsyncSession) -> CloseBookingResult:
            booking = await BookingStore.get(db, booking_id)
            if booking is None or booking.teacher_id != owner_id:
                return NotFound(resource="Booking", resource_id=booking_id)
            if booking.status != BookingStatus.BOOKED:
                return InvalidState(resource="Booking", resource_id=booking_id, current_status=booking.status.value)
            if not await BookingStore.try_close(db, booking_id, to_status):
                await db.refresh(booking)
                return InvalidState(resource="Booking", resource_id=booking_id, current_status=booking.status.value)
            await db.refresh(booking)
            return BookingClosed(booking=booking)

        result = await self._run(work, f"close_booking:{to_status.value}")
        if isinstance(result, BookingClosed):
            logger.info("Booking %s closed as %s by teacher %s", booking_id, to_status.value, owner_id)
            if to_status == BookingStatus.COMPLETED and self._dispatcher is not None:
                await self._dispatcher.after_booking_completed(result.booking)
        return result

    # ------------------------------------------------------------------
    # Ledger-only operations
    # ------------------------------------------------------------------

    async def purchase_credits(
        self,
        user_id: int,
        credits: int,
        method: str,
        referral_code: Optional[str] = None
    ) -> CreditsPosted:
        """Record a stub purchase (no payment provider) and return the new balance."""
        async def work(db: AsyncSession) -> CreditsPosted:
            entry = await CreditLedger.append(
                db,
                user_id=user_id,
                kind=LedgerEntryKind.PURCHASE,
                amount=credits,
                payment_ref=uuid.uuid4().hex,
                meta={"method": method, "referral_code": referral_code or ""},
            )
            return CreditsPosted(entry=entry, balance=await CreditLedger.balance(db, user_id))

        return await self._run(work, "purchase_credits")

    async def adjust_credits(self, user_id: int, amount: int, reason: str, admin_id: int) -> AdjustCreditsResult:
        """Admin correction. A negative adjustment may not take the balance below zero."""
        async def work(db: AsyncSession) -> AdjustCreditsResult:
            user = await db.get(User, user_id)
            if user is None:
                return NotFound(resource="User", resource_id=user_id)

            balance = await CreditLedger.balance(db, user_id)
            if balance + amount < 0:
                return InsufficientCredits(balance=balance, required=-amount)

            entry = await CreditLedger.append(
                db,
                user_id=user_id,
                kind=LedgerEntryKind.ADMIN_ADJUST,
                amount=amount,
                meta={"reason": reason, "admin_id": admin_id},
            )
            return CreditsPosted(entry=entry, balance=balance + amount)

        return await self._run(work, "adjust_credits")
