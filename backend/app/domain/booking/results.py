"""
Booking engine result variants.

Every engine operation returns exactly one of a small closed set of
variants. Business-rule failures are values, not exceptions, so they never
cross the unit-of-work boundary; the API layer turns them into HTTP errors.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Union

from fastapi import status

from backend.app.models.booking import Booking
from backend.app.models.class_slot import ClassSlot
from backend.app.models.credit_ledger_entry import CreditLedgerEntry


# --- Failures ---

class BookingFailure:
    """Base for expected business-rule failures."""
    error_code: str = "ERR_BOOKING"
    status_code: int = status.HTTP_409_CONFLICT

    @property
    def message(self) -> str:
        raise NotImplementedError

    def details(self) -> Dict[str, Any]:
        return {}


@dataclass(frozen=True)
class SlotUnavailable(BookingFailure):
    slot_id: int
    reason: str  # not_found | not_open | lost_race

    error_code = "ERR_BOOKING_SLOT_UNAVAILABLE"
    status_code = status.HTTP_409_CONFLICT

    @property
    def message(self) -> str:
        if self.reason == "lost_race":
            return "Slot already booked"
        return "Slot is not available"

    def details(self) -> Dict[str, Any]:
        return {"slot_id": self.slot_id, "reason": self.reason}


@dataclass(frozen=True)
class InsufficientCredits(BookingFailure):
    balance: int
    required: int

    error_code = "ERR_BOOKING_INSUFFICIENT_CREDITS"
    status_code = status.HTTP_402_PAYMENT_REQUIRED

    @property
    def shortfall(self) -> int:
        return self.required - self.balance

    @property
    def message(self) -> str:
        return "Not enough credits"

    def details(self) -> Dict[str, Any]:
        return {"balance": self.balance, "required": self.required, "shortfall": self.shortfall}


@dataclass(frozen=True)
class InvalidState(BookingFailure):
    resource: str
    resource_id: int
    current_status: str

    error_code = "ERR_BOOKING_INVALID_STATE"
    status_code = status.HTTP_409_CONFLICT

    @property
    def message(self) -> str:
        return f"{self.resource} {self.resource_id} cannot change from status {self.current_status}"

    def details(self) -> Dict[str, Any]:
        return {"resource": self.resource, "id": self.resource_id, "status": self.current_status}


@dataclass(frozen=True)
class NotFound(BookingFailure):
    resource: str
    resource_id: int

    error_code = "ERR_NOT_FOUND_001"
    status_code = status.HTTP_404_NOT_FOUND

    @property
    def message(self) -> str:
        return f"{self.resource} with ID {self.resource_id} not found"

    def details(self) -> Dict[str, Any]:
        return {"resource": self.resource, "id": self.resource_id}


# --- Successes ---

@dataclass(frozen=True)
class BookingCreated:
    booking: Booking
    slot: ClassSlot
    debit_entry: CreditLedgerEntry
    # Filled in after commit by the side-effect dispatcher
    meeting_outcome: Optional[Any] = field(default=None, compare=False)


@dataclass(frozen=True)
class BookingCancelled:
    booking: Booking
    refund_entry: CreditLedgerEntry


@dataclass(frozen=True)
class BookingClosed:
    """Booking moved to a terminal state without ledger movement (COMPLETED / NO_SHOW)."""
    booking: Booking


@dataclass(frozen=True)
class SlotCancelled:
    slot: ClassSlot
    cancelled_booking: Optional[Booking] = None
    refund_entry: Optional[CreditLedgerEntry] = None


@dataclass(frozen=True)
class CreditsPosted:
    entry: CreditLedgerEntry
    balance: int


CreateBookingResult = Union[BookingCreated, SlotUnavailable, InsufficientCredits, NotFound]
CancelBookingResult = Union[BookingCancelled, NotFound, InvalidState]
CancelSlotResult = Union[SlotCancelled, NotFound, InvalidState]
CloseBookingResult = Union[BookingClosed, NotFound, InvalidState]
AdjustCreditsResult = Union[CreditsPosted, NotFound, InsufficientCredits]
