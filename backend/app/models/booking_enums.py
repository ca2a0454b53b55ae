"""
Booking and credit ledger enumerations.
"""

import enum


class SlotStatus(str, enum.Enum):
    """Class slot status enumeration."""
    OPEN = "OPEN"  # Bookable
    BOOKED = "BOOKED"  # Held by exactly one active booking
    CANCELLED = "CANCELLED"  # Withdrawn by the owner


class BookingStatus(str, enum.Enum):
    """Booking status enumeration."""
    BOOKED = "BOOKED"  # Active, slot is held
    COMPLETED = "COMPLETED"  # Lesson delivered (terminal)
    CANCELLED = "CANCELLED"  # Refunded, slot released (terminal)
    NO_SHOW = "NO_SHOW"  # Student did not attend (terminal)


class LedgerEntryKind(str, enum.Enum):
    """Credit ledger entry kind enumeration."""
    PURCHASE = "PURCHASE"  # Credits bought (positive)
    SPEND = "SPEND"  # Booking debit (negative)
    REFUND = "REFUND"  # Cancellation credit (positive)
    ADMIN_ADJUST = "ADMIN_ADJUST"  # Manual correction (either sign)
