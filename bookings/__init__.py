"""
Booking lifecycle and settlement.

- Quotes with membership delivery waivers
- Vehicle availability over confirmed/active bookings
- Tiered cancellation refunds (60% / 80% / 98%)
- 30/70 platform commission and owner earnings split
"""

from .models import (
    BookingStatus,
    PaymentStatus,
    PickupOption,
    Booking,
    BookingQuote,
    PaymentSplit,
    CancellationResult,
)
from .service import (
    BookingService,
    BookingServiceError,
    BookingNotFoundError,
    AlreadyCancelledError,
    BookingNotCancellableError,
    InvalidStateTransitionError,
    VehicleUnavailableError,
    compute_payment_split,
    refund_percentage,
)

__all__ = [
    "BookingStatus",
    "PaymentStatus",
    "PickupOption",
    "Booking",
    "BookingQuote",
    "PaymentSplit",
    "CancellationResult",
    "BookingService",
    "BookingServiceError",
    "BookingNotFoundError",
    "AlreadyCancelledError",
    "BookingNotCancellableError",
    "InvalidStateTransitionError",
    "VehicleUnavailableError",
    "compute_payment_split",
    "refund_percentage",
]
