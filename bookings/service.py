import logging
import math
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

import config
from membership.service import MembershipService
from storage import StoragePort
from utils import money, utcnow
from wallet.service import UserNotFoundError

from .models import (
    Booking,
    BookingStatus,
    PaymentStatus,
    PickupOption,
    QuoteRequest,
    CreateBookingRequest,
    BookingQuote,
    PaymentSplit,
    CancellationResult,
    CompletionResult,
    PlatformEarnings,
)

logger = logging.getLogger(__name__)


class BookingServiceError(Exception):
    pass


class BookingNotFoundError(BookingServiceError):
    pass


class AlreadyCancelledError(BookingServiceError):
    pass


class BookingNotCancellableError(BookingServiceError):
    pass


class InvalidStateTransitionError(BookingServiceError):
    pass


class VehicleUnavailableError(BookingServiceError):
    pass


# statuses that hold the vehicle for their date window
_BLOCKING_STATUSES = (BookingStatus.CONFIRMED, BookingStatus.ACTIVE)


def refund_percentage(hours_until_start: float) -> int:
    """Refund tier for a cancellation; each tier includes its lower bound."""
    if hours_until_start >= config.REFUND_FULL_MIN_HOURS:
        return config.REFUND_FULL_PERCENT
    if hours_until_start >= config.REFUND_PARTIAL_MIN_HOURS:
        return config.REFUND_PARTIAL_PERCENT
    return config.REFUND_LATE_PERCENT


def compute_payment_split(total_amount) -> PaymentSplit:
    # earnings are derived by subtraction so the two shares always sum to the total
    total = money(total_amount)
    if total < 0:
        raise BookingServiceError("Total amount cannot be negative")
    commission = money(total * config.PLATFORM_COMMISSION_RATE)
    return PaymentSplit(
        total_amount=total,
        platform_commission=commission,
        owner_earnings=total - commission,
    )


class BookingService:
    def __init__(self, storage: StoragePort, membership: Optional[MembershipService] = None):
        self.storage = storage
        self.membership = membership or MembershipService(storage)

    def get_booking(self, booking_id: UUID) -> Booking:
        return Booking(**self._get_booking_record(booking_id))

    def quote_booking(self, request: QuoteRequest, now: Optional[datetime] = None) -> BookingQuote:
        self._validate_window(request.start_date, request.end_date)

        hours = math.ceil((request.end_date - request.start_date) / timedelta(hours=1))
        rental_amount = money(Decimal(hours) * Decimal(str(request.hourly_rate)))
        benefits = self.membership.calculate_membership_benefits(
            request.user_id, request.start_date, request.end_date, now=now
        )

        delivery_charge = Decimal("0.00")
        waived = False
        if request.pickup_option == PickupOption.DELIVERY:
            if benefits.has_free_delivery:
                waived = True
            else:
                delivery_charge = money(config.DELIVERY_CHARGE)

        return BookingQuote(
            hours=hours,
            rental_amount=rental_amount,
            delivery_charge=delivery_charge,
            delivery_fee_waived=waived,
            total_amount=rental_amount + delivery_charge,
            benefits=benefits,
        )

    def check_vehicle_availability(self, vehicle_id: UUID, start_date: datetime, end_date: datetime) -> bool:
        for booking in self.storage.query_bookings(vehicle_id=vehicle_id):
            if (
                booking["status"] in _BLOCKING_STATUSES
                and booking["end_date"] >= start_date
                and booking["start_date"] <= end_date
            ):
                return False
        return True

    def create_booking(self, request: CreateBookingRequest, now: Optional[datetime] = None) -> Booking:
        now = now or utcnow()
        with self.storage.atomic():
            if not self.storage.get_user(request.user_id):
                raise UserNotFoundError(f"User {request.user_id} not found")
            if not self.check_vehicle_availability(request.vehicle_id, request.start_date, request.end_date):
                raise VehicleUnavailableError("Vehicle is not available for selected dates")

            quote = self.quote_booking(request, now=now)
            booking = self.storage.add_booking({
                "id": uuid4(),
                "user_id": request.user_id,
                "vehicle_id": request.vehicle_id,
                "start_date": request.start_date,
                "end_date": request.end_date,
                "pickup_option": request.pickup_option,
                "total_amount": quote.total_amount,
                "delivery_charge": quote.delivery_charge,
                "status": BookingStatus.PENDING,
                "payment_status": PaymentStatus.PENDING,
                "refund_amount": None,
                "cancelled_at": None,
                "platform_commission": None,
                "owner_earnings": None,
                "late_charge": None,
                "created_at": now,
            })

        logger.info("Created booking %s for user %s, total %s", booking["id"], request.user_id, quote.total_amount)
        return Booking(**booking)

    def confirm_payment(self, booking_id: UUID) -> Booking:
        with self.storage.atomic():
            booking = self._get_booking_record(booking_id)
            self._require_status(booking, BookingStatus.PENDING, "confirm")
            split = compute_payment_split(booking["total_amount"])
            booking = self.storage.update_booking_fields(booking_id, {
                "status": BookingStatus.CONFIRMED,
                "payment_status": PaymentStatus.PAID,
                "platform_commission": split.platform_commission,
                "owner_earnings": split.owner_earnings,
            })

        logger.info(
            "Booking %s paid: commission %s, owner %s",
            booking_id, split.platform_commission, split.owner_earnings,
        )
        return Booking(**booking)

    def fail_payment(self, booking_id: UUID) -> Booking:
        with self.storage.atomic():
            booking = self._get_booking_record(booking_id)
            self._require_status(booking, BookingStatus.PENDING, "fail payment for")
            booking = self.storage.update_booking_fields(booking_id, {"payment_status": PaymentStatus.FAILED})
        logger.warning("Payment failed for booking %s", booking_id)
        return Booking(**booking)

    def start_rental(self, booking_id: UUID) -> Booking:
        with self.storage.atomic():
            booking = self._get_booking_record(booking_id)
            self._require_status(booking, BookingStatus.CONFIRMED, "start")
            booking = self.storage.update_booking_fields(booking_id, {"status": BookingStatus.ACTIVE})
        return Booking(**booking)

    def complete_booking(
        self,
        booking_id: UUID,
        actual_return: datetime,
        hourly_rate,
        now: Optional[datetime] = None,
    ) -> CompletionResult:
        with self.storage.atomic():
            record = self._get_booking_record(booking_id)
            self._require_status(record, BookingStatus.ACTIVE, "complete")
            booking = Booking(**record)

            late_return = self.membership.calculate_late_return_charge(
                booking.user_id,
                booking.end_date,
                actual_return,
                hourly_rate,
                booking.duration_hours,
                now=now,
            )
            fields = {"status": BookingStatus.COMPLETED, "late_charge": late_return.late_charge}
            if booking.platform_commission is None:
                split = compute_payment_split(booking.total_amount)
                fields["platform_commission"] = split.platform_commission
                fields["owner_earnings"] = split.owner_earnings
            record = self.storage.update_booking_fields(booking_id, fields)

        logger.info("Completed booking %s, late charge %s", booking_id, late_return.late_charge)
        return CompletionResult(booking=Booking(**record), late_return=late_return)

    def cancel_booking(self, booking_id: UUID, now: Optional[datetime] = None) -> CancellationResult:
        """Cancel a booking and compute its tiered refund.

        A booking can be cancelled once; later attempts raise
        ``AlreadyCancelledError`` and leave the first result in place.
        """
        now = now or utcnow()

        with self.storage.atomic():
            booking = self._get_booking_record(booking_id)
            if booking["status"] == BookingStatus.CANCELLED:
                raise AlreadyCancelledError(f"Booking {booking_id} is already cancelled")
            if booking["status"] == BookingStatus.COMPLETED:
                raise BookingNotCancellableError(f"Booking {booking_id} is already completed")

            hours_until_start = (booking["start_date"] - now) / timedelta(hours=1)
            percentage = refund_percentage(hours_until_start)
            refund_amount = money(money(booking["total_amount"]) * percentage / 100)

            booking = self.storage.update_booking_fields(booking_id, {
                "status": BookingStatus.CANCELLED,
                "payment_status": PaymentStatus.PARTIALLY_REFUNDED,
                "refund_amount": refund_amount,
                "cancelled_at": now,
            })

        logger.info("Cancelled booking %s, refund %s (%s%%)", booking_id, refund_amount, percentage)
        return CancellationResult(
            booking=Booking(**booking),
            refund_amount=refund_amount,
            refund_percentage=percentage,
        )

    def get_platform_earnings(self) -> PlatformEarnings:
        completed = [
            b for b in self.storage.query_bookings()
            if b["status"] == BookingStatus.COMPLETED
        ]
        return PlatformEarnings(
            completed_bookings=len(completed),
            total_revenue=money(sum((money(b["total_amount"]) for b in completed), Decimal("0"))),
            platform_earnings=money(sum((money(b["platform_commission"]) for b in completed), Decimal("0"))),
            owner_earnings=money(sum((money(b["owner_earnings"]) for b in completed), Decimal("0"))),
        )

    def _get_booking_record(self, booking_id: UUID) -> dict:
        booking = self.storage.get_booking(booking_id)
        if not booking:
            raise BookingNotFoundError(f"Booking {booking_id} not found")
        return booking

    @staticmethod
    def _require_status(booking: dict, expected: BookingStatus, action: str) -> None:
        if booking["status"] != expected:
            raise InvalidStateTransitionError(
                f"Cannot {action} booking in {BookingStatus(booking['status']).value} state"
            )

    @staticmethod
    def _validate_window(start_date: datetime, end_date: datetime) -> None:
        if end_date <= start_date:
            raise BookingServiceError("End date must be after start date")
