from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID
from pydantic import BaseModel, Field, ConfigDict

from membership.models import MembershipBenefits, LateReturnCalculation
from utils import UTCDateTime


class BookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    REFUNDED = "refunded"
    PARTIALLY_REFUNDED = "partially_refunded"
    FAILED = "failed"


class PickupOption(str, Enum):
    PARKING = "parking"
    DELIVERY = "delivery"


class Booking(BaseModel):
    id: UUID
    user_id: UUID
    vehicle_id: UUID
    start_date: datetime
    end_date: datetime
    pickup_option: PickupOption = PickupOption.PARKING
    total_amount: Decimal
    delivery_charge: Decimal = Decimal("0.00")
    status: BookingStatus = BookingStatus.PENDING
    payment_status: PaymentStatus = PaymentStatus.PENDING
    refund_amount: Optional[Decimal] = None
    cancelled_at: Optional[datetime] = None
    platform_commission: Optional[Decimal] = None
    owner_earnings: Optional[Decimal] = None
    late_charge: Optional[Decimal] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @property
    def duration_hours(self) -> float:
        return (self.end_date - self.start_date).total_seconds() / 3600


class QuoteRequest(BaseModel):
    user_id: UUID
    start_date: UTCDateTime
    end_date: UTCDateTime
    hourly_rate: Decimal = Field(..., ge=0)
    pickup_option: PickupOption = PickupOption.PARKING


class CreateBookingRequest(QuoteRequest):
    vehicle_id: UUID

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "user_id": "660e8400-e29b-41d4-a716-446655440001",
            "vehicle_id": "770e8400-e29b-41d4-a716-446655440002",
            "start_date": "2026-11-01T09:00:00Z",
            "end_date": "2026-11-02T09:00:00Z",
            "hourly_rate": 120.00,
            "pickup_option": "delivery",
        }
    })


class CompleteBookingRequest(BaseModel):
    actual_return: UTCDateTime
    hourly_rate: Decimal = Field(..., ge=0)


class BookingQuote(BaseModel):
    hours: int
    rental_amount: Decimal
    delivery_charge: Decimal
    delivery_fee_waived: bool
    total_amount: Decimal
    benefits: MembershipBenefits


class PaymentSplit(BaseModel):
    total_amount: Decimal
    platform_commission: Decimal
    owner_earnings: Decimal


class CancellationResult(BaseModel):
    booking: Booking
    refund_amount: Decimal
    refund_percentage: int


class CompletionResult(BaseModel):
    booking: Booking
    late_return: LateReturnCalculation


class PlatformEarnings(BaseModel):
    completed_bookings: int
    total_revenue: Decimal
    platform_earnings: Decimal
    owner_earnings: Decimal
