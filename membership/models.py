from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field, ConfigDict

from utils import UTCDateTime


class PaymentMethod(str, Enum):
    WALLET = "wallet"
    ONLINE = "online"


class PurchaseMembershipRequest(BaseModel):
    payment_method: PaymentMethod = Field(..., description="wallet or online (already settled)")

    model_config = ConfigDict(json_schema_extra={"example": {"payment_method": "wallet"}})


class MembershipStatus(BaseModel):
    is_active: bool
    purchased_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None


class MembershipBenefits(BaseModel):
    has_free_delivery: bool = False
    has_late_fee_waiver: bool = False


class BenefitsRequest(BaseModel):
    booking_start: UTCDateTime
    booking_end: UTCDateTime


class LateReturnRequest(BaseModel):
    scheduled_return: UTCDateTime
    actual_return: UTCDateTime
    hourly_rate: Decimal = Field(..., ge=0)
    booking_duration_hours: float = Field(..., ge=0)


class LateReturnCalculation(BaseModel):
    is_late: bool
    late_minutes: int = 0
    late_charge: Decimal = Decimal("0.00")
    late_fee_waived: bool = False
    waived_minutes: int = 0
    chargeable_minutes: int = 0
