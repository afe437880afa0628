from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID
from pydantic import BaseModel, Field, ConfigDict

from utils import UTCDateTime


class TransactionType(str, Enum):
    CREDIT = "credit"
    DEBIT = "debit"


class ReferralStatus(str, Enum):
    PENDING = "pending"
    CREDITED = "credited"


class User(BaseModel):
    id: UUID
    email: str
    name: str
    wallet_balance: Decimal = Decimal("0.00")
    has_membership: bool = False
    membership_purchased_at: Optional[datetime] = None
    membership_expires_at: Optional[datetime] = None
    referral_code: Optional[str] = None
    referred_by: Optional[UUID] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class WalletTransaction(BaseModel):
    id: UUID
    user_id: UUID
    type: TransactionType
    amount: Decimal
    balance_after: Decimal
    source: str
    description: str
    expires_at: Optional[datetime] = None
    referral_id: Optional[UUID] = None
    booking_id: Optional[UUID] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True, frozen=True)

    def is_expired(self, now: datetime) -> bool:
        return (
            self.type == TransactionType.CREDIT
            and self.expires_at is not None
            and self.expires_at < now
        )


class Referral(BaseModel):
    id: UUID
    referrer_id: UUID
    referee_id: UUID
    amount: Decimal
    status: ReferralStatus
    expires_at: datetime
    created_at: datetime
    credited_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class CreditRequest(BaseModel):
    amount: Decimal = Field(..., gt=0)
    source: str = Field(..., description="Provenance tag, e.g. 'referral'")
    description: str = ""
    expires_at: Optional[UTCDateTime] = None
    booking_id: Optional[UUID] = None


class ApplyReferralRequest(BaseModel):
    referral_code: str = Field(..., description="Code shared by the referrer")
    user_id: UUID = Field(..., description="Newly signed-up user")

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "referral_code": "DRV550E84",
            "user_id": "660e8400-e29b-41d4-a716-446655440001",
        }
    })


class WalletBalance(BaseModel):
    user_id: UUID
    currency: str
    balance: Decimal
    active_balance: Decimal
    ledger_balance: Decimal
    total_transactions: int
    last_transaction_at: Optional[datetime] = None


class TransactionHistoryResponse(BaseModel):
    user_id: UUID
    transactions: list[WalletTransaction]
    total_count: int
    balance: Decimal


class ReferralCodeResponse(BaseModel):
    user_id: UUID
    referral_code: str


class ReferralResponse(BaseModel):
    referral: Referral
    transaction: WalletTransaction
    message: str
