"""
Wallet ledger and referral rewards.

- Per-user scalar balance cached on the user record
- Append-only credit/debit log, credits may expire
- Active balance view that ignores expired credits
- Referral codes and time-boxed referral bonus credits
"""

from .models import (
    TransactionType,
    ReferralStatus,
    User,
    WalletTransaction,
    Referral,
    WalletBalance,
)
from .service import (
    WalletService,
    WalletServiceError,
    UserNotFoundError,
    InsufficientBalanceError,
    InvalidAmountError,
)
from .referral import (
    ReferralService,
    InvalidReferralCodeError,
    ReferralAlreadyUsedError,
)

__all__ = [
    "TransactionType",
    "ReferralStatus",
    "User",
    "WalletTransaction",
    "Referral",
    "WalletBalance",
    "WalletService",
    "WalletServiceError",
    "UserNotFoundError",
    "InsufficientBalanceError",
    "InvalidAmountError",
    "ReferralService",
    "InvalidReferralCodeError",
    "ReferralAlreadyUsedError",
]
