# config.py
import os
from decimal import Decimal

from dotenv import load_dotenv

load_dotenv()


def _getenv(key: str, default: str | None = None) -> str | None:
    val = os.getenv(key)
    return val if (val is not None and val != "") else default


def _as_int(value: str | None, default: int) -> int:
    if value is None or value == "":
        return default
    return int(value)


def _as_decimal(value: str | None, default: str) -> Decimal:
    return Decimal(value if value not in (None, "") else default)


CURRENCY = _getenv("CURRENCY", "INR")
LOG_LEVEL = _getenv("LOG_LEVEL", "INFO")

# Referrals
REFERRAL_CODE_PREFIX = _getenv("REFERRAL_CODE_PREFIX", "DRV")
REFERRAL_BONUS_AMOUNT = _as_decimal(_getenv("REFERRAL_BONUS_AMOUNT"), "50")
REFERRAL_EXPIRY_DAYS = _as_int(_getenv("REFERRAL_EXPIRY_DAYS"), 90)

# Membership
MEMBERSHIP_PRICE = _as_decimal(_getenv("MEMBERSHIP_PRICE"), "999")
MEMBERSHIP_DURATION_DAYS = _as_int(_getenv("MEMBERSHIP_DURATION_DAYS"), 365)
FREE_DELIVERY_MIN_HOURS = 24
LATE_FEE_WAIVER_MAX_HOURS = 8
LATE_FEE_GRACE_MINUTES = 30
LATE_FEE_MULTIPLIER = Decimal("2")

# Bookings
DELIVERY_CHARGE = _as_decimal(_getenv("DELIVERY_CHARGE"), "200")
PLATFORM_COMMISSION_RATE = Decimal("0.30")

# Cancellation tiers: hours before pickup -> refund percent
REFUND_FULL_MIN_HOURS = 72
REFUND_PARTIAL_MIN_HOURS = 24
REFUND_FULL_PERCENT = 98  # 100% minus 2% processing fee
REFUND_PARTIAL_PERCENT = 80
REFUND_LATE_PERCENT = 60

TRANSACTION_HISTORY_LIMIT = _as_int(_getenv("TRANSACTION_HISTORY_LIMIT"), 50)
