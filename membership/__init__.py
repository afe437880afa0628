"""
Membership purchase and booking benefits.
"""

from .models import (
    PaymentMethod,
    MembershipStatus,
    MembershipBenefits,
    LateReturnCalculation,
)
from .service import MembershipService, MembershipServiceError, AlreadyMemberError

__all__ = [
    "PaymentMethod",
    "MembershipStatus",
    "MembershipBenefits",
    "LateReturnCalculation",
    "MembershipService",
    "MembershipServiceError",
    "AlreadyMemberError",
]
