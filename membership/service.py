import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional, Union
from uuid import UUID

import config
from storage import StoragePort
from utils import as_utc, money, utcnow
from wallet.service import WalletService, UserNotFoundError, InsufficientBalanceError

from .models import (
    PaymentMethod,
    MembershipStatus,
    MembershipBenefits,
    LateReturnCalculation,
)

logger = logging.getLogger(__name__)


class MembershipServiceError(Exception):
    pass


class AlreadyMemberError(MembershipServiceError):
    pass


class MembershipService:
    def __init__(self, storage: StoragePort, wallet: Optional[WalletService] = None):
        self.storage = storage
        self.wallet = wallet or WalletService(storage)

    def purchase_membership(
        self,
        user_id: UUID,
        payment_method: Union[PaymentMethod, str],
        now: Optional[datetime] = None,
    ) -> MembershipStatus:
        """Buy a fixed-length membership.

        ``online`` purchases are trusted to be captured by the gateway before
        this call; only ``wallet`` purchases move money here. An active
        membership is never extended or stacked.
        """
        payment_method = PaymentMethod(payment_method)
        now = now or utcnow()
        price = money(config.MEMBERSHIP_PRICE)

        with self.storage.atomic():
            user = self.storage.get_user(user_id)
            if not user:
                raise UserNotFoundError(f"User {user_id} not found")
            if self._is_active(user, now):
                raise AlreadyMemberError("You already have an active membership")

            if payment_method == PaymentMethod.WALLET:
                available = self.wallet.get_active_balance(user_id, now=now)
                if available < price:
                    logger.warning(
                        "Membership purchase rejected for user %s: balance %s < %s",
                        user_id, available, price,
                    )
                    raise InsufficientBalanceError("Insufficient wallet balance")
                self.wallet.debit(
                    user_id, price, "membership_purchase", "Premium Membership", now=now
                )

            expires_at = now + timedelta(days=config.MEMBERSHIP_DURATION_DAYS)
            self.storage.update_user_fields(user_id, {
                "has_membership": True,
                "membership_purchased_at": now,
                "membership_expires_at": expires_at,
            })

        logger.info("User %s bought membership via %s until %s", user_id, payment_method.value, expires_at)
        return MembershipStatus(is_active=True, purchased_at=now, expires_at=expires_at)

    def has_active_membership(self, user_id: UUID, now: Optional[datetime] = None) -> bool:
        user = self.storage.get_user(user_id)
        if not user:
            return False
        return self._is_active(user, now or utcnow())

    def get_membership_status(self, user_id: UUID, now: Optional[datetime] = None) -> MembershipStatus:
        user = self.storage.get_user(user_id)
        if not user:
            raise UserNotFoundError(f"User {user_id} not found")
        return MembershipStatus(
            is_active=self._is_active(user, now or utcnow()),
            purchased_at=user["membership_purchased_at"],
            expires_at=user["membership_expires_at"],
        )

    def calculate_membership_benefits(
        self,
        user_id: UUID,
        booking_start: datetime,
        booking_end: datetime,
        now: Optional[datetime] = None,
    ) -> MembershipBenefits:
        if not self.has_active_membership(user_id, now=now):
            return MembershipBenefits()

        duration_hours = (booking_end - booking_start) / timedelta(hours=1)
        return MembershipBenefits(
            has_free_delivery=duration_hours >= config.FREE_DELIVERY_MIN_HOURS,
            has_late_fee_waiver=duration_hours < config.LATE_FEE_WAIVER_MAX_HOURS,
        )

    def calculate_late_return_charge(
        self,
        user_id: UUID,
        scheduled_return: datetime,
        actual_return: datetime,
        hourly_rate,
        booking_duration_hours: float,
        now: Optional[datetime] = None,
    ) -> LateReturnCalculation:
        scheduled_return, actual_return = as_utc(scheduled_return), as_utc(actual_return)
        if actual_return <= scheduled_return:
            return LateReturnCalculation(is_late=False)

        late_minutes = (actual_return - scheduled_return) // timedelta(minutes=1)
        has_waiver = (
            booking_duration_hours < config.LATE_FEE_WAIVER_MAX_HOURS
            and self.has_active_membership(user_id, now=now)
        )
        grace = config.LATE_FEE_GRACE_MINUTES

        if has_waiver and late_minutes <= grace:
            return LateReturnCalculation(
                is_late=True,
                late_minutes=late_minutes,
                late_fee_waived=True,
                waived_minutes=late_minutes,
            )

        waived_minutes = grace if has_waiver else 0
        chargeable_minutes = late_minutes - waived_minutes
        late_charge = money(
            Decimal(chargeable_minutes) * Decimal(str(hourly_rate)) * config.LATE_FEE_MULTIPLIER / Decimal(60)
        )

        return LateReturnCalculation(
            is_late=True,
            late_minutes=late_minutes,
            late_charge=late_charge,
            late_fee_waived=has_waiver,
            waived_minutes=waived_minutes,
            chargeable_minutes=chargeable_minutes,
        )

    @staticmethod
    def _is_active(user: dict, now: datetime) -> bool:
        expires_at = user.get("membership_expires_at")
        return bool(user.get("has_membership")) and expires_at is not None and expires_at > now
