import logging
from datetime import datetime, timedelta
from typing import Optional
from uuid import UUID, uuid4

import config
from storage import StoragePort
from utils import money, utcnow

from .models import Referral, ReferralStatus, ReferralResponse
from .service import WalletService, WalletServiceError, UserNotFoundError

logger = logging.getLogger(__name__)


class InvalidReferralCodeError(WalletServiceError):
    pass


class ReferralAlreadyUsedError(WalletServiceError):
    pass


class ReferralService:
    def __init__(self, storage: StoragePort, wallet: Optional[WalletService] = None):
        self.storage = storage
        self.wallet = wallet or WalletService(storage)

    def generate_referral_code(self, user_id: UUID) -> str:
        code = f"{config.REFERRAL_CODE_PREFIX}{str(user_id)[:6].upper()}"
        with self.storage.atomic():
            if not self.storage.get_user(user_id):
                raise UserNotFoundError(f"User {user_id} not found")
            self.storage.update_user_fields(user_id, {"referral_code": code})
        return code

    def process_referral(
        self, referral_code: str, new_user_id: UUID, now: Optional[datetime] = None
    ) -> ReferralResponse:
        """Link a new user to their referrer and pay the referrer's bonus.

        Linking, the referral row, the wallet credit and the status flip are
        committed together or not at all.
        """
        now = now or utcnow()

        with self.storage.atomic():
            referrer = self.storage.get_user_by_referral_code(referral_code)
            if not referrer:
                raise InvalidReferralCodeError("Invalid referral code")

            new_user = self.storage.get_user(new_user_id)
            if not new_user:
                raise UserNotFoundError(f"User {new_user_id} not found")
            if referrer["id"] == new_user_id:
                raise InvalidReferralCodeError("You cannot use your own referral code")
            if new_user["referred_by"]:
                raise ReferralAlreadyUsedError("User already used a referral code")

            self.storage.update_user_fields(new_user_id, {"referred_by": referrer["id"]})

            expires_at = now + timedelta(days=config.REFERRAL_EXPIRY_DAYS)
            amount = money(config.REFERRAL_BONUS_AMOUNT)
            referral_id = uuid4()
            self.storage.insert_referral({
                "id": referral_id,
                "referrer_id": referrer["id"],
                "referee_id": new_user_id,
                "amount": amount,
                "status": ReferralStatus.PENDING,
                "expires_at": expires_at,
                "created_at": now,
                "credited_at": None,
            })

            transaction = self.wallet.credit(
                referrer["id"],
                amount,
                "referral",
                f"Referral bonus for inviting {new_user.get('name') or new_user['email']}",
                expires_at=expires_at,
                referral_id=referral_id,
                now=now,
            )

            referral = self.storage.update_referral_fields(referral_id, {
                "status": ReferralStatus.CREDITED,
                "credited_at": now,
            })

        logger.info("Referral %s credited %s to user %s", referral_id, amount, referrer["id"])
        return ReferralResponse(
            referral=Referral(**referral),
            transaction=transaction,
            message="Referral applied successfully",
        )

    def get_referrals(self, referrer_id: UUID) -> list[Referral]:
        return [Referral(**r) for r in self.storage.query_referrals(referrer_id)]
