import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

import config
from storage import InMemoryStorage, StoragePort
from utils import Q, as_utc, money, utcnow

from .models import (
    TransactionType,
    User,
    WalletTransaction,
    WalletBalance,
    TransactionHistoryResponse,
)

logger = logging.getLogger(__name__)


class WalletServiceError(Exception):
    pass


class UserNotFoundError(WalletServiceError):
    pass


class InsufficientBalanceError(WalletServiceError):
    pass


class InvalidAmountError(WalletServiceError):
    pass


class WalletService:
    """Per-user scalar balance backed by an append-only transaction log.

    Every mutation runs inside ``storage.atomic()`` so the read-modify-write
    of the scalar is serialized and the scalar never diverges from the log.
    """

    def __init__(self, storage: Optional[StoragePort] = None):
        self.storage = storage or InMemoryStorage()

    def credit(
        self,
        user_id: UUID,
        amount,
        source: str,
        description: str,
        expires_at: Optional[datetime] = None,
        referral_id: Optional[UUID] = None,
        booking_id: Optional[UUID] = None,
        now: Optional[datetime] = None,
    ) -> WalletTransaction:
        amount = self._validate_amount(amount)
        expires_at = as_utc(expires_at)
        now = now or utcnow()

        with self.storage.atomic():
            user = self._get_user_record(user_id)
            new_balance = money(user["wallet_balance"]) + amount
            self.storage.update_user_fields(user_id, {"wallet_balance": new_balance})

            row = {
                "id": uuid4(),
                "user_id": user_id,
                "type": TransactionType.CREDIT,
                "amount": amount,
                "balance_after": new_balance,
                "source": source,
                "description": description,
                "expires_at": expires_at,
                "referral_id": referral_id,
                "booking_id": booking_id,
                "created_at": now,
            }
            self.storage.insert_transaction(row)

        logger.info("Credited %s to user %s (%s), balance %s", amount, user_id, source, new_balance)
        return WalletTransaction(**row)

    def debit(
        self,
        user_id: UUID,
        amount,
        source: str,
        description: str,
        booking_id: Optional[UUID] = None,
        now: Optional[datetime] = None,
    ) -> WalletTransaction:
        amount = self._validate_amount(amount)
        now = now or utcnow()

        with self.storage.atomic():
            user = self._get_user_record(user_id)
            current_balance = money(user["wallet_balance"])
            if amount > current_balance:
                logger.warning(
                    "Rejected debit of %s for user %s: balance %s", amount, user_id, current_balance
                )
                raise InsufficientBalanceError("Insufficient wallet balance")

            new_balance = current_balance - amount
            self.storage.update_user_fields(user_id, {"wallet_balance": new_balance})

            row = {
                "id": uuid4(),
                "user_id": user_id,
                "type": TransactionType.DEBIT,
                "amount": amount,
                "balance_after": new_balance,
                "source": source,
                "description": description,
                "expires_at": None,
                "referral_id": None,
                "booking_id": booking_id,
                "created_at": now,
            }
            self.storage.insert_transaction(row)

        logger.info("Debited %s from user %s (%s), balance %s", amount, user_id, source, new_balance)
        return WalletTransaction(**row)

    def get_user(self, user_id: UUID) -> User:
        return User(**self._get_user_record(user_id))

    def get_active_balance(self, user_id: UUID, now: Optional[datetime] = None) -> Decimal:
        """Stored balance minus every credit whose expiry has passed, floored at zero.

        Read-only: the stored scalar keeps counting expired credits until a
        debit consumes them.
        """
        user = self.storage.get_user(user_id)
        if not user:
            return Decimal("0.00")

        now = now or utcnow()
        expired = sum(
            (t.amount for t in self._transactions(user_id) if t.is_expired(now)),
            Decimal("0"),
        )
        return max(Decimal("0.00"), money(money(user["wallet_balance"]) - expired))

    def get_ledger_balance(self, user_id: UUID) -> Decimal:
        """Replay the full log: sum(credits) - sum(debits)."""
        total = Decimal("0")
        for t in self._transactions(user_id):
            total += t.amount if t.type == TransactionType.CREDIT else -t.amount
        return money(total)

    def get_balance(self, user_id: UUID, now: Optional[datetime] = None) -> WalletBalance:
        user = self._get_user_record(user_id)
        transactions = self._transactions(user_id)
        return WalletBalance(
            user_id=user_id,
            currency=config.CURRENCY,
            balance=money(user["wallet_balance"]),
            active_balance=self.get_active_balance(user_id, now=now),
            ledger_balance=self.get_ledger_balance(user_id),
            total_transactions=len(transactions),
            last_transaction_at=transactions[-1].created_at if transactions else None,
        )

    def get_transaction_history(
        self, user_id: UUID, limit: int = config.TRANSACTION_HISTORY_LIMIT
    ) -> list[WalletTransaction]:
        # oldest first; callers wanting newest-first reverse the list
        return self._transactions(user_id)[:limit]

    def get_ledger_history(
        self, user_id: UUID, limit: int = config.TRANSACTION_HISTORY_LIMIT
    ) -> TransactionHistoryResponse:
        user = self._get_user_record(user_id)
        return TransactionHistoryResponse(
            user_id=user_id,
            transactions=self.get_transaction_history(user_id, limit),
            total_count=len(self.storage.query_transactions(user_id)),
            balance=money(user["wallet_balance"]),
        )

    def _transactions(self, user_id: UUID) -> list[WalletTransaction]:
        return [WalletTransaction(**t) for t in self.storage.query_transactions(user_id)]

    def _get_user_record(self, user_id: UUID) -> dict:
        user = self.storage.get_user(user_id)
        if not user:
            raise UserNotFoundError(f"User {user_id} not found")
        return user

    @staticmethod
    def _validate_amount(amount) -> Decimal:
        amount = Decimal(str(amount or 0))
        if amount <= 0:
            raise InvalidAmountError("Amount must be positive")
        if amount != amount.quantize(Q):
            raise InvalidAmountError("Amount must have at most 2 decimal places")
        return money(amount)
