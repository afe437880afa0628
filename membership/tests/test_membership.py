"""
Unit Tests for the Membership Service

Tests cover:
1. Wallet and online purchases
2. Active membership checks
3. Booking benefits
4. Late return charges and the member grace window
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import patch
from uuid import UUID

import pytest

from storage import InMemoryStorage
from membership.models import PaymentMethod
from membership.service import MembershipService, AlreadyMemberError
from wallet.models import TransactionType
from wallet.service import InsufficientBalanceError, UserNotFoundError


USER_ID = UUID("660e8400-e29b-41d4-a716-446655440001")
NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _service(wallet_funds=None) -> MembershipService:
    storage = InMemoryStorage()
    storage.add_user({"id": USER_ID, "email": "rider@example.com", "name": "Rider"})
    service = MembershipService(storage)
    if wallet_funds is not None:
        service.wallet.credit(USER_ID, Decimal(wallet_funds), "topup", "Top up", now=NOW - timedelta(days=1))
    return service


def _member_service() -> MembershipService:
    service = _service()
    service.purchase_membership(USER_ID, PaymentMethod.ONLINE, now=NOW - timedelta(days=1))
    return service


class TestPurchaseMembership:
    """Tests for buying a membership."""

    def test_wallet_purchase_debits_price(self):
        """A 999 wallet buys a membership and leaves 0.00."""
        service = _service(wallet_funds="999")

        status = service.purchase_membership(USER_ID, "wallet", now=NOW)

        user = service.storage.get_user(USER_ID)
        assert user["wallet_balance"] == Decimal("0.00")
        assert user["has_membership"] is True
        assert user["membership_purchased_at"] == NOW
        assert user["membership_expires_at"] == NOW + timedelta(days=365)
        assert status.is_active is True

        debit = service.wallet.get_transaction_history(USER_ID)[-1]
        assert debit.type == TransactionType.DEBIT
        assert debit.amount == Decimal("999.00")
        assert debit.source == "membership_purchase"

    def test_wallet_purchase_insufficient_balance(self):
        """A short wallet is rejected and nothing changes."""
        service = _service(wallet_funds="998.99")

        with pytest.raises(InsufficientBalanceError):
            service.purchase_membership(USER_ID, PaymentMethod.WALLET, now=NOW)

        user = service.storage.get_user(USER_ID)
        assert user["has_membership"] is False
        assert user["wallet_balance"] == Decimal("998.99")
        assert len(service.wallet.get_transaction_history(USER_ID)) == 1

    def test_expired_credits_cannot_fund_purchase(self):
        """Expired promotional credits are not spendable on a membership."""
        service = _service(wallet_funds="900")
        service.wallet.credit(
            USER_ID, Decimal("200"), "promo", "Promo",
            expires_at=NOW - timedelta(hours=1), now=NOW - timedelta(days=2),
        )

        with pytest.raises(InsufficientBalanceError):
            service.purchase_membership(USER_ID, PaymentMethod.WALLET, now=NOW)

    def test_online_purchase_skips_wallet(self):
        """Online purchases only flip the membership fields."""
        service = _service()

        service.purchase_membership(USER_ID, PaymentMethod.ONLINE, now=NOW)

        assert service.has_active_membership(USER_ID, now=NOW) is True
        assert service.wallet.get_transaction_history(USER_ID) == []

    def test_active_member_cannot_buy_again(self):
        """An unexpired membership blocks a second purchase."""
        service = _member_service()

        with pytest.raises(AlreadyMemberError):
            service.purchase_membership(USER_ID, PaymentMethod.ONLINE, now=NOW)

    def test_expired_member_can_renew(self):
        """Once the membership has lapsed a new one can be bought."""
        service = _member_service()
        later = NOW + timedelta(days=400)

        status = service.purchase_membership(USER_ID, PaymentMethod.ONLINE, now=later)

        assert status.expires_at == later + timedelta(days=365)

    def test_unknown_user_fails(self):
        """Buying for a missing user raises UserNotFoundError."""
        service = _service()

        with pytest.raises(UserNotFoundError):
            service.purchase_membership(UUID("00000000-0000-0000-0000-000000000000"), "online")

    def test_failed_field_update_restores_wallet(self):
        """The debit is rolled back when the membership fields cannot be written."""
        service = _service(wallet_funds="999")
        original_update = service.storage.update_user_fields

        def failing_update(user_id, fields):
            if "has_membership" in fields:
                raise RuntimeError("db down")
            return original_update(user_id, fields)

        with patch.object(service.storage, "update_user_fields", side_effect=failing_update):
            with pytest.raises(RuntimeError):
                service.purchase_membership(USER_ID, PaymentMethod.WALLET, now=NOW)

        assert service.storage.get_user(USER_ID)["wallet_balance"] == Decimal("999.00")
        assert len(service.wallet.get_transaction_history(USER_ID)) == 1


class TestActiveMembership:
    """Tests for membership status."""

    def test_non_member_is_inactive(self):
        service = _service()

        assert service.has_active_membership(USER_ID, now=NOW) is False

    def test_expiry_is_exclusive(self):
        """At the exact expiry instant the membership is no longer active."""
        service = _member_service()
        expires_at = service.storage.get_user(USER_ID)["membership_expires_at"]

        assert service.has_active_membership(USER_ID, now=expires_at - timedelta(seconds=1)) is True
        assert service.has_active_membership(USER_ID, now=expires_at) is False

    def test_stale_flag_is_not_trusted(self):
        """has_membership alone does not make a member once expired."""
        service = _service()
        service.storage.update_user_fields(USER_ID, {
            "has_membership": True,
            "membership_expires_at": NOW - timedelta(days=1),
        })

        assert service.has_active_membership(USER_ID, now=NOW) is False

    def test_status_view(self):
        service = _member_service()

        status = service.get_membership_status(USER_ID, now=NOW)

        assert status.is_active is True
        assert status.purchased_at == NOW - timedelta(days=1)


class TestMembershipBenefits:
    """Tests for booking benefits."""

    def test_non_member_gets_nothing(self):
        service = _service()

        benefits = service.calculate_membership_benefits(USER_ID, NOW, NOW + timedelta(hours=48), now=NOW)

        assert benefits.has_free_delivery is False
        assert benefits.has_late_fee_waiver is False

    def test_day_booking_gets_free_delivery(self):
        """24h and longer bookings have delivery waived."""
        service = _member_service()

        benefits = service.calculate_membership_benefits(USER_ID, NOW, NOW + timedelta(hours=24), now=NOW)

        assert benefits.has_free_delivery is True
        assert benefits.has_late_fee_waiver is False

    def test_short_booking_gets_late_fee_waiver(self):
        """Bookings under 8h get late-fee protection."""
        service = _member_service()

        benefits = service.calculate_membership_benefits(USER_ID, NOW, NOW + timedelta(hours=7, minutes=59), now=NOW)

        assert benefits.has_free_delivery is False
        assert benefits.has_late_fee_waiver is True

    def test_mid_length_booking_gets_neither(self):
        service = _member_service()

        benefits = service.calculate_membership_benefits(USER_ID, NOW, NOW + timedelta(hours=8), now=NOW)

        assert benefits.has_free_delivery is False
        assert benefits.has_late_fee_waiver is False


class TestLateReturnCharge:
    """Tests for late return charges."""

    SCHEDULED = datetime(2026, 3, 2, 10, 0, tzinfo=timezone.utc)

    def test_on_time_return_is_free(self):
        service = _service()

        result = service.calculate_late_return_charge(
            USER_ID, self.SCHEDULED, self.SCHEDULED, Decimal("100"), 5, now=NOW
        )

        assert result.is_late is False
        assert result.late_charge == Decimal("0")

    def test_member_within_grace_is_waived(self):
        """A member 20 minutes late on a 5h booking pays nothing."""
        service = _member_service()

        result = service.calculate_late_return_charge(
            USER_ID, self.SCHEDULED, self.SCHEDULED + timedelta(minutes=20), Decimal("100"), 5, now=NOW
        )

        assert result.is_late is True
        assert result.late_minutes == 20
        assert result.late_charge == Decimal("0")
        assert result.late_fee_waived is True
        assert result.waived_minutes == 20

    def test_member_beyond_grace_pays_remainder(self):
        """A member 50 minutes late pays 20 minutes at double rate."""
        service = _member_service()

        result = service.calculate_late_return_charge(
            USER_ID, self.SCHEDULED, self.SCHEDULED + timedelta(minutes=50), Decimal("100"), 5, now=NOW
        )

        assert result.late_minutes == 50
        assert result.waived_minutes == 30
        assert result.chargeable_minutes == 20
        assert result.late_charge == Decimal("66.67")

    def test_member_on_long_booking_has_no_grace(self):
        """Members on 8h+ bookings pay every late minute."""
        service = _member_service()

        result = service.calculate_late_return_charge(
            USER_ID, self.SCHEDULED, self.SCHEDULED + timedelta(minutes=20), Decimal("100"), 8, now=NOW
        )

        assert result.late_fee_waived is False
        assert result.waived_minutes == 0
        assert result.late_charge == Decimal("66.67")

    def test_non_member_pays_all_minutes(self):
        service = _service()

        result = service.calculate_late_return_charge(
            USER_ID, self.SCHEDULED, self.SCHEDULED + timedelta(minutes=90), "150", 3, now=NOW
        )

        assert result.late_minutes == 90
        assert result.late_charge == Decimal("450.00")

    def test_partial_minutes_are_floored(self):
        """Seconds past a whole minute are not charged."""
        service = _service()

        result = service.calculate_late_return_charge(
            USER_ID, self.SCHEDULED, self.SCHEDULED + timedelta(minutes=10, seconds=59), Decimal("60"), 3, now=NOW
        )

        assert result.late_minutes == 10
        assert result.late_charge == Decimal("20.00")

    def test_rate_is_not_rounded_before_multiplying(self):
        """Only the final charge is rounded to cents."""
        service = _service()

        result = service.calculate_late_return_charge(
            USER_ID, self.SCHEDULED, self.SCHEDULED + timedelta(minutes=60), Decimal("10.005"), 3, now=NOW
        )

        assert result.late_charge == Decimal("20.01")

    def test_times_without_offset_are_read_as_utc(self):
        service = _service()
        scheduled = datetime(2026, 3, 2, 10, 0)

        result = service.calculate_late_return_charge(
            USER_ID, scheduled, self.SCHEDULED + timedelta(minutes=15), Decimal("60"), 3, now=NOW
        )

        assert result.late_minutes == 15
        assert result.late_charge == Decimal("30.00")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
