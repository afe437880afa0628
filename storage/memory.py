import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional
from uuid import UUID

from .base import RecordNotFoundError


class InMemoryStorage:
    """Dict-backed store.

    ``atomic()`` takes a single re-entrant writer lock. When an exception
    leaves the outermost block, the rows it wrote are put back from an undo
    log and the transactions it appended are dropped. Rollback cost follows
    the rows an operation touched, not the size of the store.
    """

    def __init__(self, seed: bool = False):
        self.users: dict[UUID, dict] = {}
        self.wallet_transactions: list[dict] = []
        self.referrals: dict[UUID, dict] = {}
        self.bookings: dict[UUID, dict] = {}
        self._lock = threading.RLock()
        self._depth = 0
        self._undo: Optional[list] = None
        if seed:
            self._seed_data()

    def _seed_data(self):
        referrer_id = UUID("550e8400-e29b-41d4-a716-446655440000")
        customer_id = UUID("660e8400-e29b-41d4-a716-446655440001")

        self.add_user({
            "id": referrer_id, "email": "owner@example.com",
            "name": "Ravi Owner", "referral_code": "DRV550E84",
        })
        self.add_user({
            "id": customer_id, "email": "customer@example.com",
            "name": "Asha Customer",
        })

    @contextmanager
    def atomic(self):
        with self._lock:
            outermost = self._depth == 0
            if outermost:
                self._undo = []
                mark = len(self.wallet_transactions)
            self._depth += 1
            try:
                yield self
            except BaseException:
                if outermost:
                    self._rollback(mark)
                raise
            finally:
                self._depth -= 1
                if outermost:
                    self._undo = None

    def _remember(self, table: str, key: UUID) -> None:
        # prior row (or None for an insert), replayed in reverse on rollback
        if self._undo is not None:
            row = getattr(self, table).get(key)
            self._undo.append((table, key, dict(row) if row is not None else None))

    def _rollback(self, mark: int) -> None:
        for table, key, previous in reversed(self._undo):
            if previous is None:
                getattr(self, table).pop(key, None)
            else:
                getattr(self, table)[key] = previous
        del self.wallet_transactions[mark:]

    # users

    def get_user(self, user_id: UUID) -> Optional[dict]:
        user = self.users.get(user_id)
        return dict(user) if user else None

    def get_user_by_referral_code(self, code: str) -> Optional[dict]:
        for user in self.users.values():
            if user.get("referral_code") == code:
                return dict(user)
        return None

    def add_user(self, data: dict) -> dict:
        user = {
            "wallet_balance": Decimal("0.00"),
            "has_membership": False,
            "membership_purchased_at": None,
            "membership_expires_at": None,
            "referral_code": None,
            "referred_by": None,
            "created_at": datetime.now(timezone.utc),
        }
        user.update(data)
        self._remember("users", user["id"])
        self.users[user["id"]] = user
        return dict(user)

    def update_user_fields(self, user_id: UUID, fields: dict) -> dict:
        user = self.users.get(user_id)
        if user is None:
            raise RecordNotFoundError(f"User {user_id} not found")
        self._remember("users", user_id)
        user.update(fields)
        return dict(user)

    # wallet transactions

    def insert_transaction(self, row: dict) -> dict:
        self.wallet_transactions.append(dict(row))
        return dict(row)

    def query_transactions(self, user_id: UUID) -> list[dict]:
        rows = [dict(t) for t in self.wallet_transactions if t["user_id"] == user_id]
        rows.sort(key=lambda t: t["created_at"])
        return rows

    # referrals

    def insert_referral(self, row: dict) -> dict:
        self._remember("referrals", row["id"])
        self.referrals[row["id"]] = dict(row)
        return dict(row)

    def update_referral_fields(self, referral_id: UUID, fields: dict) -> dict:
        referral = self.referrals.get(referral_id)
        if referral is None:
            raise RecordNotFoundError(f"Referral {referral_id} not found")
        self._remember("referrals", referral_id)
        referral.update(fields)
        return dict(referral)

    def query_referrals(self, referrer_id: UUID) -> list[dict]:
        rows = [dict(r) for r in self.referrals.values() if r["referrer_id"] == referrer_id]
        rows.sort(key=lambda r: r["created_at"])
        return rows

    # bookings

    def get_booking(self, booking_id: UUID) -> Optional[dict]:
        booking = self.bookings.get(booking_id)
        return dict(booking) if booking else None

    def add_booking(self, data: dict) -> dict:
        self._remember("bookings", data["id"])
        self.bookings[data["id"]] = dict(data)
        return dict(data)

    def update_booking_fields(self, booking_id: UUID, fields: dict) -> dict:
        booking = self.bookings.get(booking_id)
        if booking is None:
            raise RecordNotFoundError(f"Booking {booking_id} not found")
        self._remember("bookings", booking_id)
        booking.update(fields)
        return dict(booking)

    def query_bookings(self, vehicle_id: Optional[UUID] = None) -> list[dict]:
        return [
            dict(b) for b in self.bookings.values()
            if vehicle_id is None or b["vehicle_id"] == vehicle_id
        ]
