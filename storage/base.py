from contextlib import AbstractContextManager
from typing import Optional, Protocol
from uuid import UUID


class StorageError(Exception):
    pass


class RecordNotFoundError(StorageError):
    pass


class StoragePort(Protocol):
    """Persistence accessors the services depend on.

    Records are plain dicts keyed by the model field names. Implementations
    must give read-your-writes consistency inside ``atomic()`` and serialize
    concurrent ``atomic()`` blocks that touch the same user.
    """

    def atomic(self) -> AbstractContextManager: ...

    # users
    def get_user(self, user_id: UUID) -> Optional[dict]: ...
    def get_user_by_referral_code(self, code: str) -> Optional[dict]: ...
    def add_user(self, data: dict) -> dict: ...
    def update_user_fields(self, user_id: UUID, fields: dict) -> dict: ...

    # wallet transactions
    def insert_transaction(self, row: dict) -> dict: ...
    def query_transactions(self, user_id: UUID) -> list[dict]: ...

    # referrals
    def insert_referral(self, row: dict) -> dict: ...
    def update_referral_fields(self, referral_id: UUID, fields: dict) -> dict: ...
    def query_referrals(self, referrer_id: UUID) -> list[dict]: ...

    # bookings
    def get_booking(self, booking_id: UUID) -> Optional[dict]: ...
    def add_booking(self, data: dict) -> dict: ...
    def update_booking_fields(self, booking_id: UUID, fields: dict) -> dict: ...
    def query_bookings(self, vehicle_id: Optional[UUID] = None) -> list[dict]: ...
