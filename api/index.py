import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from mangum import Mangum

import config
from storage import InMemoryStorage, StoragePort
from wallet.models import (
    User, CreditRequest, ApplyReferralRequest, WalletBalance, WalletTransaction,
    TransactionHistoryResponse, ReferralCodeResponse, ReferralResponse,
)
from wallet.service import (
    WalletService, WalletServiceError, UserNotFoundError,
    InsufficientBalanceError, InvalidAmountError,
)
from wallet.referral import ReferralService, InvalidReferralCodeError, ReferralAlreadyUsedError
from membership.models import (
    PurchaseMembershipRequest, MembershipStatus, MembershipBenefits,
    BenefitsRequest, LateReturnRequest, LateReturnCalculation,
)
from membership.service import MembershipService, MembershipServiceError, AlreadyMemberError
from bookings.models import (
    Booking, QuoteRequest, CreateBookingRequest, CompleteBookingRequest,
    BookingQuote, PaymentSplit, CancellationResult, CompletionResult, PlatformEarnings,
)
from bookings.service import (
    BookingService, BookingServiceError, BookingNotFoundError, AlreadyCancelledError,
    InvalidStateTransitionError, VehicleUnavailableError, compute_payment_split,
)

logger = logging.getLogger(__name__)

ServiceError = (WalletServiceError, MembershipServiceError, BookingServiceError)

_STATUS_CODES = {
    UserNotFoundError: status.HTTP_404_NOT_FOUND,
    BookingNotFoundError: status.HTTP_404_NOT_FOUND,
    ReferralAlreadyUsedError: status.HTTP_409_CONFLICT,
    AlreadyMemberError: status.HTTP_409_CONFLICT,
    VehicleUnavailableError: status.HTTP_409_CONFLICT,
    InvalidStateTransitionError: status.HTTP_409_CONFLICT,
    InsufficientBalanceError: status.HTTP_400_BAD_REQUEST,
    InvalidAmountError: status.HTTP_400_BAD_REQUEST,
    InvalidReferralCodeError: status.HTTP_400_BAD_REQUEST,
    AlreadyCancelledError: status.HTTP_400_BAD_REQUEST,
}


def _to_http(exc: Exception) -> HTTPException:
    code = _STATUS_CODES.get(type(exc), status.HTTP_400_BAD_REQUEST)
    return HTTPException(status_code=code, detail=str(exc))


@dataclass
class Services:
    wallet: WalletService
    referrals: ReferralService
    membership: MembershipService
    bookings: BookingService


def build_services(storage: Optional[StoragePort] = None) -> Services:
    storage = storage or InMemoryStorage(seed=True)
    wallet = WalletService(storage)
    membership = MembershipService(storage, wallet)
    return Services(
        wallet=wallet,
        referrals=ReferralService(storage, wallet),
        membership=membership,
        bookings=BookingService(storage, membership),
    )


def get_services(request: Request) -> Services:
    return request.app.state.services


router = APIRouter()


@router.get("/health", tags=["System"])
def health_check():
    return {"status": "healthy", "service": "rental-settlement"}


@router.get("/users/{user_id}", response_model=User, tags=["Users"])
def get_user(user_id: UUID, services: Services = Depends(get_services)) -> User:
    try:
        return services.wallet.get_user(user_id)
    except ServiceError as e:
        raise _to_http(e)


@router.get("/users/{user_id}/wallet/balance", response_model=WalletBalance, tags=["Wallet"])
def get_wallet_balance(user_id: UUID, services: Services = Depends(get_services)) -> WalletBalance:
    try:
        return services.wallet.get_balance(user_id)
    except ServiceError as e:
        raise _to_http(e)


@router.get("/users/{user_id}/wallet/transactions", response_model=TransactionHistoryResponse, tags=["Wallet"])
def get_wallet_transactions(
    user_id: UUID, limit: int = config.TRANSACTION_HISTORY_LIMIT, services: Services = Depends(get_services)
) -> TransactionHistoryResponse:
    try:
        return services.wallet.get_ledger_history(user_id, limit)
    except ServiceError as e:
        raise _to_http(e)


@router.post(
    "/users/{user_id}/wallet/credit", response_model=WalletTransaction,
    status_code=status.HTTP_201_CREATED, tags=["Wallet"],
)
def credit_wallet(
    user_id: UUID, request: CreditRequest, services: Services = Depends(get_services)
) -> WalletTransaction:
    try:
        return services.wallet.credit(
            user_id, request.amount, request.source, request.description,
            expires_at=request.expires_at, booking_id=request.booking_id,
        )
    except ServiceError as e:
        raise _to_http(e)


@router.post("/users/{user_id}/referral-code", response_model=ReferralCodeResponse, tags=["Referrals"])
def generate_referral_code(user_id: UUID, services: Services = Depends(get_services)) -> ReferralCodeResponse:
    try:
        code = services.referrals.generate_referral_code(user_id)
    except ServiceError as e:
        raise _to_http(e)
    return ReferralCodeResponse(user_id=user_id, referral_code=code)


@router.post(
    "/referrals/apply", response_model=ReferralResponse,
    status_code=status.HTTP_201_CREATED, tags=["Referrals"],
)
def apply_referral(request: ApplyReferralRequest, services: Services = Depends(get_services)) -> ReferralResponse:
    try:
        return services.referrals.process_referral(request.referral_code, request.user_id)
    except ServiceError as e:
        raise _to_http(e)


@router.get("/users/{user_id}/membership", response_model=MembershipStatus, tags=["Membership"])
def get_membership_status(user_id: UUID, services: Services = Depends(get_services)) -> MembershipStatus:
    try:
        return services.membership.get_membership_status(user_id)
    except ServiceError as e:
        raise _to_http(e)


@router.post(
    "/users/{user_id}/membership", response_model=MembershipStatus,
    status_code=status.HTTP_201_CREATED, tags=["Membership"],
)
def purchase_membership(
    user_id: UUID, request: PurchaseMembershipRequest, services: Services = Depends(get_services)
) -> MembershipStatus:
    try:
        return services.membership.purchase_membership(user_id, request.payment_method)
    except ServiceError as e:
        raise _to_http(e)


@router.post("/users/{user_id}/membership/benefits", response_model=MembershipBenefits, tags=["Membership"])
def get_membership_benefits(
    user_id: UUID, request: BenefitsRequest, services: Services = Depends(get_services)
) -> MembershipBenefits:
    return services.membership.calculate_membership_benefits(user_id, request.booking_start, request.booking_end)


@router.post("/users/{user_id}/late-return-charge", response_model=LateReturnCalculation, tags=["Membership"])
def get_late_return_charge(
    user_id: UUID, request: LateReturnRequest, services: Services = Depends(get_services)
) -> LateReturnCalculation:
    return services.membership.calculate_late_return_charge(
        user_id, request.scheduled_return, request.actual_return,
        request.hourly_rate, request.booking_duration_hours,
    )


@router.post("/bookings/quote", response_model=BookingQuote, tags=["Bookings"])
def quote_booking(request: QuoteRequest, services: Services = Depends(get_services)) -> BookingQuote:
    try:
        return services.bookings.quote_booking(request)
    except ServiceError as e:
        raise _to_http(e)


@router.post("/bookings", response_model=Booking, status_code=status.HTTP_201_CREATED, tags=["Bookings"])
def create_booking(request: CreateBookingRequest, services: Services = Depends(get_services)) -> Booking:
    try:
        return services.bookings.create_booking(request)
    except ServiceError as e:
        raise _to_http(e)


@router.get("/bookings/{booking_id}", response_model=Booking, tags=["Bookings"])
def get_booking(booking_id: UUID, services: Services = Depends(get_services)) -> Booking:
    try:
        return services.bookings.get_booking(booking_id)
    except ServiceError as e:
        raise _to_http(e)


@router.post("/bookings/{booking_id}/confirm-payment", response_model=Booking, tags=["Bookings"])
def confirm_payment(booking_id: UUID, services: Services = Depends(get_services)) -> Booking:
    try:
        return services.bookings.confirm_payment(booking_id)
    except ServiceError as e:
        raise _to_http(e)


@router.post("/bookings/{booking_id}/start", response_model=Booking, tags=["Bookings"])
def start_rental(booking_id: UUID, services: Services = Depends(get_services)) -> Booking:
    try:
        return services.bookings.start_rental(booking_id)
    except ServiceError as e:
        raise _to_http(e)


@router.post("/bookings/{booking_id}/complete", response_model=CompletionResult, tags=["Bookings"])
def complete_booking(
    booking_id: UUID, request: CompleteBookingRequest, services: Services = Depends(get_services)
) -> CompletionResult:
    try:
        return services.bookings.complete_booking(booking_id, request.actual_return, request.hourly_rate)
    except ServiceError as e:
        raise _to_http(e)


@router.post("/bookings/{booking_id}/cancel", response_model=CancellationResult, tags=["Bookings"])
def cancel_booking(booking_id: UUID, services: Services = Depends(get_services)) -> CancellationResult:
    try:
        return services.bookings.cancel_booking(booking_id)
    except ServiceError as e:
        raise _to_http(e)


@router.get("/settlement/split", response_model=PaymentSplit, tags=["Bookings"])
def get_payment_split(total_amount: Decimal) -> PaymentSplit:
    try:
        return compute_payment_split(total_amount)
    except ServiceError as e:
        raise _to_http(e)


@router.get("/admin/earnings", response_model=PlatformEarnings, tags=["Admin"])
def get_platform_earnings(services: Services = Depends(get_services)) -> PlatformEarnings:
    return services.bookings.get_platform_earnings()


def create_app(storage: Optional[StoragePort] = None) -> FastAPI:
    logging.basicConfig(level=config.LOG_LEVEL)

    app = FastAPI(
        title="Rental Settlement API",
        description="Wallet ledger, referrals, membership benefits and booking settlement for vehicle rentals",
        version="1.0.0",
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.services = build_services(storage)
    app.include_router(router)
    return app


app = create_app()
handler = Mangum(app)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
