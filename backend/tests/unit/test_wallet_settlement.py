"""
Tests for wallet settlement and withdrawals.
"""
from decimal import Decimal
from uuid import UUID

import pytest
from sqlalchemy import func, select

from easyserve.api.middleware.error_handler import (
    BadRequestException,
    ConflictException,
    ForbiddenException,
    InsufficientFundsException,
    NotFoundException,
)
from easyserve.models.bookings import BookingStatus
from easyserve.models.service_requests import RequestStatus
from easyserve.models.wallets import TransactionStatus, TransactionType, Wallet, WalletTransaction
from easyserve.services.booking_service import BookingService
from easyserve.services.service_request_service import ServiceRequestService, build_pricing
from easyserve.services.wallet_service import WalletService, booking_reference


@pytest.fixture
def wallets(db):
    return WalletService(db)


@pytest.fixture
def finish_job(db, client_user, category, actor_for):
    """Run a fixed-price job up to the point where the client can release payment."""
    requests_service = ServiceRequestService(db)
    bookings = BookingService(db)

    def _finish(provider, amount="500"):
        request = requests_service.create_service_request(
            actor_for(client_user),
            category_id=category.id,
            description="Service the AC unit",
            pricing=build_pricing("fixed", fixed_amount=amount),
        )
        _, booking = requests_service.accept_fixed_request(actor_for(provider), request.id)
        bookings.start_service(actor_for(provider), booking.id)
        bookings.provider_complete_service(actor_for(provider), booking.id)
        return booking

    return _finish


@pytest.fixture
def release(db, client_user, actor_for):
    def _release(booking, rating=5):
        return BookingService(db).user_confirm_booking(actor_for(client_user), booking.id, rating=rating)
    return _release


@pytest.mark.unit
def test_booking_reference_uses_last_six_characters():
    booking_id = UUID("123e4567-e89b-12d3-a456-426614174abc")
    assert booking_reference(booking_id) == "Booking #174abc"


@pytest.mark.unit
def test_release_credits_provider_wallet(wallets, finish_job, release, provider_user, actor_for, metrics):
    booking = finish_job(provider_user)
    release(booking)

    wallet, ledger = wallets.get_wallet(actor_for(provider_user))
    assert wallet.balance == Decimal("500.00")
    assert wallet.total_earned == Decimal("500.00")
    assert len(ledger) == 1
    entry = ledger[0]
    assert entry.type == TransactionType.CREDIT
    assert entry.amount == Decimal("500.00")
    assert entry.status == TransactionStatus.COMPLETED
    assert entry.booking_id == booking.id
    assert entry.reference == f"Booking #{str(booking.id)[-6:]}"
    assert metrics.get_counter_value("wallet_credited_amount_total", {}) == Decimal("500.00")


@pytest.mark.unit
def test_credits_accumulate(wallets, finish_job, release, provider_user, actor_for):
    release(finish_job(provider_user, amount="500"))
    release(finish_job(provider_user, amount="250.50"))

    wallet, ledger = wallets.get_wallet(actor_for(provider_user))
    assert wallet.balance == Decimal("750.50")
    assert wallet.total_earned == Decimal("750.50")
    assert len(ledger) == 2


@pytest.mark.unit
def test_missing_wallet_rolls_back_confirmation(db, finish_job, release, make_provider, metrics):
    provider = make_provider(name="Dana", with_wallet=False)
    booking = finish_job(provider)

    with pytest.raises(NotFoundException) as exc_info:
        release(booking)

    assert exc_info.value.message == "Provider wallet not found"
    bookings = BookingService(db)
    unchanged = bookings.get_booking(booking.id)
    assert unchanged.status == BookingStatus.IN_PROGRESS
    assert unchanged.completed_by_user is False
    assert unchanged.user_rating is None
    request = ServiceRequestService(db).get_service_request(booking.request_id)
    assert request.status == RequestStatus.IN_PROGRESS
    assert db.scalar(select(func.count(Wallet.id))) == 0
    assert db.scalar(select(func.count(WalletTransaction.id))) == 0
    assert metrics.get_counter_value("settlements_total", {"outcome": "wallet_missing"}) == 1
    assert metrics.get_counter_value("settlements_total", {"outcome": "released"}) == 0


@pytest.mark.unit
def test_double_release_credits_once(wallets, finish_job, release, provider_user, actor_for):
    booking = finish_job(provider_user)
    release(booking)
    with pytest.raises(ConflictException):
        release(booking)

    wallet, ledger = wallets.get_wallet(actor_for(provider_user))
    assert wallet.balance == Decimal("500.00")
    assert len(ledger) == 1


@pytest.mark.unit
def test_concurrent_release_credits_once(
    db, other_session, wallets, finish_job, client_user, provider_user, actor_for, monkeypatch
):
    booking = finish_job(provider_user)
    bookings = BookingService(db)
    # Both confirmations read the booking before either one commits
    stale = bookings.get_booking(booking.id)
    db.commit()
    assert stale.completed_by_user is False

    BookingService(other_session).user_confirm_booking(actor_for(client_user), booking.id, rating=5)

    monkeypatch.setattr(bookings, "get_booking", lambda booking_id: stale)
    with pytest.raises(ConflictException) as exc_info:
        bookings.user_confirm_booking(actor_for(client_user), booking.id, rating=1)

    assert exc_info.value.message == "Booking already confirmed"
    wallet, ledger = wallets.get_wallet(actor_for(provider_user))
    assert wallet.balance == Decimal("500.00")
    assert wallet.total_earned == Decimal("500.00")
    assert len(ledger) == 1
    monkeypatch.undo()
    assert bookings.get_booking(booking.id).user_rating == 5


@pytest.mark.unit
def test_concurrent_withdrawals_never_overdraw(
    db, other_session, wallets, finish_job, release, provider_user, actor_for
):
    release(finish_job(provider_user))
    # This session last saw the full balance
    wallet, _ = wallets.get_wallet(actor_for(provider_user))
    db.commit()
    assert wallet.balance == Decimal("500.00")

    WalletService(other_session).withdraw(actor_for(provider_user), 300)

    with pytest.raises(InsufficientFundsException):
        wallets.withdraw(actor_for(provider_user), 300)

    wallet, ledger = wallets.get_wallet(actor_for(provider_user))
    assert wallet.balance == Decimal("200.00")
    assert [t.type for t in ledger] == [TransactionType.DEBIT, TransactionType.CREDIT]


@pytest.mark.unit
def test_withdraw_records_debit(wallets, finish_job, release, provider_user, actor_for, metrics):
    release(finish_job(provider_user))

    wallet, entry = wallets.withdraw(actor_for(provider_user), 200)

    assert wallet.balance == Decimal("300.00")
    assert wallet.total_earned == Decimal("500.00")
    assert entry.type == TransactionType.DEBIT
    assert entry.amount == Decimal("200.00")
    assert entry.reference == "withdrawal"
    assert entry.status == TransactionStatus.WITHDRAWN
    assert entry.booking_id is None

    _, ledger = wallets.get_wallet(actor_for(provider_user))
    assert [t.type for t in ledger] == [TransactionType.DEBIT, TransactionType.CREDIT]
    assert metrics.get_counter_value("withdrawals_total", {"outcome": "completed"}) == 1


@pytest.mark.unit
def test_withdraw_entire_balance(wallets, finish_job, release, provider_user, actor_for):
    release(finish_job(provider_user))
    wallet, _ = wallets.withdraw(actor_for(provider_user), "500.00")
    assert wallet.balance == Decimal("0.00")


@pytest.mark.unit
def test_withdraw_more_than_balance(wallets, provider_user, actor_for, metrics):
    with pytest.raises(InsufficientFundsException) as exc_info:
        wallets.withdraw(actor_for(provider_user), 1)

    assert exc_info.value.message == "Insufficient balance"
    wallet, ledger = wallets.get_wallet(actor_for(provider_user))
    assert wallet.balance == Decimal("0.00")
    assert ledger == []
    assert metrics.get_counter_value("withdrawals_total", {"outcome": "insufficient_funds"}) == 1


@pytest.mark.unit
@pytest.mark.parametrize("amount", [0, -10])
def test_withdraw_non_positive_amount(wallets, provider_user, actor_for, amount):
    with pytest.raises(InsufficientFundsException) as exc_info:
        wallets.withdraw(actor_for(provider_user), amount)
    assert exc_info.value.message == "Withdrawal amount must be greater than zero"


@pytest.mark.unit
@pytest.mark.parametrize("amount", [1e30, "NaN", "Infinity", "10000000000.00"])
def test_withdraw_unrepresentable_amount(wallets, provider_user, actor_for, amount):
    with pytest.raises(BadRequestException):
        wallets.withdraw(actor_for(provider_user), amount)


@pytest.mark.unit
def test_withdraw_without_wallet(wallets, client_user, actor_for):
    with pytest.raises(NotFoundException):
        wallets.withdraw(actor_for(client_user), 10)


@pytest.mark.unit
def test_open_wallet_is_idempotent(wallets, make_provider, actor_for):
    provider = make_provider(name="Erin", with_wallet=False)

    first = wallets.open_wallet_for(actor_for(provider))
    second = wallets.open_wallet_for(actor_for(provider))

    assert first.id == second.id
    assert first.balance == Decimal("0.00")


@pytest.mark.unit
def test_clients_do_not_get_wallets(wallets, client_user, actor_for):
    with pytest.raises(ForbiddenException):
        wallets.open_wallet_for(actor_for(client_user))
    with pytest.raises(NotFoundException):
        wallets.get_wallet(actor_for(client_user))
