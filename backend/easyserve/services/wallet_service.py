"""Wallet service: provider balances, booking settlement credits, and withdrawals.

Balance changes are single conditional UPDATE statements with the arithmetic
done by the database, so concurrent settlement and withdrawal on one wallet
cannot lose updates.
"""
from decimal import Decimal
from typing import List, Tuple
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from easyserve.api.middleware.error_handler import (
    ForbiddenException,
    InsufficientFundsException,
    NotFoundException,
)
from easyserve.lib.db import transaction
from easyserve.lib.logging import get_logger, log_with_context
from easyserve.lib.metrics import get_metrics_collector
from easyserve.lib.money import Amount, to_money
from easyserve.models.bookings import Booking
from easyserve.models.wallets import (
    TransactionStatus,
    TransactionType,
    Wallet,
    WalletTransaction,
)
from easyserve.services.actor import Actor


logger = get_logger(__name__)


def booking_reference(booking_id: UUID) -> str:
    """Ledger reference for a settlement: the last six characters of the booking id."""
    return f"Booking #{str(booking_id)[-6:]}"


class WalletService:
    """Provider wallet operations.

    Settlement (`credit_for_booking`) is only ever called by the booking
    lifecycle and joins the caller's transaction; the other operations
    commit their own unit of work.
    """

    def __init__(self, session: Session):
        self.session = session
        self.metrics = get_metrics_collector()

    def open_wallet(self, owner_id: UUID) -> Wallet:
        """Return the owner's wallet, creating an empty one if needed. Does not commit."""
        wallet = self._find(owner_id)
        if wallet is not None:
            return wallet

        wallet = Wallet(user_id=owner_id)
        self.session.add(wallet)
        self.session.flush()
        return wallet

    def open_wallet_for(self, actor: Actor) -> Wallet:
        """Open (or fetch) the calling provider's wallet."""
        if not actor.is_provider:
            raise ForbiddenException("Only providers have wallets")
        with transaction(self.session):
            wallet = self.open_wallet(actor.id)
        self.session.refresh(wallet)
        return wallet

    def get_wallet(self, actor: Actor) -> Tuple[Wallet, List[WalletTransaction]]:
        """Wallet of the actor plus its ledger, newest entry first."""
        wallet = self._find(actor.id)
        if wallet is None:
            raise NotFoundException("Wallet", str(actor.id))
        self.session.refresh(wallet)
        return wallet, self.list_transactions(wallet.id)

    def list_transactions(self, wallet_id: UUID) -> List[WalletTransaction]:
        stmt = (
            select(WalletTransaction)
            .where(WalletTransaction.wallet_id == wallet_id)
            .order_by(WalletTransaction.id.desc())
        )
        return list(self.session.execute(stmt).scalars().all())

    def credit_for_booking(self, booking: Booking) -> WalletTransaction:
        """Credit a released booking's agreed price to its provider's wallet.

        Runs inside the caller's transaction and does not commit.

        Raises:
            NotFoundException: The provider has no wallet. Wallets are never
                provisioned from the booking flow.
        """
        amount = booking.agreed_price
        wallet_id = self.session.scalar(
            select(Wallet.id).where(Wallet.user_id == booking.provider_id)
        )
        if wallet_id is None:
            raise NotFoundException("Provider wallet", str(booking.provider_id))

        self.session.execute(
            update(Wallet)
            .where(Wallet.id == wallet_id)
            .values(
                balance=Wallet.balance + amount,
                total_earned=Wallet.total_earned + amount,
            )
            .execution_options(synchronize_session=False)
        )

        entry = WalletTransaction(
            wallet_id=wallet_id,
            type=TransactionType.CREDIT,
            amount=amount,
            reference=booking_reference(booking.id),
            status=TransactionStatus.COMPLETED,
            booking_id=booking.id,
        )
        self.session.add(entry)
        self.session.flush()

        log_with_context(
            logger, "info", "Wallet credited for booking",
            wallet_id=str(wallet_id),
            booking_id=str(booking.id),
            amount=str(amount),
        )
        return entry

    def withdraw(self, actor: Actor, amount: Amount) -> Tuple[Wallet, WalletTransaction]:
        """Debit the actor's wallet. Models the ledger entry only; there is no payout integration."""
        value = to_money(amount)
        if value <= Decimal("0"):
            self.metrics.increment_withdrawals(outcome="insufficient_funds")
            raise InsufficientFundsException(
                "Withdrawal amount must be greater than zero",
                details={"requested": str(value)},
            )

        with transaction(self.session):
            wallet = self._find(actor.id)
            if wallet is None:
                raise NotFoundException("Wallet", str(actor.id))

            result = self.session.execute(
                update(Wallet)
                .where(Wallet.id == wallet.id, Wallet.balance >= value)
                .values(balance=Wallet.balance - value)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                self.metrics.increment_withdrawals(outcome="insufficient_funds")
                raise InsufficientFundsException(
                    "Insufficient balance",
                    details={"requested": str(value)},
                )

            entry = WalletTransaction(
                wallet_id=wallet.id,
                type=TransactionType.DEBIT,
                amount=value,
                reference="withdrawal",
                status=TransactionStatus.WITHDRAWN,
            )
            self.session.add(entry)

        self.session.refresh(wallet)
        self.metrics.increment_withdrawals(outcome="completed")
        log_with_context(
            logger, "info", "Wallet withdrawal recorded",
            wallet_id=str(wallet.id),
            amount=str(value),
        )
        return wallet, entry

    def _find(self, owner_id: UUID) -> Wallet | None:
        return self.session.execute(
            select(Wallet).where(Wallet.user_id == owner_id)
        ).scalar_one_or_none()
