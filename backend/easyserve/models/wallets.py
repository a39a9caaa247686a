"""
Wallet models - provider earnings balance and its transaction ledger.
"""
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional
from uuid import uuid4, UUID
import enum

from sqlalchemy import (
    String, Integer, Numeric, DateTime, ForeignKey, Uuid,
    Enum as SQLEnum, CheckConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from easyserve.lib.db import Base


class TransactionType(str, enum.Enum):
    CREDIT = "credit"
    DEBIT = "debit"


class TransactionStatus(str, enum.Enum):
    COMPLETED = "completed"
    WITHDRAWN = "withdrawn"


class Wallet(Base):
    """
    Wallet entity - one per provider.
    balance only grows through booking settlement and only shrinks through withdrawal;
    total_earned never decreases.
    """
    __tablename__ = "wallets"

    id: Mapped[UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid4,
    )
    user_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        index=True,
    )

    balance: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    held_balance: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    total_earned: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        CheckConstraint("balance >= 0", name="wallet_balance_non_negative"),
    )

    def __repr__(self) -> str:
        return f"<Wallet(user_id={self.user_id}, balance={self.balance})>"


class WalletTransaction(Base):
    """
    Ledger entry on a wallet. The autoincrement id gives the append order.
    """
    __tablename__ = "wallet_transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    wallet_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("wallets.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    type: Mapped[TransactionType] = mapped_column(
        SQLEnum(TransactionType, name="transaction_type", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    reference: Mapped[str] = mapped_column(String(100), nullable=False)
    status: Mapped[TransactionStatus] = mapped_column(
        SQLEnum(TransactionStatus, name="transaction_status", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    booking_id: Mapped[Optional[UUID]] = mapped_column(
        Uuid,
        ForeignKey("bookings.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        CheckConstraint("amount > 0", name="wallet_transaction_amount_positive"),
    )

    def __repr__(self) -> str:
        return f"<WalletTransaction(id={self.id}, type={self.type}, amount={self.amount})>"
