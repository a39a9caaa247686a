"""
Booking model - the agreed job between a client and a provider.
"""
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional
from uuid import uuid4, UUID
import enum

from sqlalchemy import (
    String, Text, Integer, Boolean, Numeric, DateTime, ForeignKey, Uuid,
    Enum as SQLEnum, CheckConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from easyserve.lib.db import Base


class BookingStatus(str, enum.Enum):
    """
    Booking status state machine.
    confirmed → in-progress → payment-released (after both parties complete).
    in-progress → completed is the provider finishing without release.
    confirmed → cancelled; confirmed/in-progress/completed → disputed.
    """
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    DISPUTED = "disputed"
    PAYMENT_RELEASED = "payment-released"


class Booking(Base):
    """
    Booking entity - exactly one per accepted bid (or per fixed-price acceptance).
    completed_by_user can only be set after completed_by_provider.
    """
    __tablename__ = "bookings"

    # Primary key
    id: Mapped[UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid4,
    )

    # Relationships (by id)
    request_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("service_requests.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    bid_id: Mapped[Optional[UUID]] = mapped_column(
        Uuid,
        ForeignKey("bids.id", ondelete="SET NULL"),
        nullable=True,
        unique=True,
    )
    user_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_name: Mapped[str] = mapped_column(String(255), nullable=False)
    provider_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("providers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    provider_name: Mapped[str] = mapped_column(String(255), nullable=False)

    agreed_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    # Status
    status: Mapped[BookingStatus] = mapped_column(
        SQLEnum(BookingStatus, name="booking_status", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=BookingStatus.CONFIRMED,
        index=True,
    )

    # Dual confirmation
    completed_by_provider: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    completed_by_user: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Review
    user_rating: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    user_review: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Payment (stubbed)
    is_paid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        index=True,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        CheckConstraint(
            "user_rating IS NULL OR (user_rating >= 1 AND user_rating <= 5)",
            name="booking_rating_range",
        ),
        CheckConstraint(
            "NOT completed_by_user OR completed_by_provider",
            name="booking_provider_completes_first",
        ),
    )

    def __repr__(self) -> str:
        return f"<Booking(id={self.id}, status={self.status}, agreed_price={self.agreed_price})>"


class BookingMessage(Base):
    """
    Message on a booking thread. Append-only; the autoincrement id is the thread order.
    """
    __tablename__ = "booking_messages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    booking_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("bookings.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    sender_role: Mapped[str] = mapped_column(String(20), nullable=False)
    sender_id: Mapped[UUID] = mapped_column(Uuid, nullable=False)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self) -> str:
        return f"<BookingMessage(id={self.id}, booking_id={self.booking_id}, sender={self.sender_role})>"
