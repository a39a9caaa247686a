"""
Bid model - a provider's offer on a bidding request.
"""
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional
from uuid import uuid4, UUID
import enum

from sqlalchemy import (
    String, Text, Numeric, DateTime, ForeignKey, Uuid, JSON,
    Enum as SQLEnum, UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from easyserve.lib.db import Base


class BidStatus(str, enum.Enum):
    """Bid status: pending until its request is assigned, then accepted or rejected."""
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class Bid(Base):
    """
    Bid entity - one per (service request, provider).
    """
    __tablename__ = "bids"

    id: Mapped[UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid4,
    )

    service_request_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("service_requests.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    provider_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("providers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    provider_name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Offer
    proposed_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    estimated_time: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    attachments: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    status: Mapped[BidStatus] = mapped_column(
        SQLEnum(BidStatus, name="bid_status", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=BidStatus.PENDING,
        index=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        UniqueConstraint("service_request_id", "provider_id", name="bid_one_per_provider"),
    )

    def __repr__(self) -> str:
        return f"<Bid(id={self.id}, amount={self.proposed_amount}, status={self.status})>"
