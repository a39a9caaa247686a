"""
ServiceRequest model - a client's request for a service, priced fixed or open for bids.
"""
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional
from uuid import uuid4, UUID
import enum

from sqlalchemy import (
    String, Text, Numeric, DateTime, ForeignKey, Uuid, JSON,
    Enum as SQLEnum, CheckConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from easyserve.lib.db import Base


class RequestType(str, enum.Enum):
    """Pricing mode of a request."""
    FIXED = "fixed"
    BIDDING = "bidding"


class RequestStatus(str, enum.Enum):
    """
    Request status state machine.
    open → bidding (first bid) → assigned (exactly once) → in-progress → completed.
    open/bidding → cancelled by the owner.
    """
    OPEN = "open"
    BIDDING = "bidding"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# Statuses from which a request can still be assigned
ASSIGNABLE_STATUSES = (RequestStatus.OPEN, RequestStatus.BIDDING)


class ServiceRequest(Base):
    """
    ServiceRequest entity.
    fixed_amount is set iff request_type is fixed; bid range/end date only for bidding.
    assigned_provider_id and final_amount are written once, at assignment.
    """
    __tablename__ = "service_requests"

    id: Mapped[UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid4,
    )

    # Requester
    user_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Category
    category_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("categories.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    category_name: Mapped[str] = mapped_column(String(100), nullable=False)

    description: Mapped[str] = mapped_column(Text, nullable=False)

    # Pricing
    request_type: Mapped[RequestType] = mapped_column(
        SQLEnum(RequestType, name="request_type", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        index=True,
    )
    fixed_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    min_bid_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    max_bid_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    bidding_end_date: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # Status
    status: Mapped[RequestStatus] = mapped_column(
        SQLEnum(RequestStatus, name="request_status", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=RequestStatus.OPEN,
        index=True,
    )

    # Assignment
    assigned_provider_id: Mapped[Optional[UUID]] = mapped_column(
        Uuid,
        ForeignKey("providers.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    assigned_provider_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    final_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    accepted_bid_id: Mapped[Optional[UUID]] = mapped_column(
        Uuid,
        nullable=True,
        comment="Winning bid; null for fixed-price assignment",
    )

    images: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

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
            "(request_type = 'fixed' AND fixed_amount IS NOT NULL "
            "AND min_bid_amount IS NULL AND max_bid_amount IS NULL AND bidding_end_date IS NULL) "
            "OR (request_type = 'bidding' AND fixed_amount IS NULL)",
            name="service_request_pricing_matches_type",
        ),
    )

    def __repr__(self) -> str:
        return f"<ServiceRequest(id={self.id}, type={self.request_type}, status={self.status})>"
