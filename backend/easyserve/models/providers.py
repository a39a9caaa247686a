"""
Provider model - extends User for service providers.
"""
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional
from uuid import UUID

from sqlalchemy import String, Numeric, DateTime, ForeignKey, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from easyserve.lib.db import Base


class Provider(Base):
    """
    Provider entity - service providers (1:1 with User).
    """
    __tablename__ = "providers"

    # Primary key (also foreign key to users)
    id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True,
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Directory attributes
    category_id: Mapped[Optional[UUID]] = mapped_column(
        Uuid,
        ForeignKey("categories.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    area: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, index=True)
    price: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(12, 2),
        nullable=True,
        comment="Advertised base price",
    )
    rating: Mapped[Optional[Decimal]] = mapped_column(Numeric(3, 2), nullable=True)
    image: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self) -> str:
        return f"<Provider(id={self.id}, name={self.name}, category_id={self.category_id})>"
