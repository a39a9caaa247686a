"""
Category model - kinds of service a request can be filed under.
"""
from typing import Optional
from uuid import uuid4, UUID

from sqlalchemy import String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from easyserve.lib.db import Base


class Category(Base):
    """
    Category entity - service categories (cleaning, plumbing, ...).
    """
    __tablename__ = "categories"

    id: Mapped[UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid4,
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True, index=True)
    icon: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    def __repr__(self) -> str:
        return f"<Category(id={self.id}, name={self.name})>"
