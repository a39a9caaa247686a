"""
Category API routes.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, status
from pydantic import Field
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from easyserve.api.dependencies import get_current_actor, get_db
from easyserve.api.middleware.error_handler import BadRequestException, ConflictException
from easyserve.api.schemas import CamelModel, CategoryResponse
from easyserve.lib.db import transaction
from easyserve.models.categories import Category
from easyserve.services.actor import Actor


class CreateCategoryRequest(CamelModel):
    name: str = Field(..., description="Category name", examples=["Plumbing"])
    icon: Optional[str] = Field(None, description="Icon name shown by the client")


# Router
router = APIRouter(prefix="/categories", tags=["categories"])


@router.get("", response_model=List[CategoryResponse])
def list_categories(db: Session = Depends(get_db)) -> List[CategoryResponse]:
    """List all service categories, alphabetically."""
    categories = db.execute(select(Category).order_by(Category.name)).scalars().all()
    return [CategoryResponse.model_validate(c) for c in categories]


@router.post("", response_model=CategoryResponse, status_code=status.HTTP_201_CREATED)
def create_category(
    request: CreateCategoryRequest,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
) -> CategoryResponse:
    """
    Create a category.

    Errors:
    - 400: Empty name
    - 409: A category with this name already exists
    """
    name = request.name.strip()
    if not name:
        raise BadRequestException("Category name is required")

    try:
        with transaction(db):
            category = Category(name=name, icon=request.icon)
            db.add(category)
    except IntegrityError:
        raise ConflictException("Category already exists") from None

    return CategoryResponse.model_validate(category)
