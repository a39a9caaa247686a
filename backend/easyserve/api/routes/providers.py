"""
Provider directory API routes.
"""
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.orm import Session

from easyserve.api.dependencies import get_db
from easyserve.api.middleware.error_handler import NotFoundException
from easyserve.api.schemas import ProviderResponse
from easyserve.models.providers import Provider


# Router
router = APIRouter(prefix="/providers", tags=["providers"])


@router.get("", response_model=List[ProviderResponse])
def list_providers(
    category_id: Optional[UUID] = Query(None, alias="categoryId", description="Filter by category"),
    area: Optional[str] = Query(None, description="Filter by service area"),
    price: Optional[float] = Query(None, description="Maximum advertised price"),
    db: Session = Depends(get_db),
) -> List[ProviderResponse]:
    """
    List providers.

    Query parameters:
    - categoryId: Only providers in this category
    - area: Only providers serving this area (case-insensitive)
    - price: Only providers advertising at most this price

    Returns:
        Providers ordered by rating, best first
    """
    stmt = select(Provider)

    if category_id:
        stmt = stmt.where(Provider.category_id == category_id)

    if area:
        stmt = stmt.where(Provider.area.ilike(area))

    if price is not None:
        stmt = stmt.where(Provider.price <= price)

    stmt = stmt.order_by(Provider.rating.desc().nulls_last(), Provider.name)

    providers = db.execute(stmt).scalars().all()
    return [ProviderResponse.model_validate(p) for p in providers]


@router.get("/{provider_id}", response_model=ProviderResponse)
def get_provider(provider_id: UUID, db: Session = Depends(get_db)) -> ProviderResponse:
    provider = db.get(Provider, provider_id)
    if provider is None:
        raise NotFoundException("Provider", str(provider_id))
    return ProviderResponse.model_validate(provider)
