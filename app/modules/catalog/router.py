"""Service catalog API router."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from app.modules.catalog.schemas import ServiceCreate, ServiceRead
from app.modules.catalog.service import CatalogService, get_catalog_service
from app.shared.pagination import Page, build_page, get_pagination_params

router = APIRouter(prefix="/catalog", tags=["catalog"])


@router.get("/services", response_model=Page[ServiceRead])
async def list_services(
    category: str | None = Query(default=None),
    include_inactive: bool = Query(default=False),
    pagination=Depends(get_pagination_params),
    service: CatalogService = Depends(get_catalog_service),
) -> Page[ServiceRead]:
    """List catalog services."""
    items, total = await service.list_services(
        category,
        include_inactive,
        pagination.limit,
        pagination.offset,
    )
    serialized = [ServiceRead.model_validate(item) for item in items]
    return build_page(serialized, total, pagination)


@router.post("/services", response_model=ServiceRead, status_code=status.HTTP_201_CREATED)
async def create_service(
    payload: ServiceCreate,
    service: CatalogService = Depends(get_catalog_service),
) -> ServiceRead:
    """Add service to catalog."""
    created = await service.create_service(payload)
    return ServiceRead.model_validate(created)


@router.post("/services/{service_id}/deactivate", response_model=ServiceRead)
async def deactivate_service(
    service_id: UUID,
    service: CatalogService = Depends(get_catalog_service),
) -> ServiceRead:
    """Retire a catalog service."""
    retired = await service.deactivate_service(service_id)
    return ServiceRead.model_validate(retired)
