"""Service catalog business logic layer."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db_session
from app.modules.audit.repository import AuditRepository
from app.modules.catalog.models import Service
from app.modules.catalog.repository import CatalogRepository
from app.modules.catalog.schemas import ServiceCreate, ServiceSelection
from app.shared.exceptions import ConflictException, NotFoundException, ValidationException

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SelectedService:
    """Catalog service resolved for pricing and booking snapshots."""

    service_id: UUID
    name: str
    unit_price: Decimal
    duration_minutes: int
    quantity: int

    @property
    def total_duration_minutes(self) -> int:
        return self.duration_minutes * self.quantity

    def snapshot(self) -> dict:
        return {
            "service_id": str(self.service_id),
            "name": self.name,
            "quantity": self.quantity,
            "unit_price": str(self.unit_price),
            "duration_minutes": self.duration_minutes,
        }


async def resolve_selected_services(
    repository: CatalogRepository,
    selections: Sequence[ServiceSelection],
) -> list[SelectedService]:
    """Resolve customer selections against active catalog entries."""
    if not selections:
        raise ValidationException("At least one service is required")

    seen: set[UUID] = set()
    for selection in selections:
        if selection.service_id in seen:
            raise ValidationException("Each service may be selected only once; use quantity instead")
        seen.add(selection.service_id)

    services = {
        service.id: service
        for service in await repository.get_services_by_ids(selection.service_id for selection in selections)
    }

    resolved: list[SelectedService] = []
    for selection in selections:
        service = services.get(selection.service_id)
        if service is None:
            raise NotFoundException(f"Service {selection.service_id} not found")
        if not service.is_active:
            raise ValidationException(f"Service '{service.name}' is no longer offered")
        resolved.append(
            SelectedService(
                service_id=service.id,
                name=service.name,
                unit_price=Decimal(service.base_price),
                duration_minutes=service.duration_minutes,
                quantity=selection.quantity,
            ),
        )
    return resolved


class CatalogService:
    """Catalog administration service."""

    def __init__(
        self,
        repository: CatalogRepository,
        audit_repository: AuditRepository,
    ) -> None:
        self.repository = repository
        self.audit_repository = audit_repository

    async def create_service(self, payload: ServiceCreate) -> Service:
        """Add a service to the catalog."""
        if await self.repository.get_service_by_name(payload.name) is not None:
            raise ConflictException(f"Service '{payload.name}' already exists")

        service = await self.repository.create_service(
            name=payload.name,
            description=payload.description,
            category=payload.category,
            base_price=payload.base_price,
            duration_minutes=payload.duration_minutes,
        )
        await self.audit_repository.create_audit_log(
            actor="admin",
            action="catalog.service.create",
            entity_type="service",
            entity_id=str(service.id),
            payload={
                "name": service.name,
                "base_price": str(service.base_price),
                "duration_minutes": service.duration_minutes,
            },
        )
        logger.info("Catalog service created: %s", service.name)
        return service

    async def list_services(
        self,
        category: str | None,
        include_inactive: bool,
        limit: int,
        offset: int,
    ) -> tuple[list[Service], int]:
        """List catalog services."""
        return await self.repository.list_services(
            category=category,
            include_inactive=include_inactive,
            limit=limit,
            offset=offset,
        )

    async def deactivate_service(self, service_id: UUID) -> Service:
        """Retire a service; existing bookings keep their snapshot."""
        service = await self.repository.get_service_by_id(service_id)
        if service is None:
            raise NotFoundException("Service not found")
        if not service.is_active:
            return service

        service = await self.repository.set_active(service, False)
        await self.audit_repository.create_audit_log(
            actor="admin",
            action="catalog.service.deactivate",
            entity_type="service",
            entity_id=str(service.id),
            payload={"name": service.name},
        )
        return service


async def get_catalog_service(session: AsyncSession = Depends(get_db_session)) -> CatalogService:
    """Dependency provider for catalog service."""
    return CatalogService(
        repository=CatalogRepository(session),
        audit_repository=AuditRepository(session),
    )
