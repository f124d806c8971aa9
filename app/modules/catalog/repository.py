"""Service catalog repository layer."""

from __future__ import annotations

from collections.abc import Iterable
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.modules.catalog.models import Service


class CatalogRepository:
    """DB access for the service catalog."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create_service(
        self,
        name: str,
        description: str | None,
        category: str,
        base_price: Decimal,
        duration_minutes: int,
    ) -> Service:
        service = Service(
            name=name,
            description=description,
            category=category,
            base_price=base_price,
            duration_minutes=duration_minutes,
            is_active=True,
        )
        self.session.add(service)
        await self.session.flush()
        return service

    async def get_service_by_id(self, service_id: UUID) -> Service | None:
        stmt = select(Service).where(Service.id == service_id)
        return await self.session.scalar(stmt)

    async def get_service_by_name(self, name: str) -> Service | None:
        stmt = select(Service).where(func.lower(Service.name) == name.lower())
        return await self.session.scalar(stmt)

    async def get_services_by_ids(self, service_ids: Iterable[UUID]) -> list[Service]:
        ids = list(set(service_ids))
        if not ids:
            return []
        stmt = select(Service).where(Service.id.in_(ids))
        return list((await self.session.scalars(stmt)).all())

    async def list_services(
        self,
        category: str | None,
        include_inactive: bool,
        limit: int,
        offset: int,
    ) -> tuple[list[Service], int]:
        base_stmt: Select[tuple[Service]] = select(Service)
        if category is not None:
            base_stmt = base_stmt.where(Service.category == category)
        if not include_inactive:
            base_stmt = base_stmt.where(Service.is_active.is_(True))

        count_stmt = select(func.count()).select_from(base_stmt.subquery())
        total = int((await self.session.scalar(count_stmt)) or 0)

        stmt = base_stmt.order_by(Service.category.asc(), Service.name.asc()).limit(limit).offset(offset)
        items = list((await self.session.scalars(stmt)).all())
        return items, total

    async def set_active(self, service: Service, is_active: bool) -> Service:
        service.is_active = is_active
        await self.session.flush()
        return service
