"""Reschedule request repository layer."""

from __future__ import annotations

from datetime import date, time
from uuid import UUID

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.enums import RescheduleStatusEnum
from app.modules.reschedule.models import RescheduleRequest


class RescheduleRepository:
    """DB operations for reschedule requests."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create_request(
        self,
        booking_id: UUID,
        requested_date: date,
        requested_time: time,
        original_date: date,
        original_time: time,
        reason: str | None,
    ) -> RescheduleRequest:
        request = RescheduleRequest(
            booking_id=booking_id,
            requested_date=requested_date,
            requested_time=requested_time,
            original_date=original_date,
            original_time=original_time,
            reason=reason,
            status=RescheduleStatusEnum.PENDING,
        )
        self.session.add(request)
        await self.session.flush()
        return request

    async def get_request_by_id(self, request_id: UUID, for_update: bool = False) -> RescheduleRequest | None:
        stmt = select(RescheduleRequest).where(RescheduleRequest.id == request_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return await self.session.scalar(stmt)

    async def list_requests(
        self,
        status: RescheduleStatusEnum | None,
        booking_id: UUID | None,
        limit: int,
        offset: int,
    ) -> tuple[list[RescheduleRequest], int]:
        base_stmt: Select[tuple[RescheduleRequest]] = select(RescheduleRequest)
        if status is not None:
            base_stmt = base_stmt.where(RescheduleRequest.status == status)
        if booking_id is not None:
            base_stmt = base_stmt.where(RescheduleRequest.booking_id == booking_id)

        count_stmt = select(func.count()).select_from(base_stmt.subquery())
        total = int((await self.session.scalar(count_stmt)) or 0)

        stmt = base_stmt.order_by(RescheduleRequest.created_at.desc()).limit(limit).offset(offset)
        items = list((await self.session.scalars(stmt)).all())
        return items, total

    async def save(self, request: RescheduleRequest) -> RescheduleRequest:
        await self.session.flush()
        return request
