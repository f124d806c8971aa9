"""Seed idempotent demo data for local/non-production environments."""

from __future__ import annotations

import argparse
import asyncio
from dataclasses import dataclass
from datetime import UTC, date, datetime, time, timedelta
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.database import SessionLocal, close_engine
from app.modules.audit.repository import AuditRepository
from app.modules.catalog.repository import CatalogRepository
from app.modules.catalog.schemas import ServiceCreate
from app.modules.catalog.service import CatalogService
from app.modules.scheduling.models import TimeSlot
from app.modules.scheduling.repository import SchedulingRepository
from app.modules.scheduling.schemas import DaySlotsCreate
from app.modules.scheduling.service import SchedulingService

DEMO_SERVICES = (
    ("Mini Valet", "valet", Decimal("25.00"), 60, "Exterior wash, wheels and interior vacuum."),
    ("Full Valet", "valet", Decimal("45.00"), 120, "Full interior and exterior clean."),
    ("Quick Wash", "wash", Decimal("20.00"), 45, "Snow foam, hand wash and dry."),
    ("Interior Deep Clean", "interior", Decimal("35.00"), 90, "Seats, carpets and trim shampoo."),
)

DEMO_SLOT_DAYS = 14
DEMO_DAY_START = time(hour=9)
DEMO_DAY_END = time(hour=17)
DEMO_SLOT_UNIT_MINUTES = 60
DEMO_DAY_CAPACITY = 2


@dataclass(slots=True)
class SeedStats:
    services_created: int = 0
    days_created: int = 0
    slots_created: int = 0


async def _ensure_services(session: AsyncSession) -> int:
    repository = CatalogRepository(session)
    catalog_service = CatalogService(repository, AuditRepository(session))
    created = 0
    for name, category, base_price, duration, description in DEMO_SERVICES:
        if await repository.get_service_by_name(name) is not None:
            continue
        await catalog_service.create_service(
            ServiceCreate(
                name=name,
                category=category,
                base_price=base_price,
                duration_minutes=duration,
                description=description,
            ),
        )
        created += 1
    return created


def _build_demo_days(today: date) -> list[date]:
    days: list[date] = []
    for offset in range(1, DEMO_SLOT_DAYS + 1):
        target = today + timedelta(days=offset)
        # closed on Sundays
        if target.weekday() == 6:
            continue
        days.append(target)
    return days


async def _ensure_demo_slots(session: AsyncSession, business_timezone: str) -> tuple[int, int]:
    scheduling_service = SchedulingService(
        SchedulingRepository(session),
        AuditRepository(session),
        business_timezone=business_timezone,
    )
    days_created = 0
    slots_created = 0

    for slot_date in _build_demo_days(datetime.now(UTC).date()):
        existing = await session.scalar(select(TimeSlot.id).where(TimeSlot.slot_date == slot_date).limit(1))
        if existing is not None:
            continue

        slots = await scheduling_service.bulk_create_day(
            DaySlotsCreate(
                slot_date=slot_date,
                first_start=DEMO_DAY_START,
                last_end=DEMO_DAY_END,
                unit_minutes=DEMO_SLOT_UNIT_MINUTES,
                capacity=DEMO_DAY_CAPACITY,
            ),
        )
        days_created += 1
        slots_created += len(slots)

    await session.flush()
    return days_created, slots_created


async def _run_seed(*, allow_production: bool) -> SeedStats:
    settings = get_settings()
    app_env = settings.app_env.strip().lower()
    if app_env in {"production", "prod"} and not allow_production:
        raise RuntimeError(
            "Refusing to seed demo data in production. "
            "Re-run with --allow-production only if you are absolutely sure.",
        )

    stats = SeedStats()

    async with SessionLocal() as session:
        try:
            stats.services_created = await _ensure_services(session)
            stats.days_created, stats.slots_created = await _ensure_demo_slots(
                session,
                settings.business_timezone,
            )
            await session.commit()
        except Exception:
            await session.rollback()
            raise

    return stats


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Seed idempotent demo data for Love4Detailing (service catalog, slot units).",
    )
    parser.add_argument(
        "--allow-production",
        action="store_true",
        help="Allow seeding even when APP_ENV is production/prod.",
    )
    return parser


def _print_summary(stats: SeedStats) -> None:
    print("Demo seed completed.")
    print(f"- Services created: {stats.services_created}")
    print(f"- Days configured: {stats.days_created}")
    print(f"- Slot units created: {stats.slots_created}")


def main() -> int:
    parser = _build_parser()
    args = parser.parse_args()

    try:
        stats = asyncio.run(_run_seed(allow_production=args.allow_production))
    except Exception as exc:
        print(f"Demo seed failed: {exc}")
        return 1
    finally:
        asyncio.run(close_engine())

    _print_summary(stats)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
