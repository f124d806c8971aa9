"""Executable worker that cancels bookings past their payment deadline."""

from __future__ import annotations

import asyncio
import logging
import os

from app.core.database import SessionLocal
from app.modules.booking.service import build_booking_service

logger = logging.getLogger(__name__)


async def run_cycle() -> int:
    """Run a single deadline sweep in one DB transaction."""
    async with SessionLocal() as session:
        try:
            expired = await build_booking_service(session).expire_overdue_payments()
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        return expired


async def main() -> None:
    """Run once or keep polling according to worker mode."""
    logging.basicConfig(level=os.getenv("PAYMENT_DEADLINE_WORKER_LOG_LEVEL", "INFO"))
    mode = os.getenv("PAYMENT_DEADLINE_WORKER_MODE", "once").strip().lower()
    poll_seconds = int(os.getenv("PAYMENT_DEADLINE_WORKER_POLL_SECONDS", "60"))

    if mode == "once":
        expired = await run_cycle()
        logger.info("Payment deadline worker expired %s bookings", expired)
        return

    while True:
        try:
            expired = await run_cycle()
            logger.info("Payment deadline worker expired %s bookings", expired)
        except Exception:
            logger.exception("Payment deadline worker cycle failed")
        await asyncio.sleep(poll_seconds)


if __name__ == "__main__":
    asyncio.run(main())
