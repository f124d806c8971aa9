"""Customer cancellation notice policy.

Cancelling inside the notice window before the appointment forfeits the
refund and has to be acknowledged. Once the appointment has started the
customer can no longer cancel; staff use a status update instead.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta

from app.core.enums import BookingStatusEnum
from app.modules.booking.state_machine import can_transition
from app.shared.utils import local_start_at


@dataclass(frozen=True, slots=True)
class CancellationPolicy:
    starts_at: datetime
    hours_until_start: float
    within_notice_window: bool
    refund_eligible: bool
    can_cancel: bool


def evaluate_cancellation(
    status: BookingStatusEnum,
    slot_date: date,
    start_time: time,
    now: datetime,
    notice_hours: int,
    tz_name: str,
) -> CancellationPolicy:
    starts_at = local_start_at(slot_date, start_time, tz_name)
    remaining = starts_at - now
    # the boundary itself counts as inside the window
    within_window = remaining <= timedelta(hours=notice_hours)
    return CancellationPolicy(
        starts_at=starts_at,
        hours_until_start=max(remaining.total_seconds() / 3600, 0.0),
        within_notice_window=within_window,
        refund_eligible=not within_window,
        can_cancel=can_transition(status, BookingStatusEnum.CANCELLED) and remaining > timedelta(0),
    )
