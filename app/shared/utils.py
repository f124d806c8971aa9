"""Shared utility functions."""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo


def utc_now() -> datetime:
    """Return aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """Normalize datetime to UTC timezone."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def local_start_at(slot_date: date, start_time: time, tz_name: str) -> datetime:
    """Combine business-local date and time into an aware UTC datetime."""
    local = datetime.combine(slot_date, start_time, tzinfo=ZoneInfo(tz_name))
    return local.astimezone(timezone.utc)


def minutes_of_day(value: time) -> int:
    """Return minutes elapsed since midnight."""
    return value.hour * 60 + value.minute


def add_minutes(value: time, minutes: int) -> time:
    """Shift a time of day; callers must keep the result within the same day."""
    shifted = datetime.combine(date.min, value) + timedelta(minutes=minutes)
    return shifted.time()
