"""Legal booking status transitions."""

from __future__ import annotations

from app.core.enums import BookingStatusEnum
from app.shared.exceptions import InvalidTransitionException

OCCUPYING_STATUSES = frozenset(
    {
        BookingStatusEnum.PENDING,
        BookingStatusEnum.PAYMENT_FAILED,
        BookingStatusEnum.CONFIRMED,
        BookingStatusEnum.IN_PROGRESS,
    },
)
TERMINAL_STATUSES = frozenset(
    {
        BookingStatusEnum.COMPLETED,
        BookingStatusEnum.CANCELLED,
        BookingStatusEnum.NO_SHOW,
        BookingStatusEnum.DECLINED,
    },
)
# Completed bookings keep their occupancy record.
RELEASING_STATUSES = frozenset(
    {
        BookingStatusEnum.CANCELLED,
        BookingStatusEnum.NO_SHOW,
        BookingStatusEnum.DECLINED,
    },
)
RESCHEDULABLE_STATUSES = frozenset(
    {
        BookingStatusEnum.PENDING,
        BookingStatusEnum.CONFIRMED,
        BookingStatusEnum.IN_PROGRESS,
    },
)

ALLOWED_TRANSITIONS: dict[BookingStatusEnum, frozenset[BookingStatusEnum]] = {
    BookingStatusEnum.PENDING: frozenset(
        {
            BookingStatusEnum.CONFIRMED,
            BookingStatusEnum.PAYMENT_FAILED,
            BookingStatusEnum.CANCELLED,
            BookingStatusEnum.DECLINED,
        },
    ),
    BookingStatusEnum.PAYMENT_FAILED: frozenset(
        {
            BookingStatusEnum.CONFIRMED,
            BookingStatusEnum.CANCELLED,
        },
    ),
    BookingStatusEnum.CONFIRMED: frozenset(
        {
            BookingStatusEnum.IN_PROGRESS,
            BookingStatusEnum.CANCELLED,
        },
    ),
    BookingStatusEnum.IN_PROGRESS: frozenset(
        {
            BookingStatusEnum.COMPLETED,
            BookingStatusEnum.NO_SHOW,
            BookingStatusEnum.CANCELLED,
        },
    ),
    BookingStatusEnum.COMPLETED: frozenset(),
    BookingStatusEnum.CANCELLED: frozenset(),
    BookingStatusEnum.NO_SHOW: frozenset(),
    BookingStatusEnum.DECLINED: frozenset(),
}

_REASON_REQUIRED = frozenset(
    {
        (BookingStatusEnum.CONFIRMED, BookingStatusEnum.CANCELLED),
        (BookingStatusEnum.IN_PROGRESS, BookingStatusEnum.CANCELLED),
    },
)


def can_transition(current: BookingStatusEnum, target: BookingStatusEnum) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def ensure_transition(current: BookingStatusEnum, target: BookingStatusEnum) -> None:
    """Raise InvalidTransitionException for an unreachable target."""
    if not can_transition(current, target):
        raise InvalidTransitionException(
            f"Cannot move booking from {current.value} to {target.value}",
        )


def requires_reason(current: BookingStatusEnum, target: BookingStatusEnum) -> bool:
    return (current, target) in _REASON_REQUIRED
