"""Core enums used across modules."""

from enum import StrEnum


class VehicleSizeEnum(StrEnum):
    """Vehicle size category used for pricing."""

    S = "S"
    M = "M"
    L = "L"
    XL = "XL"


class BookingStatusEnum(StrEnum):
    """Booking lifecycle status."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"
    PAYMENT_FAILED = "payment_failed"
    DECLINED = "declined"


class PaymentStatusEnum(StrEnum):
    """Booking payment status."""

    PENDING = "pending"
    AWAITING_PAYMENT = "awaiting_payment"
    PAID = "paid"
    PAYMENT_FAILED = "payment_failed"
    REFUNDED = "refunded"


class RescheduleStatusEnum(StrEnum):
    """Reschedule request status."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class RescheduleActionEnum(StrEnum):
    """Admin decision on a reschedule request."""

    APPROVE = "approve"
    REJECT = "reject"


class ReservationStatusEnum(StrEnum):
    """Slot capacity reservation status."""

    ACTIVE = "active"
    RELEASED = "released"


class OutboxStatusEnum(StrEnum):
    """Outbox event status for integration publishing."""

    PENDING = "pending"
    PROCESSED = "processed"
    FAILED = "failed"
