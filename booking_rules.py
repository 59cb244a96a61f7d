"""
Booking rules: pricing, date ranges and the status state machine.

These functions are pure; db_operations applies them inside transactions.
"""
import math
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, Union

from errors import Conflict, ValidationError
from models import (
    BOOKING_PENDING,
    BOOKING_CONFIRMED,
    BOOKING_ACTIVE,
    BOOKING_COMPLETED,
    BOOKING_CANCELLED,
    BLOCKING_BOOKING_STATUSES,
    VEHICLE_AVAILABLE,
    VEHICLE_RENTED,
)

# Forward order of the lifecycle; cancelled sits outside it
_LIFECYCLE = (BOOKING_PENDING, BOOKING_CONFIRMED, BOOKING_ACTIVE, BOOKING_COMPLETED)
TERMINAL_STATUSES = (BOOKING_COMPLETED, BOOKING_CANCELLED)

DateLike = Union[date, datetime]


def validate_date_range(start_date: date, end_date: date):
    if end_date < start_date:
        raise ValidationError(
            "End date must be on or after start date",
            errors=[{"loc": ["body", "end_date"], "msg": "End date must be on or after start date"}],
        )


def days_between(start: DateLike, end: DateLike) -> int:
    """
    Number of rental days between start and end, rounded up to a whole day.
    Whole dates give the plain calendar-day difference.
    """
    if isinstance(start, datetime) or isinstance(end, datetime):
        if not isinstance(start, datetime):
            start = datetime(start.year, start.month, start.day)
        if not isinstance(end, datetime):
            end = datetime(end.year, end.month, end.day)
        return math.ceil((end - start).total_seconds() / 86400)
    return (end - start).days


def compute_total(start_date: DateLike, end_date: DateLike, daily_rate) -> Decimal:
    """total_amount = ceil(days) * daily_rate, rounded to cents."""
    rate = daily_rate if isinstance(daily_rate, Decimal) else Decimal(str(daily_rate))
    return (Decimal(days_between(start_date, end_date)) * rate).quantize(Decimal("0.01"))


def blocks_vehicle(status: str) -> bool:
    return status in BLOCKING_BOOKING_STATUSES


def check_transition(current: str, new: str):
    """
    Validate a status change.

    Same status is always accepted. Terminal bookings cannot move. Cancelling
    is allowed from any other state; otherwise the lifecycle only moves forward
    (skipping steps is fine, going back is not).
    """
    if current == new:
        return
    if current in TERMINAL_STATUSES:
        raise Conflict(f"Cannot change status of a {current} booking")
    if new == BOOKING_CANCELLED:
        return
    if _LIFECYCLE.index(new) < _LIFECYCLE.index(current):
        raise Conflict(f"Cannot move booking from {current} back to {new}")


def vehicle_status_on_transition(previous: Optional[str], new: str) -> Optional[str]:
    """
    Vehicle status implied by a booking moving from ``previous`` to ``new``
    (``previous`` is None when the booking has just been placed on the vehicle),
    or None when the vehicle is left alone.

    Only the booking holding the vehicle releases it: finishing or cancelling
    a booking that never became active does not touch the vehicle.
    """
    if new == previous:
        return None
    if new == BOOKING_ACTIVE:
        return VEHICLE_RENTED
    if previous == BOOKING_ACTIVE:
        return VEHICLE_AVAILABLE
    return None
