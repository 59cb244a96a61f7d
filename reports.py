"""
Read-only dashboard aggregates, recomputed on every request.
"""
from collections import OrderedDict
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
import logging

from models import (
    Customer,
    Vehicle,
    Booking,
    Payment,
    VEHICLE_AVAILABLE,
    VEHICLE_RENTED,
    VEHICLE_MAINTENANCE,
    BOOKING_ACTIVE,
    BOOKING_CONFIRMED,
    BOOKING_PENDING,
)
from schemas import DashboardStats, RecentBooking, RevenuePoint, PopularVehicle

logger = logging.getLogger(__name__)

RECENT_BOOKINGS_LIMIT = 10
POPULAR_VEHICLES_LIMIT = 5
REVENUE_CHART_MONTHS = 6


def month_start(day: date, months_back: int = 0) -> datetime:
    """Midnight UTC on the first day of the month ``months_back`` months before ``day``."""
    index = day.year * 12 + (day.month - 1) - months_back
    return datetime(index // 12, index % 12 + 1, 1, tzinfo=timezone.utc)


def _today(today: Optional[date]) -> date:
    return today or datetime.now(timezone.utc).date()


async def _count(session: AsyncSession, stmt) -> int:
    return (await session.execute(stmt)).scalar_one()


async def _revenue(session: AsyncSession, *conditions) -> Decimal:
    stmt = select(func.coalesce(func.sum(Payment.amount), 0))
    if conditions:
        stmt = stmt.where(*conditions)
    return Decimal(str((await session.execute(stmt)).scalar_one()))


async def get_stats(session: AsyncSession, today: Optional[date] = None) -> DashboardStats:
    """
    Fleet, customer and booking counts plus revenue for the current calendar
    month and for all time.
    """
    today = _today(today)
    this_month = month_start(today)
    next_month = month_start(today, months_back=-1)

    vehicle_counts = dict(
        (await session.execute(select(Vehicle.status, func.count(Vehicle.id)).group_by(Vehicle.status))).all()
    )
    booking_counts = dict(
        (await session.execute(select(Booking.status, func.count(Booking.id)).group_by(Booking.status))).all()
    )

    stats = DashboardStats(
        total_vehicles=sum(vehicle_counts.values()),
        available_vehicles=vehicle_counts.get(VEHICLE_AVAILABLE, 0),
        rented_vehicles=vehicle_counts.get(VEHICLE_RENTED, 0),
        maintenance_vehicles=vehicle_counts.get(VEHICLE_MAINTENANCE, 0),
        total_customers=await _count(session, select(func.count(Customer.id))),
        active_bookings=booking_counts.get(BOOKING_ACTIVE, 0) + booking_counts.get(BOOKING_CONFIRMED, 0),
        pending_bookings=booking_counts.get(BOOKING_PENDING, 0),
        monthly_revenue=await _revenue(
            session, Payment.payment_date >= this_month, Payment.payment_date < next_month
        ),
        total_revenue=await _revenue(session),
    )
    logger.info(f"Dashboard stats computed for {today:%Y-%m}")
    return stats


async def get_recent_bookings(session: AsyncSession, limit: int = RECENT_BOOKINGS_LIMIT) -> List[RecentBooking]:
    result = await session.execute(
        select(
            Booking.id,
            Booking.start_date,
            Booking.end_date,
            Booking.status,
            Booking.total_amount,
            Customer.first_name,
            Customer.last_name,
            Vehicle.brand,
            Vehicle.model,
        )
        .join(Customer, Booking.customer_id == Customer.id)
        .join(Vehicle, Booking.vehicle_id == Vehicle.id)
        .order_by(Booking.created_at.desc(), Booking.id.desc())
        .limit(limit)
    )
    return [RecentBooking(**row._mapping) for row in result.all()]


async def get_revenue_chart(
    session: AsyncSession,
    today: Optional[date] = None,
    months: int = REVENUE_CHART_MONTHS,
) -> List[RevenuePoint]:
    """
    Revenue per calendar month for the trailing ``months`` months (the current
    month included), oldest first. Months without payments are omitted.
    """
    today = _today(today)
    since = month_start(today, months_back=months - 1)
    until = month_start(today, months_back=-1)

    result = await session.execute(
        select(Payment.payment_date, Payment.amount)
        .where(Payment.payment_date >= since, Payment.payment_date < until)
        .order_by(Payment.payment_date)
    )

    # Grouped here rather than in SQL: month formatting differs between SQLite and PostgreSQL
    totals = OrderedDict()
    for payment_date, amount in result.all():
        month = payment_date.strftime("%Y-%m")
        totals[month] = totals.get(month, Decimal("0")) + amount
    return [RevenuePoint(month=month, revenue=revenue) for month, revenue in totals.items()]


async def get_popular_vehicles(session: AsyncSession, limit: int = POPULAR_VEHICLES_LIMIT) -> List[PopularVehicle]:
    """Vehicles ranked by number of bookings of any status, including cancelled ones."""
    booking_count = func.count(Booking.id).label("booking_count")
    result = await session.execute(
        select(Vehicle.id, Vehicle.brand, Vehicle.model, Vehicle.category, booking_count)
        .outerjoin(Booking, Vehicle.id == Booking.vehicle_id)
        .group_by(Vehicle.id, Vehicle.brand, Vehicle.model, Vehicle.category)
        .order_by(booking_count.desc(), Vehicle.id)
        .limit(limit)
    )
    return [PopularVehicle(**row._mapping) for row in result.all()]
