"""
Database operations for customers, vehicles, bookings and payments.

Every mutating operation runs as one transaction: it either commits all of
its writes or rolls them all back before the error reaches the caller.
"""
from contextlib import asynccontextmanager
from datetime import date
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import IntegrityError
from sqlalchemy import select, update, func, or_
import logging

import booking_rules
from errors import Conflict, NotFound
from models import (
    Customer,
    Vehicle,
    Booking,
    Payment,
    BLOCKING_BOOKING_STATUSES,
    BOOKING_ACTIVE,
    PAYMENT_COMPLETED,
    VEHICLE_AVAILABLE,
    utc_now,
)
from schemas import (
    CustomerIn,
    VehicleIn,
    BookingCreate,
    BookingUpdate,
    BookingDetail,
    BookingQuote,
    PaymentCreate,
    PaymentDetail,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def _transaction(session: AsyncSession, conflict_message: Optional[str] = None):
    """
    Commit the session when the block finishes, roll back on any error.
    Unique/foreign-key violations surface as Conflict when ``conflict_message`` is given.
    """
    try:
        yield
        await session.commit()
    except IntegrityError as e:
        await session.rollback()
        if conflict_message is None:
            raise
        logger.warning(f"Integrity error: {e.orig}")
        raise Conflict(conflict_message) from e
    except Exception:
        await session.rollback()
        raise


def _columns(instance) -> dict:
    """Column values of a mapped instance as a plain dict."""
    return {column.name: getattr(instance, column.name) for column in instance.__table__.columns}


# ---------------------------------------------------------------------------
# Customers

CUSTOMER_CONFLICT = "Email or license number already exists"


async def list_customers(session: AsyncSession, search: Optional[str] = None) -> List[Customer]:
    stmt = select(Customer)
    if search:
        pattern = f"%{search}%"
        stmt = stmt.where(or_(
            Customer.first_name.ilike(pattern),
            Customer.last_name.ilike(pattern),
            Customer.email.ilike(pattern),
            Customer.phone.ilike(pattern),
        ))
    stmt = stmt.order_by(Customer.created_at.desc(), Customer.id.desc())
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def get_customer(session: AsyncSession, customer_id: int) -> Customer:
    customer = await session.get(Customer, customer_id)
    if customer is None:
        raise NotFound("Customer not found")
    return customer


async def create_customer(session: AsyncSession, data: CustomerIn) -> Customer:
    async with _transaction(session, CUSTOMER_CONFLICT):
        customer = Customer(**data.model_dump())
        session.add(customer)
        await session.flush()
    logger.info(f"[INSERT] Customer ID: {customer.id} | {customer.first_name} {customer.last_name}")
    return customer


async def update_customer(session: AsyncSession, customer_id: int, data: CustomerIn) -> Customer:
    """Full-record overwrite of a customer."""
    async with _transaction(session, CUSTOMER_CONFLICT):
        customer = await get_customer(session, customer_id)
        for field, value in data.model_dump().items():
            setattr(customer, field, value)
        customer.updated_at = utc_now()
        await session.flush()
    logger.info(f"[UPDATE] Customer ID: {customer_id}")
    return customer


async def delete_customer(session: AsyncSession, customer_id: int):
    """
    Delete a customer; their bookings (and those bookings' payments) cascade.
    Vehicles rented out on the customer's active bookings become available.
    """
    async with _transaction(session):
        customer = await get_customer(session, customer_id)
        result = await session.execute(
            select(Booking)
            .where(Booking.customer_id == customer_id)
            .where(Booking.status == BOOKING_ACTIVE)
        )
        await _release_vehicles(session, list(result.scalars().all()))
        await session.delete(customer)
    logger.info(f"[DELETE] Customer ID: {customer_id}")


async def list_customer_bookings(session: AsyncSession, customer_id: int) -> List[BookingDetail]:
    await get_customer(session, customer_id)
    return await list_bookings(session, customer_id=customer_id)


# ---------------------------------------------------------------------------
# Vehicles

VEHICLE_CONFLICT = "License plate or VIN already exists"


async def list_vehicles(
    session: AsyncSession,
    status: Optional[str] = None,
    category: Optional[str] = None,
    search: Optional[str] = None,
) -> List[Vehicle]:
    stmt = select(Vehicle)
    if status:
        stmt = stmt.where(Vehicle.status == status)
    if category:
        stmt = stmt.where(Vehicle.category == category)
    if search:
        pattern = f"%{search}%"
        stmt = stmt.where(or_(
            Vehicle.brand.ilike(pattern),
            Vehicle.model.ilike(pattern),
            Vehicle.license_plate.ilike(pattern),
        ))
    stmt = stmt.order_by(Vehicle.created_at.desc(), Vehicle.id.desc())
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def get_vehicle(session: AsyncSession, vehicle_id: int) -> Vehicle:
    vehicle = await session.get(Vehicle, vehicle_id)
    if vehicle is None:
        raise NotFound("Vehicle not found")
    return vehicle


async def create_vehicle(session: AsyncSession, data: VehicleIn) -> Vehicle:
    async with _transaction(session, VEHICLE_CONFLICT):
        vehicle = Vehicle(**data.model_dump())
        session.add(vehicle)
        await session.flush()
    logger.info(f"[INSERT] Vehicle ID: {vehicle.id} | Plate: {vehicle.license_plate} | Rate: {vehicle.daily_rate}")
    return vehicle


async def update_vehicle(session: AsyncSession, vehicle_id: int, data: VehicleIn) -> Vehicle:
    """Full-record overwrite of a vehicle."""
    async with _transaction(session, VEHICLE_CONFLICT):
        vehicle = await get_vehicle(session, vehicle_id)
        for field, value in data.model_dump().items():
            setattr(vehicle, field, value)
        vehicle.updated_at = utc_now()
        await session.flush()
    logger.info(f"[UPDATE] Vehicle ID: {vehicle_id} | Status: {vehicle.status}")
    return vehicle


async def delete_vehicle(session: AsyncSession, vehicle_id: int):
    """Delete a vehicle; its bookings (and their payments) cascade."""
    async with _transaction(session):
        vehicle = await get_vehicle(session, vehicle_id)
        await session.delete(vehicle)
    logger.info(f"[DELETE] Vehicle ID: {vehicle_id}")


# ---------------------------------------------------------------------------
# Bookings

def _booking_detail_query():
    return (
        select(Booking, Customer, Vehicle)
        .join(Customer, Booking.customer_id == Customer.id)
        .join(Vehicle, Booking.vehicle_id == Vehicle.id)
    )


def _to_booking_detail(booking: Booking, customer: Customer, vehicle: Vehicle) -> BookingDetail:
    return BookingDetail(
        **_columns(booking),
        first_name=customer.first_name,
        last_name=customer.last_name,
        email=customer.email,
        phone=customer.phone,
        license_number=customer.license_number,
        brand=vehicle.brand,
        model=vehicle.model,
        license_plate=vehicle.license_plate,
        category=vehicle.category,
        daily_rate=vehicle.daily_rate,
    )


async def list_bookings(
    session: AsyncSession,
    status: Optional[str] = None,
    customer_id: Optional[int] = None,
) -> List[BookingDetail]:
    stmt = _booking_detail_query()
    if status:
        stmt = stmt.where(Booking.status == status)
    if customer_id is not None:
        stmt = stmt.where(Booking.customer_id == customer_id)
    stmt = stmt.order_by(Booking.created_at.desc(), Booking.id.desc())
    result = await session.execute(stmt)
    return [_to_booking_detail(*row) for row in result.all()]


async def get_booking(session: AsyncSession, booking_id: int) -> BookingDetail:
    result = await session.execute(_booking_detail_query().where(Booking.id == booking_id))
    row = result.one_or_none()
    if row is None:
        raise NotFound("Booking not found")
    return _to_booking_detail(*row)


async def list_booking_payments(session: AsyncSession, booking_id: int) -> List[Payment]:
    if await session.get(Booking, booking_id) is None:
        raise NotFound("Booking not found")
    result = await session.execute(
        select(Payment)
        .where(Payment.booking_id == booking_id)
        .order_by(Payment.payment_date.desc(), Payment.id.desc())
    )
    return list(result.scalars().all())


async def _lock_vehicle(session: AsyncSession, vehicle_id: int) -> Vehicle:
    """
    Load a vehicle with a row lock so availability checks for it serialize.
    SQLite has no row locks and ignores FOR UPDATE; its writes are already serialized.
    """
    result = await session.execute(
        select(Vehicle).where(Vehicle.id == vehicle_id).with_for_update()
    )
    vehicle = result.scalar_one_or_none()
    if vehicle is None:
        raise NotFound("Vehicle not found")
    return vehicle


async def has_overlapping_booking(
    session: AsyncSession,
    vehicle_id: int,
    start_date: date,
    end_date: date,
    exclude_booking_id: Optional[int] = None,
) -> bool:
    """
    True when another pending/confirmed/active booking on the vehicle
    intersects [start_date, end_date] (inclusive on both ends).
    """
    stmt = (
        select(func.count(Booking.id))
        .where(Booking.vehicle_id == vehicle_id)
        .where(Booking.status.in_(BLOCKING_BOOKING_STATUSES))
        .where(Booking.start_date <= end_date)
        .where(Booking.end_date >= start_date)
    )
    if exclude_booking_id is not None:
        stmt = stmt.where(Booking.id != exclude_booking_id)
    count = (await session.execute(stmt)).scalar_one()
    return count > 0


async def quote_booking(session: AsyncSession, vehicle_id: int, start_date: date, end_date: date) -> BookingQuote:
    """Price and availability for a draft booking; nothing is written."""
    booking_rules.validate_date_range(start_date, end_date)
    vehicle = await get_vehicle(session, vehicle_id)
    available = not await has_overlapping_booking(session, vehicle_id, start_date, end_date)
    return BookingQuote(
        vehicle_id=vehicle_id,
        start_date=start_date,
        end_date=end_date,
        days=booking_rules.days_between(start_date, end_date),
        daily_rate=vehicle.daily_rate,
        total_amount=booking_rules.compute_total(start_date, end_date, vehicle.daily_rate),
        available=available,
    )


def _set_vehicle_status(vehicle: Vehicle, new_status: Optional[str]):
    if new_status is not None and vehicle.status != new_status:
        logger.info(f"Vehicle ID: {vehicle.id} | Status: {vehicle.status} -> {new_status}")
        vehicle.status = new_status


def _apply_vehicle_status(vehicle: Vehicle, previous_status: Optional[str], booking_status: str):
    _set_vehicle_status(vehicle, booking_rules.vehicle_status_on_transition(previous_status, booking_status))


async def _release_vehicles(session: AsyncSession, bookings: List[Booking]):
    """Free the vehicles held by the active bookings among ``bookings``."""
    for booking in bookings:
        if booking.status == BOOKING_ACTIVE:
            _set_vehicle_status(await _lock_vehicle(session, booking.vehicle_id), VEHICLE_AVAILABLE)


async def create_booking(session: AsyncSession, data: BookingCreate, created_by: Optional[int] = None) -> Booking:
    """
    Create a booking after the availability check, pricing it from the vehicle's daily rate.

    The vehicle row is locked before the overlap query and the insert happens
    in the same transaction, so two requests cannot both book the same dates.

    Raises:
        ValidationError: end_date before start_date
        NotFound: customer or vehicle does not exist
        Conflict: the vehicle is already booked for an intersecting range
    """
    booking_rules.validate_date_range(data.start_date, data.end_date)

    async with _transaction(session):
        await get_customer(session, data.customer_id)
        vehicle = await _lock_vehicle(session, data.vehicle_id)

        if await has_overlapping_booking(session, vehicle.id, data.start_date, data.end_date):
            logger.warning(
                f"Vehicle ID: {vehicle.id} not available for {data.start_date} to {data.end_date}"
            )
            raise Conflict("Vehicle is not available for selected dates")

        booking = Booking(
            **data.model_dump(),
            total_amount=booking_rules.compute_total(data.start_date, data.end_date, vehicle.daily_rate),
            paid_amount=Decimal("0"),
            created_by=created_by,
        )
        session.add(booking)
        _apply_vehicle_status(vehicle, None, booking.status)
        await session.flush()

    logger.info(
        f"[INSERT] Booking ID: {booking.id} | Vehicle: {booking.vehicle_id} | "
        f"{booking.start_date} to {booking.end_date} | Total: {booking.total_amount} | Status: {booking.status}"
    )
    return booking


async def update_booking(session: AsyncSession, booking_id: int, data: BookingUpdate) -> Booking:
    """
    Full-record update of a booking, including its status.

    The total is recomputed from the (possibly new) vehicle and dates and the
    availability check runs again while the booking still holds its vehicle.
    paid_amount is owned by the payment ledger and never taken from input.
    """
    booking_rules.validate_date_range(data.start_date, data.end_date)

    async with _transaction(session):
        booking = await session.get(Booking, booking_id, with_for_update=True)
        if booking is None:
            raise NotFound("Booking not found")

        previous_status = booking.status
        previous_vehicle_id = booking.vehicle_id
        booking_rules.check_transition(previous_status, data.status)

        if data.customer_id != booking.customer_id:
            await get_customer(session, data.customer_id)
        vehicle = await _lock_vehicle(session, data.vehicle_id)

        if booking_rules.blocks_vehicle(data.status) and await has_overlapping_booking(
            session, vehicle.id, data.start_date, data.end_date, exclude_booking_id=booking.id
        ):
            logger.warning(f"Booking ID: {booking_id} update rejected, vehicle {vehicle.id} not available")
            raise Conflict("Vehicle is not available for selected dates")

        for field, value in data.model_dump().items():
            setattr(booking, field, value)
        booking.total_amount = booking_rules.compute_total(data.start_date, data.end_date, vehicle.daily_rate)
        booking.updated_at = utc_now()

        if previous_vehicle_id != vehicle.id:
            # The booking now holds the new vehicle and no longer the old one
            if previous_status == BOOKING_ACTIVE:
                old_vehicle = await _lock_vehicle(session, previous_vehicle_id)
                _set_vehicle_status(old_vehicle, VEHICLE_AVAILABLE)
            _apply_vehicle_status(vehicle, None, data.status)
        else:
            _apply_vehicle_status(vehicle, previous_status, data.status)

        await session.flush()

    logger.info(f"[UPDATE] Booking ID: {booking_id} | Status: {previous_status} -> {booking.status}")
    return booking


async def delete_booking(session: AsyncSession, booking_id: int):
    """Hard delete; the booking's payments cascade with it and an active booking frees its vehicle."""
    async with _transaction(session):
        booking = await session.get(Booking, booking_id)
        if booking is None:
            raise NotFound("Booking not found")
        await _release_vehicles(session, [booking])
        await session.delete(booking)
    logger.info(f"[DELETE] Booking ID: {booking_id}")


# ---------------------------------------------------------------------------
# Payments

async def list_payments(session: AsyncSession) -> List[PaymentDetail]:
    result = await session.execute(
        select(Payment, Customer.first_name, Customer.last_name, Vehicle.brand, Vehicle.model)
        .join(Booking, Payment.booking_id == Booking.id)
        .join(Customer, Booking.customer_id == Customer.id)
        .join(Vehicle, Booking.vehicle_id == Vehicle.id)
        .order_by(Payment.payment_date.desc(), Payment.id.desc())
    )
    return [
        PaymentDetail(**_columns(payment), first_name=first_name, last_name=last_name, brand=brand, model=model)
        for payment, first_name, last_name, brand, model in result.all()
    ]


async def get_payment(session: AsyncSession, payment_id: int) -> Payment:
    payment = await session.get(Payment, payment_id)
    if payment is None:
        raise NotFound("Payment not found")
    return payment


async def create_payment(session: AsyncSession, data: PaymentCreate) -> Payment:
    """
    Record a payment and add its amount to the booking's paid_amount.
    Both writes share one transaction. Overpayment is accepted.
    """
    async with _transaction(session):
        if await session.get(Booking, data.booking_id) is None:
            raise NotFound("Booking not found")

        values = data.model_dump(exclude_none=True)
        payment = Payment(**values, status=PAYMENT_COMPLETED)
        session.add(payment)
        await session.execute(
            update(Booking)
            .where(Booking.id == data.booking_id)
            .values(paid_amount=Booking.paid_amount + data.amount)
        )
        await session.flush()

    logger.info(f"[INSERT] Payment ID: {payment.id} | Booking: {payment.booking_id} | Amount: {payment.amount}")
    return payment


async def delete_payment(session: AsyncSession, payment_id: int):
    """Delete a payment and take its amount back off the booking's paid_amount."""
    async with _transaction(session):
        payment = await get_payment(session, payment_id)
        booking_id, amount = payment.booking_id, payment.amount
        await session.delete(payment)
        await session.execute(
            update(Booking)
            .where(Booking.id == booking_id)
            .values(paid_amount=Booking.paid_amount - amount)
        )
    logger.info(f"[DELETE] Payment ID: {payment_id} | Booking: {booking_id} | Amount: {amount}")
