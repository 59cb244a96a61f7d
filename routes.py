"""
API routes/endpoints for the application.

Handlers call the storage operations and shape the JSON responses. Errors
raised below them (errors.ServiceError, SQLAlchemy errors) are turned into
``{"error": ...}`` responses by the exception handlers registered in main.py.
"""
from datetime import date
from typing import Iterable, Optional

from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession
import logging

import db_operations
import reports
from schemas import (
    CustomerIn,
    CustomerOut,
    VehicleIn,
    VehicleOut,
    BookingCreate,
    BookingUpdate,
    BookingOut,
    PaymentCreate,
    PaymentOut,
)

logger = logging.getLogger(__name__)


def _dump(item) -> dict:
    return item.model_dump(mode="json")


def _list_response(items: Iterable[BaseModel]) -> dict:
    data = [_dump(item) for item in items]
    return {"success": True, "total": len(data), "data": data}


def _created(message: str, record: BaseModel) -> JSONResponse:
    return JSONResponse(
        status_code=201,
        content={"success": True, "message": message, "id": record.id, "data": _dump(record)},
    )


def _updated(message: str, record: BaseModel) -> dict:
    return {"success": True, "message": message, "data": _dump(record)}


def _deleted(message: str) -> dict:
    return {"success": True, "message": message}


# Customers

async def list_customers_route(session: AsyncSession, search: Optional[str] = None):
    customers = await db_operations.list_customers(session, search)
    return _list_response(CustomerOut.model_validate(c) for c in customers)


async def get_customer_route(session: AsyncSession, customer_id: int):
    return _dump(CustomerOut.model_validate(await db_operations.get_customer(session, customer_id)))


async def get_customer_bookings_route(session: AsyncSession, customer_id: int):
    return _list_response(await db_operations.list_customer_bookings(session, customer_id))


async def create_customer_route(session: AsyncSession, payload: CustomerIn):
    customer = await db_operations.create_customer(session, payload)
    return _created("Customer created successfully", CustomerOut.model_validate(customer))


async def update_customer_route(session: AsyncSession, customer_id: int, payload: CustomerIn):
    customer = await db_operations.update_customer(session, customer_id, payload)
    return _updated("Customer updated successfully", CustomerOut.model_validate(customer))


async def delete_customer_route(session: AsyncSession, customer_id: int):
    await db_operations.delete_customer(session, customer_id)
    return _deleted("Customer deleted successfully")


# Vehicles

async def list_vehicles_route(
    session: AsyncSession,
    status: Optional[str] = None,
    category: Optional[str] = None,
    search: Optional[str] = None,
):
    vehicles = await db_operations.list_vehicles(session, status=status, category=category, search=search)
    return _list_response(VehicleOut.model_validate(v) for v in vehicles)


async def get_vehicle_route(session: AsyncSession, vehicle_id: int):
    return _dump(VehicleOut.model_validate(await db_operations.get_vehicle(session, vehicle_id)))


async def create_vehicle_route(session: AsyncSession, payload: VehicleIn):
    vehicle = await db_operations.create_vehicle(session, payload)
    return _created("Vehicle created successfully", VehicleOut.model_validate(vehicle))


async def update_vehicle_route(session: AsyncSession, vehicle_id: int, payload: VehicleIn):
    vehicle = await db_operations.update_vehicle(session, vehicle_id, payload)
    return _updated("Vehicle updated successfully", VehicleOut.model_validate(vehicle))


async def delete_vehicle_route(session: AsyncSession, vehicle_id: int):
    await db_operations.delete_vehicle(session, vehicle_id)
    return _deleted("Vehicle deleted successfully")


# Bookings

async def list_bookings_route(session: AsyncSession, status: Optional[str] = None):
    return _list_response(await db_operations.list_bookings(session, status=status))


async def get_booking_route(session: AsyncSession, booking_id: int):
    return _dump(await db_operations.get_booking(session, booking_id))


async def get_booking_payments_route(session: AsyncSession, booking_id: int):
    payments = await db_operations.list_booking_payments(session, booking_id)
    return _list_response(PaymentOut.model_validate(p) for p in payments)


async def quote_booking_route(session: AsyncSession, vehicle_id: int, start_date: date, end_date: date):
    return _dump(await db_operations.quote_booking(session, vehicle_id, start_date, end_date))


async def create_booking_route(session: AsyncSession, payload: BookingCreate):
    logger.info(
        f"Booking request - vehicle: {payload.vehicle_id}, customer: {payload.customer_id}, "
        f"{payload.start_date} to {payload.end_date}"
    )
    booking = await db_operations.create_booking(session, payload)
    return _created("Booking created successfully", BookingOut.model_validate(booking))


async def update_booking_route(session: AsyncSession, booking_id: int, payload: BookingUpdate):
    booking = await db_operations.update_booking(session, booking_id, payload)
    return _updated("Booking updated successfully", BookingOut.model_validate(booking))


async def delete_booking_route(session: AsyncSession, booking_id: int):
    await db_operations.delete_booking(session, booking_id)
    return _deleted("Booking deleted successfully")


# Payments

async def list_payments_route(session: AsyncSession):
    return _list_response(await db_operations.list_payments(session))


async def get_payment_route(session: AsyncSession, payment_id: int):
    return _dump(PaymentOut.model_validate(await db_operations.get_payment(session, payment_id)))


async def create_payment_route(session: AsyncSession, payload: PaymentCreate):
    payment = await db_operations.create_payment(session, payload)
    return _created("Payment recorded successfully", PaymentOut.model_validate(payment))


async def delete_payment_route(session: AsyncSession, payment_id: int):
    await db_operations.delete_payment(session, payment_id)
    return _deleted("Payment deleted successfully")


# Dashboard

async def dashboard_stats_route(session: AsyncSession):
    return _dump(await reports.get_stats(session))


async def recent_bookings_route(session: AsyncSession):
    return _list_response(await reports.get_recent_bookings(session))


async def revenue_chart_route(session: AsyncSession):
    return _list_response(await reports.get_revenue_chart(session))


async def popular_vehicles_route(session: AsyncSession):
    return _list_response(await reports.get_popular_vehicles(session))
