from contextlib import asynccontextmanager
from datetime import date
from typing import Optional
import logging

from fastapi import FastAPI, Query, Depends, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from config import DATABASE_URL, LOG_LEVEL, LOG_FORMAT, LOG_DATE_FORMAT, HOST, PORT, CORS_ORIGINS
from database import create_engine, create_session_maker, init_db, close_db, get_session
from errors import ServiceError, ValidationError, StorageFailure
from schemas import BookingStatus, VehicleStatus, CustomerIn, VehicleIn, BookingCreate, BookingUpdate, PaymentCreate
import routes

# Configure logging
logging.basicConfig(
    level=LOG_LEVEL,
    format=LOG_FORMAT,
    datefmt=LOG_DATE_FORMAT
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db(app.state.engine)
    yield
    await close_db(app.state.engine)


async def service_error_handler(request: Request, exc: ServiceError):
    if isinstance(exc, StorageFailure):
        logger.error(f"Storage failure on {request.method} {request.url.path}: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content={"error": "Internal server error"})
    content = {"error": exc.message}
    if isinstance(exc, ValidationError) and exc.errors:
        content["errors"] = exc.errors
    return JSONResponse(status_code=exc.status_code, content=content)


async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = [{"loc": list(err["loc"]), "msg": err["msg"]} for err in exc.errors()]
    return JSONResponse(status_code=400, content={"error": "Validation failed", "errors": errors})


async def storage_error_handler(request: Request, exc: SQLAlchemyError):
    return await service_error_handler(request, StorageFailure(str(exc)))


def create_app(database_url: str = DATABASE_URL) -> FastAPI:
    """
    Build the application with its own engine and session factory.
    Tables are created on startup.
    """
    app = FastAPI(
        title="Rent Car CRM API",
        description="Vehicles, customers, bookings and payments for a car rental company",
        lifespan=lifespan,
    )
    app.state.engine = create_engine(database_url)
    app.state.session_maker = create_session_maker(app.state.engine)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(ServiceError, service_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(SQLAlchemyError, storage_error_handler)

    register_routes(app)
    return app


def register_routes(app: FastAPI):

    @app.get("/api/health")
    async def health():
        return {"status": "OK", "message": "Rent Car CRM API is running"}

    # Customers

    @app.get("/api/customers")
    async def list_customers(
        search: Optional[str] = Query(None, description="Matches first/last name, email or phone"),
        session: AsyncSession = Depends(get_session),
    ):
        return await routes.list_customers_route(session, search)

    @app.post("/api/customers", status_code=201)
    async def create_customer(payload: CustomerIn, session: AsyncSession = Depends(get_session)):
        return await routes.create_customer_route(session, payload)

    @app.get("/api/customers/{customer_id}")
    async def get_customer(customer_id: int, session: AsyncSession = Depends(get_session)):
        return await routes.get_customer_route(session, customer_id)

    @app.get("/api/customers/{customer_id}/bookings")
    async def get_customer_bookings(customer_id: int, session: AsyncSession = Depends(get_session)):
        return await routes.get_customer_bookings_route(session, customer_id)

    @app.put("/api/customers/{customer_id}")
    async def update_customer(customer_id: int, payload: CustomerIn, session: AsyncSession = Depends(get_session)):
        return await routes.update_customer_route(session, customer_id, payload)

    @app.delete("/api/customers/{customer_id}")
    async def delete_customer(customer_id: int, session: AsyncSession = Depends(get_session)):
        return await routes.delete_customer_route(session, customer_id)

    # Vehicles

    @app.get("/api/vehicles")
    async def list_vehicles(
        status: Optional[VehicleStatus] = Query(None),
        category: Optional[str] = Query(None),
        search: Optional[str] = Query(None, description="Matches brand, model or license plate"),
        session: AsyncSession = Depends(get_session),
    ):
        return await routes.list_vehicles_route(session, status=status, category=category, search=search)

    @app.post("/api/vehicles", status_code=201)
    async def create_vehicle(payload: VehicleIn, session: AsyncSession = Depends(get_session)):
        return await routes.create_vehicle_route(session, payload)

    @app.get("/api/vehicles/{vehicle_id}")
    async def get_vehicle(vehicle_id: int, session: AsyncSession = Depends(get_session)):
        return await routes.get_vehicle_route(session, vehicle_id)

    @app.put("/api/vehicles/{vehicle_id}")
    async def update_vehicle(vehicle_id: int, payload: VehicleIn, session: AsyncSession = Depends(get_session)):
        return await routes.update_vehicle_route(session, vehicle_id, payload)

    @app.delete("/api/vehicles/{vehicle_id}")
    async def delete_vehicle(vehicle_id: int, session: AsyncSession = Depends(get_session)):
        return await routes.delete_vehicle_route(session, vehicle_id)

    # Bookings

    @app.get("/api/bookings")
    async def list_bookings(
        status: Optional[BookingStatus] = Query(None),
        session: AsyncSession = Depends(get_session),
    ):
        return await routes.list_bookings_route(session, status)

    @app.post("/api/bookings", status_code=201)
    async def create_booking(payload: BookingCreate, session: AsyncSession = Depends(get_session)):
        return await routes.create_booking_route(session, payload)

    # Registered before /api/bookings/{booking_id} so "quote" is not parsed as an id
    @app.get("/api/bookings/quote")
    async def quote_booking(
        vehicle_id: int = Query(...),
        start_date: date = Query(..., description="Start date (YYYY-MM-DD)"),
        end_date: date = Query(..., description="End date (YYYY-MM-DD)"),
        session: AsyncSession = Depends(get_session),
    ):
        return await routes.quote_booking_route(session, vehicle_id, start_date, end_date)

    @app.get("/api/bookings/{booking_id}")
    async def get_booking(booking_id: int, session: AsyncSession = Depends(get_session)):
        return await routes.get_booking_route(session, booking_id)

    @app.get("/api/bookings/{booking_id}/payments")
    async def get_booking_payments(booking_id: int, session: AsyncSession = Depends(get_session)):
        return await routes.get_booking_payments_route(session, booking_id)

    @app.put("/api/bookings/{booking_id}")
    async def update_booking(booking_id: int, payload: BookingUpdate, session: AsyncSession = Depends(get_session)):
        return await routes.update_booking_route(session, booking_id, payload)

    @app.delete("/api/bookings/{booking_id}")
    async def delete_booking(booking_id: int, session: AsyncSession = Depends(get_session)):
        return await routes.delete_booking_route(session, booking_id)

    # Payments

    @app.get("/api/payments")
    async def list_payments(session: AsyncSession = Depends(get_session)):
        return await routes.list_payments_route(session)

    @app.post("/api/payments", status_code=201)
    async def create_payment(payload: PaymentCreate, session: AsyncSession = Depends(get_session)):
        return await routes.create_payment_route(session, payload)

    @app.get("/api/payments/{payment_id}")
    async def get_payment(payment_id: int, session: AsyncSession = Depends(get_session)):
        return await routes.get_payment_route(session, payment_id)

    @app.delete("/api/payments/{payment_id}")
    async def delete_payment(payment_id: int, session: AsyncSession = Depends(get_session)):
        return await routes.delete_payment_route(session, payment_id)

    # Dashboard

    @app.get("/api/dashboard/stats")
    async def dashboard_stats(session: AsyncSession = Depends(get_session)):
        return await routes.dashboard_stats_route(session)

    @app.get("/api/dashboard/recent-bookings")
    async def recent_bookings(session: AsyncSession = Depends(get_session)):
        return await routes.recent_bookings_route(session)

    @app.get("/api/dashboard/revenue-chart")
    async def revenue_chart(session: AsyncSession = Depends(get_session)):
        return await routes.revenue_chart_route(session)

    @app.get("/api/dashboard/popular-vehicles")
    async def popular_vehicles(session: AsyncSession = Depends(get_session)):
        return await routes.popular_vehicles_route(session)


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=HOST, port=PORT)
