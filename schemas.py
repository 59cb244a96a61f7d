"""
Request and response schemas.

Rows leaving the database are validated into these models, so a missing
required column fails at the storage boundary instead of in the client.
"""
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional, Literal

from pydantic import BaseModel, ConfigDict, EmailStr, Field, computed_field, field_validator

from models import (
    VEHICLE_AVAILABLE,
    VEHICLE_RENTED,
    VEHICLE_MAINTENANCE,
    BOOKING_PENDING,
    BOOKING_CONFIRMED,
    BOOKING_ACTIVE,
    BOOKING_COMPLETED,
    BOOKING_CANCELLED,
)

VehicleStatus = Literal[VEHICLE_AVAILABLE, VEHICLE_RENTED, VEHICLE_MAINTENANCE]
BookingStatus = Literal[BOOKING_PENDING, BOOKING_CONFIRMED, BOOKING_ACTIVE, BOOKING_COMPLETED, BOOKING_CANCELLED]
NewBookingStatus = Literal[BOOKING_PENDING, BOOKING_CONFIRMED, BOOKING_ACTIVE]
PaymentMethod = Literal["cash", "credit_card", "debit_card", "bank_transfer", "online"]


# Customers

class CustomerIn(BaseModel):
    first_name: str = Field(..., min_length=1, description="First name")
    last_name: str = Field(..., min_length=1, description="Last name")
    email: EmailStr = Field(..., description="Email address")
    phone: str = Field(..., min_length=1)
    license_number: str = Field(..., min_length=1, description="Driving license number")
    address: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None
    date_of_birth: Optional[date] = None


class CustomerOut(CustomerIn):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# Vehicles

class VehicleIn(BaseModel):
    brand: str = Field(..., min_length=1)
    model: str = Field(..., min_length=1)
    year: int = Field(..., ge=1900, le=2100)
    color: Optional[str] = None
    license_plate: str = Field(..., min_length=1)
    vin: str = Field(..., min_length=1, description="Vehicle identification number")
    category: str = Field(..., min_length=1, description="e.g. economy, suv, luxury")
    transmission: str = "automatic"
    fuel_type: str = "petrol"
    seats: int = Field(5, ge=1)
    daily_rate: Decimal = Field(..., ge=0, max_digits=10, decimal_places=2)
    status: VehicleStatus = "available"
    mileage: int = Field(0, ge=0)
    image_url: Optional[str] = None


class VehicleOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    brand: str
    model: str
    year: int
    color: Optional[str] = None
    license_plate: str
    vin: str
    category: str
    transmission: str
    fuel_type: str
    seats: int
    daily_rate: float
    status: str
    mileage: int
    image_url: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# Bookings

class BookingIn(BaseModel):
    """
    Booking fields accepted from clients.
    total_amount and paid_amount are derived server-side and not accepted here.
    """
    customer_id: int
    vehicle_id: int
    start_date: date
    end_date: date
    pickup_location: str = Field(..., min_length=1)
    return_location: str = Field(..., min_length=1)
    notes: Optional[str] = None


class BookingCreate(BookingIn):
    status: NewBookingStatus = "pending"


class BookingUpdate(BookingIn):
    status: BookingStatus


class BookingOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    customer_id: int
    vehicle_id: int
    start_date: date
    end_date: date
    pickup_location: str
    return_location: str
    status: str
    total_amount: float
    paid_amount: float
    notes: Optional[str] = None
    created_by: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @computed_field
    @property
    def balance_due(self) -> float:
        """Outstanding amount; negative when the customer has overpaid."""
        return round(self.total_amount - self.paid_amount, 2)


class BookingDetail(BookingOut):
    """Booking joined with customer and vehicle summary fields."""
    first_name: str
    last_name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    license_number: Optional[str] = None
    brand: str
    model: str
    license_plate: str
    category: Optional[str] = None
    daily_rate: Optional[float] = None


class BookingQuote(BaseModel):
    vehicle_id: int
    start_date: date
    end_date: date
    days: int
    daily_rate: float
    total_amount: float
    available: bool


# Payments

class PaymentCreate(BaseModel):
    booking_id: int
    amount: Decimal = Field(..., ge=0, max_digits=10, decimal_places=2)
    payment_method: PaymentMethod
    payment_date: Optional[datetime] = Field(None, description="Defaults to now")
    transaction_id: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("payment_date")
    @classmethod
    def to_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        """Store payment times in UTC; naive values are taken as UTC already."""
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class PaymentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    booking_id: int
    amount: float
    payment_method: str
    payment_date: datetime
    status: str
    transaction_id: Optional[str] = None
    notes: Optional[str] = None


class PaymentDetail(PaymentOut):
    first_name: str
    last_name: str
    brand: str
    model: str


# Dashboard

class DashboardStats(BaseModel):
    total_vehicles: int
    available_vehicles: int
    rented_vehicles: int
    maintenance_vehicles: int
    total_customers: int
    active_bookings: int
    pending_bookings: int
    monthly_revenue: float
    total_revenue: float


class RecentBooking(BaseModel):
    id: int
    start_date: date
    end_date: date
    status: str
    total_amount: float
    first_name: str
    last_name: str
    brand: str
    model: str


class RevenuePoint(BaseModel):
    month: str
    revenue: float


class PopularVehicle(BaseModel):
    id: int
    brand: str
    model: str
    category: str
    booking_count: int
