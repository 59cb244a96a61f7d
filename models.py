"""
Database models for the application.
"""
from sqlalchemy import Column, Integer, String, Text, Date, DateTime, Numeric, ForeignKey, Index
from sqlalchemy.orm import declarative_base, relationship
from datetime import datetime, timezone

Base = declarative_base()

# Vehicle statuses
VEHICLE_AVAILABLE = "available"
VEHICLE_RENTED = "rented"
VEHICLE_MAINTENANCE = "maintenance"

# Booking statuses
BOOKING_PENDING = "pending"
BOOKING_CONFIRMED = "confirmed"
BOOKING_ACTIVE = "active"
BOOKING_COMPLETED = "completed"
BOOKING_CANCELLED = "cancelled"

# Bookings in these statuses hold their vehicle for the booked dates
BLOCKING_BOOKING_STATUSES = (BOOKING_PENDING, BOOKING_CONFIRMED, BOOKING_ACTIVE)

PAYMENT_COMPLETED = "completed"


def utc_now():
    """Get current UTC datetime with timezone awareness."""
    return datetime.now(timezone.utc)


class User(Base):
    """Staff account; bookings record which user created them."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(255), unique=True, nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    password = Column(String(255), nullable=False)
    role = Column(String(50), nullable=False, default="employee")
    created_at = Column(DateTime(timezone=True), default=utc_now)


class Customer(Base):
    __tablename__ = "customers"

    id = Column(Integer, primary_key=True, index=True)
    first_name = Column(String(255), nullable=False)
    last_name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    phone = Column(String(50), nullable=False)
    license_number = Column(String(100), unique=True, nullable=False)
    address = Column(Text, nullable=True)
    city = Column(String(255), nullable=True)
    country = Column(String(255), nullable=True)
    date_of_birth = Column(Date, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)

    bookings = relationship("Booking", back_populates="customer", cascade="all, delete-orphan", passive_deletes=True)

    def __repr__(self) -> str:
        return f"<Customer {self.first_name} {self.last_name}>"


class Vehicle(Base):
    __tablename__ = "vehicles"

    id = Column(Integer, primary_key=True, index=True)
    brand = Column(String(255), nullable=False)
    model = Column(String(255), nullable=False)
    year = Column(Integer, nullable=False)
    color = Column(String(100), nullable=True)
    license_plate = Column(String(50), unique=True, nullable=False)
    vin = Column(String(100), unique=True, nullable=False)
    category = Column(String(50), nullable=False)
    transmission = Column(String(50), nullable=False)
    fuel_type = Column(String(50), nullable=False)
    seats = Column(Integer, nullable=False)
    daily_rate = Column(Numeric(10, 2), nullable=False)
    status = Column(String(50), nullable=False, default=VEHICLE_AVAILABLE, index=True)
    mileage = Column(Integer, nullable=False, default=0)
    image_url = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)

    bookings = relationship("Booking", back_populates="vehicle", cascade="all, delete-orphan", passive_deletes=True)

    def __repr__(self) -> str:
        return f"<Vehicle {self.license_plate}>"


class Booking(Base):
    __tablename__ = "bookings"
    __table_args__ = (
        Index("idx_bookings_dates", "start_date", "end_date"),
    )

    id = Column(Integer, primary_key=True, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id", ondelete="CASCADE"), nullable=False, index=True)
    vehicle_id = Column(Integer, ForeignKey("vehicles.id", ondelete="CASCADE"), nullable=False, index=True)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    pickup_location = Column(String(255), nullable=False)
    return_location = Column(String(255), nullable=False)
    status = Column(String(50), nullable=False, default=BOOKING_PENDING)
    total_amount = Column(Numeric(10, 2), nullable=False)
    paid_amount = Column(Numeric(10, 2), nullable=False, default=0)
    notes = Column(Text, nullable=True)
    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)

    customer = relationship("Customer", back_populates="bookings")
    vehicle = relationship("Vehicle", back_populates="bookings")
    payments = relationship("Payment", back_populates="booking", cascade="all, delete-orphan", passive_deletes=True)

    def __repr__(self) -> str:
        return f"<Booking vehicle={self.vehicle_id} {self.start_date} to {self.end_date}>"


class Payment(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True)
    amount = Column(Numeric(10, 2), nullable=False)
    payment_method = Column(String(50), nullable=False)
    payment_date = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    status = Column(String(50), nullable=False, default=PAYMENT_COMPLETED)
    transaction_id = Column(String(255), nullable=True)
    notes = Column(Text, nullable=True)

    booking = relationship("Booking", back_populates="payments")

    def __repr__(self) -> str:
        return f"<Payment {self.amount} on {self.payment_date}>"
