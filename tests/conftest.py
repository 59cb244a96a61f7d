import itertools

import httpx
import pytest

from database import init_db, close_db
from main import create_app

_sequence = itertools.count(1)


@pytest.fixture
async def app(tmp_path):
    application = create_app(f"sqlite+aiosqlite:///{tmp_path / 'rentcar-test.db'}")
    await init_db(application.state.engine)
    yield application
    await close_db(application.state.engine)


@pytest.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as c:
        yield c


@pytest.fixture
def session_maker(app):
    """Session factory for tests that talk to storage directly."""
    return app.state.session_maker


def customer_payload(**overrides) -> dict:
    n = next(_sequence)
    payload = {
        "first_name": "Jane",
        "last_name": f"Driver{n}",
        "email": f"jane{n}@rentals.io",
        "phone": f"+1-555-01{n:02d}",
        "license_number": f"DL-{n:06d}",
        "city": "Honolulu",
        "country": "US",
    }
    payload.update(overrides)
    return payload


def vehicle_payload(**overrides) -> dict:
    n = next(_sequence)
    payload = {
        "brand": "Toyota",
        "model": "Corolla",
        "year": 2022,
        "license_plate": f"HI-{n:04d}",
        "vin": f"JTDBR32E{n:09d}",
        "category": "economy",
        "transmission": "automatic",
        "fuel_type": "petrol",
        "seats": 5,
        "daily_rate": 50,
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def create_customer(client):
    async def _create(**overrides) -> dict:
        response = await client.post("/api/customers", json=customer_payload(**overrides))
        assert response.status_code == 201, response.text
        return response.json()["data"]
    return _create


@pytest.fixture
def create_vehicle(client):
    async def _create(**overrides) -> dict:
        response = await client.post("/api/vehicles", json=vehicle_payload(**overrides))
        assert response.status_code == 201, response.text
        return response.json()["data"]
    return _create


@pytest.fixture
def booking_payload(create_customer, create_vehicle):
    """Builds a booking body, creating the customer and vehicle unless ids are given."""
    async def _build(**overrides) -> dict:
        if "customer_id" not in overrides:
            overrides["customer_id"] = (await create_customer())["id"]
        if "vehicle_id" not in overrides:
            overrides["vehicle_id"] = (await create_vehicle())["id"]
        payload = {
            "start_date": "2024-01-01",
            "end_date": "2024-01-04",
            "pickup_location": "Honolulu Airport",
            "return_location": "Waikiki Office",
        }
        payload.update(overrides)
        return payload
    return _build


@pytest.fixture
def create_booking(client, booking_payload):
    async def _create(**overrides) -> dict:
        response = await client.post("/api/bookings", json=await booking_payload(**overrides))
        assert response.status_code == 201, response.text
        return response.json()["data"]
    return _create


@pytest.fixture
def create_payment(client):
    async def _create(booking_id: int, amount, **overrides) -> dict:
        body = {"booking_id": booking_id, "amount": amount, "payment_method": "cash"}
        body.update(overrides)
        response = await client.post("/api/payments", json=body)
        assert response.status_code == 201, response.text
        return response.json()["data"]
    return _create
