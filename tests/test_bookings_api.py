async def test_total_is_days_times_daily_rate(create_booking):
    booking = await create_booking(start_date="2024-01-01", end_date="2024-01-04")
    assert booking["total_amount"] == 150
    assert booking["paid_amount"] == 0
    assert booking["balance_due"] == 150
    assert booking["status"] == "pending"


async def test_client_total_amount_is_ignored(client, booking_payload):
    body = await booking_payload(total_amount=1)
    response = await client.post("/api/bookings", json=body)
    assert response.status_code == 201
    assert response.json()["data"]["total_amount"] == 150


async def test_overlapping_booking_is_rejected(client, create_vehicle, booking_payload):
    vehicle = await create_vehicle()
    first = await client.post("/api/bookings", json=await booking_payload(vehicle_id=vehicle["id"]))
    assert first.status_code == 201

    second = await client.post(
        "/api/bookings",
        json=await booking_payload(vehicle_id=vehicle["id"], start_date="2024-01-03", end_date="2024-01-06"),
    )
    assert second.status_code == 400
    assert second.json() == {"error": "Vehicle is not available for selected dates"}

    listing = await client.get("/api/bookings")
    assert listing.json()["total"] == 1


async def test_same_day_handover_conflicts(client, create_vehicle, booking_payload):
    vehicle = await create_vehicle()
    await client.post("/api/bookings", json=await booking_payload(vehicle_id=vehicle["id"]))
    response = await client.post(
        "/api/bookings",
        json=await booking_payload(vehicle_id=vehicle["id"], start_date="2024-01-04", end_date="2024-01-07"),
    )
    assert response.status_code == 400


async def test_non_overlapping_bookings_both_succeed(client, create_vehicle, booking_payload):
    vehicle = await create_vehicle()
    for start, end in [("2024-01-01", "2024-01-04"), ("2024-01-05", "2024-01-08")]:
        response = await client.post(
            "/api/bookings", json=await booking_payload(vehicle_id=vehicle["id"], start_date=start, end_date=end)
        )
        assert response.status_code == 201


async def test_same_dates_on_different_vehicles_succeed(create_booking):
    await create_booking()
    await create_booking()


async def test_cancelled_booking_frees_the_dates(client, create_vehicle, booking_payload):
    vehicle = await create_vehicle()
    body = await booking_payload(vehicle_id=vehicle["id"])
    created = (await client.post("/api/bookings", json=body)).json()

    response = await client.put(f"/api/bookings/{created['id']}", json={**body, "status": "cancelled"})
    assert response.status_code == 200

    again = await client.post("/api/bookings", json=await booking_payload(vehicle_id=vehicle["id"]))
    assert again.status_code == 201


async def test_end_before_start_is_a_validation_error(client, booking_payload):
    response = await client.post(
        "/api/bookings", json=await booking_payload(start_date="2024-01-05", end_date="2024-01-01")
    )
    assert response.status_code == 400
    assert response.json()["errors"][0]["loc"] == ["body", "end_date"]


async def test_missing_fields_report_field_errors(client):
    response = await client.post("/api/bookings", json={"customer_id": 1})
    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "Validation failed"
    fields = {tuple(err["loc"]) for err in body["errors"]}
    assert ("body", "vehicle_id") in fields
    assert ("body", "start_date") in fields


async def test_booking_for_unknown_customer_or_vehicle(client, booking_payload):
    response = await client.post("/api/bookings", json=await booking_payload(customer_id=9999))
    assert response.status_code == 404
    assert response.json() == {"error": "Customer not found"}

    response = await client.post("/api/bookings", json=await booking_payload(vehicle_id=9999))
    assert response.status_code == 404
    assert response.json() == {"error": "Vehicle not found"}


async def test_new_booking_cannot_start_terminal(client, booking_payload):
    response = await client.post("/api/bookings", json=await booking_payload(status="completed"))
    assert response.status_code == 400


async def test_lifecycle_updates_vehicle_status(client, create_vehicle, booking_payload):
    vehicle = await create_vehicle()
    body = await booking_payload(vehicle_id=vehicle["id"])
    booking_id = (await client.post("/api/bookings", json=body)).json()["id"]

    for status in ("confirmed", "active"):
        response = await client.put(f"/api/bookings/{booking_id}", json={**body, "status": status})
        assert response.status_code == 200, response.text
    assert (await client.get(f"/api/vehicles/{vehicle['id']}")).json()["status"] == "rented"

    response = await client.put(f"/api/bookings/{booking_id}", json={**body, "status": "completed"})
    assert response.status_code == 200
    assert (await client.get(f"/api/vehicles/{vehicle['id']}")).json()["status"] == "available"


async def test_cancelling_active_booking_releases_vehicle(client, create_vehicle, booking_payload):
    vehicle = await create_vehicle()
    body = await booking_payload(vehicle_id=vehicle["id"], status="active")
    booking_id = (await client.post("/api/bookings", json=body)).json()["id"]
    assert (await client.get(f"/api/vehicles/{vehicle['id']}")).json()["status"] == "rented"

    await client.put(f"/api/bookings/{booking_id}", json={**body, "status": "cancelled"})
    assert (await client.get(f"/api/vehicles/{vehicle['id']}")).json()["status"] == "available"


async def test_confirming_does_not_touch_vehicle(client, create_vehicle, booking_payload):
    vehicle = await create_vehicle(status="maintenance")
    body = await booking_payload(vehicle_id=vehicle["id"])
    booking_id = (await client.post("/api/bookings", json=body)).json()["id"]
    await client.put(f"/api/bookings/{booking_id}", json={**body, "status": "confirmed"})
    assert (await client.get(f"/api/vehicles/{vehicle['id']}")).json()["status"] == "maintenance"


async def test_cancelling_other_booking_keeps_vehicle_rented(client, create_vehicle, booking_payload):
    vehicle = await create_vehicle()
    await client.post("/api/bookings", json=await booking_payload(vehicle_id=vehicle["id"], status="active"))

    later = await booking_payload(vehicle_id=vehicle["id"], start_date="2024-02-01", end_date="2024-02-05")
    later_id = (await client.post("/api/bookings", json=later)).json()["id"]
    response = await client.put(f"/api/bookings/{later_id}", json={**later, "status": "cancelled"})
    assert response.status_code == 200, response.text
    assert (await client.get(f"/api/vehicles/{vehicle['id']}")).json()["status"] == "rented"


async def test_completing_booking_that_never_started_keeps_vehicle_rented(client, create_vehicle, booking_payload):
    vehicle = await create_vehicle()
    await client.post("/api/bookings", json=await booking_payload(vehicle_id=vehicle["id"], status="active"))

    later = await booking_payload(
        vehicle_id=vehicle["id"], start_date="2024-03-01", end_date="2024-03-02", status="confirmed"
    )
    later_id = (await client.post("/api/bookings", json=later)).json()["id"]
    response = await client.put(f"/api/bookings/{later_id}", json={**later, "status": "completed"})
    assert response.status_code == 200, response.text
    assert (await client.get(f"/api/vehicles/{vehicle['id']}")).json()["status"] == "rented"


async def test_moving_active_booking_to_another_vehicle(client, create_vehicle, booking_payload):
    first, second = await create_vehicle(), await create_vehicle(daily_rate=80)
    body = await booking_payload(vehicle_id=first["id"], status="active")
    booking_id = (await client.post("/api/bookings", json=body)).json()["id"]

    response = await client.put(f"/api/bookings/{booking_id}", json={**body, "vehicle_id": second["id"]})
    assert response.status_code == 200, response.text
    assert response.json()["data"]["total_amount"] == 240
    assert (await client.get(f"/api/vehicles/{first['id']}")).json()["status"] == "available"
    assert (await client.get(f"/api/vehicles/{second['id']}")).json()["status"] == "rented"


async def test_moving_pending_booking_leaves_vehicles_alone(client, create_vehicle, booking_payload):
    first, second = await create_vehicle(status="maintenance"), await create_vehicle()
    body = await booking_payload(vehicle_id=first["id"])
    booking_id = (await client.post("/api/bookings", json=body)).json()["id"]

    response = await client.put(f"/api/bookings/{booking_id}", json={**body, "vehicle_id": second["id"], "status": "pending"})
    assert response.status_code == 200, response.text
    assert (await client.get(f"/api/vehicles/{first['id']}")).json()["status"] == "maintenance"
    assert (await client.get(f"/api/vehicles/{second['id']}")).json()["status"] == "available"


async def test_terminal_booking_status_is_frozen(client, booking_payload):
    body = await booking_payload()
    booking_id = (await client.post("/api/bookings", json=body)).json()["id"]
    await client.put(f"/api/bookings/{booking_id}", json={**body, "status": "completed"})

    response = await client.put(f"/api/bookings/{booking_id}", json={**body, "status": "pending"})
    assert response.status_code == 400
    assert response.json() == {"error": "Cannot change status of a completed booking"}

    # Same status with new notes is still accepted
    response = await client.put(
        f"/api/bookings/{booking_id}", json={**body, "status": "completed", "notes": "Returned clean"}
    )
    assert response.status_code == 200
    assert response.json()["data"]["notes"] == "Returned clean"


async def test_backwards_transition_is_rejected(client, booking_payload):
    body = await booking_payload(status="confirmed")
    booking_id = (await client.post("/api/bookings", json=body)).json()["id"]
    response = await client.put(f"/api/bookings/{booking_id}", json={**body, "status": "pending"})
    assert response.status_code == 400


async def test_update_recomputes_total_and_rechecks_availability(client, create_vehicle, booking_payload):
    vehicle = await create_vehicle(daily_rate=80)
    first = await booking_payload(vehicle_id=vehicle["id"])
    first_id = (await client.post("/api/bookings", json=first)).json()["id"]
    second = await booking_payload(vehicle_id=vehicle["id"], start_date="2024-01-10", end_date="2024-01-12")
    second_id = (await client.post("/api/bookings", json=second)).json()["id"]

    # Extending the first booking onto the second one's dates
    response = await client.put(
        f"/api/bookings/{first_id}", json={**first, "end_date": "2024-01-10", "status": "pending"}
    )
    assert response.status_code == 400

    # Moving a booking within its own range does not conflict with itself
    response = await client.put(
        f"/api/bookings/{second_id}", json={**second, "end_date": "2024-01-15", "status": "confirmed"}
    )
    assert response.status_code == 200
    assert response.json()["data"]["total_amount"] == 400


async def test_update_keeps_paid_amount(client, booking_payload, create_payment):
    body = await booking_payload()
    booking_id = (await client.post("/api/bookings", json=body)).json()["id"]
    await create_payment(booking_id, 40)

    response = await client.put(
        f"/api/bookings/{booking_id}", json={**body, "status": "confirmed", "paid_amount": 0}
    )
    assert response.json()["data"]["paid_amount"] == 40


async def test_get_booking_is_idempotent_and_joined(client, create_booking):
    booking = await create_booking()
    first = await client.get(f"/api/bookings/{booking['id']}")
    second = await client.get(f"/api/bookings/{booking['id']}")
    assert first.status_code == 200
    assert first.json() == second.json()

    detail = first.json()
    assert detail["first_name"] == "Jane"
    assert detail["brand"] == "Toyota"
    assert detail["daily_rate"] == 50
    assert detail["license_plate"].startswith("HI-")


async def test_booking_not_found(client, booking_payload):
    assert (await client.get("/api/bookings/404")).status_code == 404
    assert (await client.delete("/api/bookings/404")).status_code == 404
    response = await client.put("/api/bookings/404", json={**await booking_payload(), "status": "pending"})
    assert response.status_code == 404
    assert response.json() == {"error": "Booking not found"}


async def test_list_bookings_filters_by_status(client, create_booking):
    await create_booking()
    await create_booking(status="confirmed")
    response = await client.get("/api/bookings", params={"status": "confirmed"})
    assert response.json()["total"] == 1
    assert response.json()["data"][0]["status"] == "confirmed"


async def test_delete_booking(client, create_booking, create_payment):
    booking = await create_booking()
    await create_payment(booking["id"], 25)

    response = await client.delete(f"/api/bookings/{booking['id']}")
    assert response.status_code == 200
    assert (await client.get(f"/api/bookings/{booking['id']}")).status_code == 404
    assert (await client.get("/api/payments")).json()["total"] == 0


async def test_quote_reports_price_and_availability(client, create_vehicle, create_booking):
    vehicle = await create_vehicle(daily_rate=45.5)
    params = {"vehicle_id": vehicle["id"], "start_date": "2024-01-01", "end_date": "2024-01-03"}

    quote = (await client.get("/api/bookings/quote", params=params)).json()
    assert quote["days"] == 2
    assert quote["total_amount"] == 91
    assert quote["available"] is True

    await create_booking(vehicle_id=vehicle["id"])
    quote = (await client.get("/api/bookings/quote", params=params)).json()
    assert quote["available"] is False


async def test_deleting_active_booking_frees_vehicle(client, create_vehicle, create_booking):
    vehicle = await create_vehicle()
    booking = await create_booking(vehicle_id=vehicle["id"], status="active")
    assert (await client.get(f"/api/vehicles/{vehicle['id']}")).json()["status"] == "rented"

    response = await client.delete(f"/api/bookings/{booking['id']}")
    assert response.status_code == 200
    assert (await client.get(f"/api/vehicles/{vehicle['id']}")).json()["status"] == "available"


async def test_deleting_pending_booking_leaves_vehicle_alone(client, create_vehicle, create_booking):
    vehicle = await create_vehicle(status="maintenance")
    booking = await create_booking(vehicle_id=vehicle["id"])
    await client.delete(f"/api/bookings/{booking['id']}")
    assert (await client.get(f"/api/vehicles/{vehicle['id']}")).json()["status"] == "maintenance"
