"""Integration tests for API endpoints."""

from datetime import timedelta

import pytest
import pytest_asyncio
from conftest import webhook_payload

from hotel_booking.core.clock import utctoday
from hotel_booking.core.dependencies import HOTEL_MANAGER_ROLE

SIGNATURE = {"Stripe-Signature": "t=1,v1=valid"}


@pytest.fixture
def manager_headers(make_token):
    return make_token("owner-1", roles=[HOTEL_MANAGER_ROLE], email="owner@example.com")


@pytest.fixture
def guest_headers(make_token):
    return make_token("user-1", email="guest@example.com")


@pytest.fixture
def stay():
    check_in = utctoday() + timedelta(days=10)
    return check_in, check_in + timedelta(days=1)


async def _post(client, path, body, headers=None, expected=200):
    response = await client.post(path, json=body, headers=headers or {})
    assert response.status_code == expected, response.text
    return response.json() if response.content else None


@pytest_asyncio.fixture
async def listed_room(test_client, manager_headers):
    """Active hotel in Goa with one room type of five units at 1000.00, created over HTTP."""
    hotel = await _post(
        test_client, "/v1/hotel/create", {"name": "Sea View", "city": "Goa"}, manager_headers, 201
    )
    room = await _post(
        test_client,
        "/v1/hotel/room/create",
        {"hotel_id": hotel["id"], "type": "Deluxe", "base_price": "1000.00", "total_count": 5, "capacity": 2},
        manager_headers,
        201,
    )
    await _post(test_client, "/v1/hotel/activate", {"hotel_id": hotel["id"]}, manager_headers)
    return hotel, room


def _init_body(hotel, room, stay, rooms_count=2):
    check_in, check_out = stay
    return {
        "hotel_id": hotel["id"],
        "room_id": room["id"],
        "check_in_date": check_in.isoformat(),
        "check_out_date": check_out.isoformat(),
        "rooms_count": rooms_count,
    }


@pytest.mark.asyncio
async def test_missing_auth_is_problem_401(test_client):
    response = await test_client.post("/v1/hotel/create", json={"name": "Sea View", "city": "Goa"})

    assert response.status_code == 401
    data = response.json()
    assert data["status"] == 401
    assert "authentication" in data["title"].lower()


@pytest.mark.asyncio
async def test_invalid_token_rejected(test_client):
    response = await test_client.post(
        "/v1/booking/status",
        json={"booking_id": "x"},
        headers={"Authorization": "Bearer not-a-jwt"},
    )

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_admin_requires_manager_role(test_client, guest_headers):
    response = await test_client.post(
        "/v1/hotel/create", json={"name": "Sea View", "city": "Goa"}, headers=guest_headers
    )

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_schema_validation_is_422(test_client, manager_headers):
    response = await test_client.post(
        "/v1/hotel/create", json={"name": "", "city": "Goa"}, headers=manager_headers
    )

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_hotel_info_and_search(test_client, listed_room, stay):
    hotel, room = listed_room

    info = await _post(test_client, "/v1/hotel/info", {"hotel_id": hotel["id"]})
    assert info["hotel"]["active"] is True
    assert [r["id"] for r in info["rooms"]] == [room["id"]]
    assert room["base_price"] == "1000.00"

    check_in, check_out = stay
    search = await _post(
        test_client,
        "/v1/hotel/search",
        {"city": "Goa", "date_from": check_in.isoformat(), "date_to": check_out.isoformat(), "rooms_count": 2},
    )
    assert search["total"] == 1
    assert search["results"][0]["room"]["id"] == room["id"]
    assert search["results"][0]["total_price"] == "4000.00"

    empty = await _post(
        test_client,
        "/v1/hotel/search",
        {"city": "Pune", "date_from": check_in.isoformat(), "date_to": check_out.isoformat()},
    )
    assert empty == {"results": [], "page": 0, "size": 10, "total": 0}


@pytest.mark.asyncio
async def test_unknown_hotel_is_404(test_client):
    response = await test_client.post(
        "/v1/hotel/info", json={"hotel_id": "00000000-0000-0000-0000-000000000000"}
    )

    assert response.status_code == 404
    assert response.json()["code"] == "NOT_FOUND"


@pytest.mark.asyncio
async def test_booking_flow_end_to_end(test_client, listed_room, stay, guest_headers, manager_headers, gateway):
    hotel, room = listed_room

    booking = await _post(test_client, "/v1/booking/init", _init_body(hotel, room, stay), guest_headers)
    assert booking["status"] == "RESERVED"
    assert booking["amount"] == "4000.00"
    assert booking["expires_at"] is not None
    booking_id = booking["id"]

    booking = await _post(
        test_client,
        "/v1/booking/guests",
        {"booking_id": booking_id, "guests": [{"name": "Asha", "age": 31}, {"name": "Ravi"}]},
        guest_headers,
    )
    assert booking["status"] == "GUESTS_ADDED"
    assert [guest["name"] for guest in booking["guests"]] == ["Asha", "Ravi"]

    payment = await _post(test_client, "/v1/booking/payment", {"booking_id": booking_id}, guest_headers)
    assert payment["session_url"] == "https://checkout.test/cs_test_1"

    status = await _post(test_client, "/v1/booking/status", {"booking_id": booking_id}, guest_headers)
    assert status["status"] == "PAYMENTS_PENDING"

    response = await test_client.post(
        "/v1/payment/webhook", content=webhook_payload("cs_test_1"), headers=SIGNATURE
    )
    assert response.status_code == 200
    assert response.json() == {"received": True, "booking_id": booking_id, "status": "CONFIRMED"}

    booking = await _post(test_client, "/v1/booking/get", {"booking_id": booking_id}, guest_headers)
    assert booking["status"] == "CONFIRMED"
    assert booking["expires_at"] is None

    check_in, check_out = stay
    inventory = await _post(
        test_client,
        "/v1/inventory/get",
        {"room_id": room["id"], "date_from": check_in.isoformat(), "date_to": check_out.isoformat()},
        manager_headers,
    )
    assert [(day["reserved_count"], day["booked_count"]) for day in inventory["days"]] == [(2, 2), (2, 2)]

    booking = await _post(test_client, "/v1/booking/cancel", {"booking_id": booking_id}, guest_headers)
    assert booking["status"] == "CANCELLED"
    assert gateway.refunds == ["pi_cs_test_1"]

    inventory = await _post(
        test_client,
        "/v1/inventory/get",
        {"room_id": room["id"], "date_from": check_in.isoformat(), "date_to": check_out.isoformat()},
        manager_headers,
    )
    assert [(day["reserved_count"], day["booked_count"]) for day in inventory["days"]] == [(0, 0), (0, 0)]


@pytest.mark.asyncio
async def test_booking_conflict_is_409(test_client, listed_room, stay, guest_headers):
    hotel, room = listed_room

    await _post(test_client, "/v1/booking/init", _init_body(hotel, room, stay, rooms_count=4), guest_headers)
    response = await test_client.post(
        "/v1/booking/init", json=_init_body(hotel, room, stay, rooms_count=2), headers=guest_headers
    )

    assert response.status_code == 409
    data = response.json()
    assert data["code"] == "INSUFFICIENT_CAPACITY"
    assert data["retryable"] is False


@pytest.mark.asyncio
async def test_other_user_cannot_read_booking(test_client, listed_room, stay, guest_headers, make_token):
    hotel, room = listed_room
    booking = await _post(test_client, "/v1/booking/init", _init_body(hotel, room, stay), guest_headers)

    response = await test_client.post(
        "/v1/booking/status", json={"booking_id": booking["id"]}, headers=make_token("user-2")
    )

    assert response.status_code == 403
    assert response.json()["code"] == "NOT_OWNER"


@pytest.mark.asyncio
async def test_cancel_requires_confirmed_booking(test_client, listed_room, stay, guest_headers):
    hotel, room = listed_room
    booking = await _post(test_client, "/v1/booking/init", _init_body(hotel, room, stay), guest_headers)

    response = await test_client.post(
        "/v1/booking/cancel", json={"booking_id": booking["id"]}, headers=guest_headers
    )

    assert response.status_code == 409
    assert response.json()["code"] == "INVALID_STATE"


@pytest.mark.asyncio
async def test_webhook_rejects_bad_signature(test_client):
    response = await test_client.post(
        "/v1/payment/webhook",
        content=webhook_payload("cs_test_1"),
        headers={"Stripe-Signature": "t=1,v1=forged"},
    )

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_webhook_for_earlier_payment_page_confirms(test_client, listed_room, stay, guest_headers):
    hotel, room = listed_room
    booking = await _post(test_client, "/v1/booking/init", _init_body(hotel, room, stay), guest_headers)
    await _post(test_client, "/v1/booking/payment", {"booking_id": booking["id"]}, guest_headers)
    payment = await _post(test_client, "/v1/booking/payment", {"booking_id": booking["id"]}, guest_headers)
    assert payment["session_url"] == "https://checkout.test/cs_test_2"

    response = await test_client.post(
        "/v1/payment/webhook", content=webhook_payload("cs_test_1"), headers=SIGNATURE
    )

    assert response.status_code == 200
    assert response.json() == {"received": True, "booking_id": booking["id"], "status": "CONFIRMED"}


@pytest.mark.asyncio
async def test_webhook_ignores_other_events(test_client):
    response = await test_client.post(
        "/v1/payment/webhook",
        content=webhook_payload("pi_1", event_type="payment_intent.created"),
        headers=SIGNATURE,
    )

    assert response.status_code == 200
    assert response.json() == {"received": True, "booking_id": None, "status": None}


@pytest.mark.asyncio
async def test_inventory_update_changes_price(test_client, listed_room, stay, manager_headers):
    _, room = listed_room
    check_in, _ = stay

    inventory = await _post(
        test_client,
        "/v1/inventory/update",
        {
            "room_id": room["id"],
            "date_from": check_in.isoformat(),
            "date_to": check_in.isoformat(),
            "surge_factor": "1.50",
        },
        manager_headers,
    )

    day = inventory["days"][0]
    assert day["surge_factor"] == "1.50"
    assert day["price"] == "1500.00"


@pytest.mark.asyncio
async def test_inventory_update_requires_a_change(test_client, listed_room, stay, manager_headers):
    _, room = listed_room
    check_in, _ = stay

    response = await test_client.post(
        "/v1/inventory/update",
        json={"room_id": room["id"], "date_from": check_in.isoformat(), "date_to": check_in.isoformat()},
        headers=manager_headers,
    )

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_delete_room_with_live_booking_is_409(test_client, listed_room, stay, guest_headers, manager_headers):
    hotel, room = listed_room
    await _post(test_client, "/v1/booking/init", _init_body(hotel, room, stay), guest_headers)

    response = await test_client.post(
        "/v1/hotel/room/delete", json={"room_id": room["id"]}, headers=manager_headers
    )

    assert response.status_code == 409
    assert response.json()["code"] == "LIVE_BOOKINGS"
