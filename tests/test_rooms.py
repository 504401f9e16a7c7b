from datetime import datetime
from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

from reservations.config import get_settings
from reservations.store import ReservationStore
from services.rooms.app import status_cache

ROOM_PAYLOAD = {
    "name": "Boardroom",
    "description": "Glass walls, seats ten",
    "capacity": 10,
    "hourly_rate": "750.00",
    "location": "Floor 3",
    "amenities": ["tv", "whiteboard"],
}


def _create_room(rooms_client, headers, **overrides) -> dict:
    response = rooms_client.post("/rooms", json={**ROOM_PAYLOAD, **overrides}, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


def _book(bookings_client, room_id, day, start, end, headers=None, **extra) -> dict:
    payload = {
        "booking_date": day.isoformat(),
        "start_time": start,
        "end_time": end,
        "purpose": "Planning",
        "contact": {"name": "Ana Cruz", "email": "ana@example.com", "mobile": "09171234567"},
        **extra,
    }
    response = bookings_client.post(f"/rooms/{room_id}/bookings", json=payload, headers=headers or {})
    assert response.status_code == 201, response.text
    return response.json()


def test_room_crud_flow(rooms_client, admin_headers):
    room = _create_room(rooms_client, admin_headers)
    assert room["operating_start"] == "09:00"
    assert room["operating_end"] == "18:00"
    assert Decimal(str(room["hourly_rate"])) == Decimal("750.00")

    listed = rooms_client.get("/rooms")
    assert listed.status_code == 200
    assert [entry["name"] for entry in listed.json()] == ["Boardroom"]

    updated = rooms_client.put(f"/rooms/{room['id']}", json={"capacity": 12}, headers=admin_headers)
    assert updated.status_code == 200
    assert updated.json()["capacity"] == 12
    assert rooms_client.get("/rooms").json()[0]["capacity"] == 12

    deleted = rooms_client.delete(f"/rooms/{room['id']}", headers=admin_headers)
    assert deleted.status_code == 204
    assert rooms_client.get(f"/rooms/{room['id']}").status_code == 404


def test_room_management_requires_admin(rooms_client, member_headers):
    assert rooms_client.post("/rooms", json=ROOM_PAYLOAD).status_code == 401
    assert rooms_client.post("/rooms", json=ROOM_PAYLOAD, headers=member_headers).status_code == 403


def test_duplicate_room_name_conflicts(rooms_client, admin_headers):
    _create_room(rooms_client, admin_headers)
    response = rooms_client.post("/rooms", json=ROOM_PAYLOAD, headers=admin_headers)
    assert response.status_code == 409
    assert response.json()["code"] == "duplicate_room_name"


def test_room_rejects_non_positive_rate_and_bad_hours(rooms_client, admin_headers):
    response = rooms_client.post("/rooms", json={**ROOM_PAYLOAD, "hourly_rate": "0"}, headers=admin_headers)
    assert response.status_code == 422

    response = rooms_client.post(
        "/rooms",
        json={**ROOM_PAYLOAD, "operating_start": "18:00", "operating_end": "09:00"},
        headers=admin_headers,
    )
    assert response.status_code == 400
    assert response.json()["code"] == "invalid_range"


def test_availability_lists_every_half_hour(rooms_client, admin_headers, booking_day):
    room = _create_room(rooms_client, admin_headers)

    response = rooms_client.get(f"/rooms/{room['id']}/availability", params={"date": booking_day.isoformat()})
    assert response.status_code == 200
    body = response.json()
    assert body["booking_date"] == booking_day.isoformat()
    assert len(body["slots"]) == 18
    assert body["slots"][0] == {"time": "09:00", "available": True}
    assert body["slots"][-1]["time"] == "17:30"
    assert body["busy"] == []


def test_availability_reflects_bookings_of_both_variants(
    rooms_client, bookings_client, admin_headers, member_headers, booking_day
):
    room = _create_room(rooms_client, admin_headers)
    _book(bookings_client, room["id"], booking_day, "10:00", "11:00", headers=member_headers)
    _book(bookings_client, room["id"], booking_day, "11:00", "12:00")

    body = rooms_client.get(f"/rooms/{room['id']}/availability", params={"date": booking_day.isoformat()}).json()
    taken = [slot["time"] for slot in body["slots"] if not slot["available"]]
    assert taken == ["10:00", "10:30", "11:00", "11:30"]
    assert body["busy"] == [
        {"start_time": "10:00", "end_time": "11:00"},
        {"start_time": "11:00", "end_time": "12:00"},
    ]


def test_availability_for_inactive_or_missing_room(rooms_client, admin_headers, booking_day):
    room = _create_room(rooms_client, admin_headers, is_active=False)

    response = rooms_client.get(f"/rooms/{room['id']}/availability", params={"date": booking_day.isoformat()})
    assert response.status_code == 404

    response = rooms_client.get("/rooms/999/availability", params={"date": booking_day.isoformat()})
    assert response.status_code == 404


def test_room_with_upcoming_bookings_cannot_be_deleted(
    rooms_client, bookings_client, admin_headers, booking_day
):
    room = _create_room(rooms_client, admin_headers)
    booking = _book(bookings_client, room["id"], booking_day, "09:00", "10:00")

    response = rooms_client.delete(f"/rooms/{room['id']}", headers=admin_headers)
    assert response.status_code == 409
    assert response.json()["code"] == "room_in_use"
    assert response.json()["details"]["booking_ids"] == [booking["id"]]

    bookings_client.post(f"/bookings/{booking['id']}/cancel", json={"reason": "Moved online"}, headers=admin_headers)
    assert rooms_client.delete(f"/rooms/{room['id']}", headers=admin_headers).status_code == 204


def test_room_status_is_available_without_bookings_today(rooms_client, admin_headers):
    room = _create_room(rooms_client, admin_headers)

    response = rooms_client.get(f"/rooms/{room['id']}/status", params={"force_refresh": True})
    assert response.status_code == 200
    assert response.json()["status"] == "available"
    assert response.json()["room_id"] == room["id"]


def _clock(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def test_room_status_cache_is_short_lived(rooms_client, bookings_client, admin_headers):
    now = datetime.now()
    if now.hour == 23 and now.minute >= 30:
        pytest.skip("no half-hour slot left today")
    room = _create_room(rooms_client, admin_headers, operating_start="00:00", operating_end="23:30")
    assert rooms_client.get(f"/rooms/{room['id']}/status").json()["status"] == "available"

    current_slot = now.hour * 60 + now.minute // 30 * 30
    _book(bookings_client, room["id"], now.date(), _clock(current_slot), _clock(current_slot + 30))

    cached = rooms_client.get(f"/rooms/{room['id']}/status").json()
    fresh = rooms_client.get(f"/rooms/{room['id']}/status", params={"force_refresh": True}).json()
    assert cached["status"] == "available"
    assert fresh["status"] == "booked"

    settings = get_settings()
    assert status_cache.ttl == settings.room_status_ttl
    assert settings.room_status_ttl < settings.room_cache_ttl


def test_storage_failure_is_503_with_retry_after(rooms_client, admin_headers, booking_day, monkeypatch):
    room = _create_room(rooms_client, admin_headers)

    def locked(self, room_id, on_date, *args, **kwargs):
        raise OperationalError("SELECT", {}, Exception("database is locked"))

    monkeypatch.setattr(ReservationStore, "list_active_bookings", locked)

    response = rooms_client.get(f"/rooms/{room['id']}/availability", params={"date": booking_day.isoformat()})
    assert response.status_code == 503
    assert response.headers["Retry-After"] == "1"
    assert response.json()["code"] == "storage_error"
