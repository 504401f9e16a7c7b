import os
from datetime import date, timedelta
from decimal import Decimal
from typing import Generator

import pytest
from fastapi.testclient import TestClient

os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")
os.environ.setdefault("RATE_LIMITING_ENABLED", "false")
os.environ.setdefault("METRICS_ENABLED", "false")
os.environ.setdefault("NOTIFICATION_BACKEND", "log")

from reservations.config import reset_settings_cache  # noqa: E402

reset_settings_cache()

from reservations.auth import create_access_token  # noqa: E402
from reservations.database import Base, SessionLocal, engine  # noqa: E402
from reservations.models import Room  # noqa: E402
from services.bookings.app import app as bookings_app  # noqa: E402
from services.rooms.app import app as rooms_app  # noqa: E402
from services.rooms.app import room_cache, status_cache  # noqa: E402


@pytest.fixture(autouse=True, scope="function")
def _create_test_database() -> Generator[None, None, None]:
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    room_cache.clear()
    status_cache.clear()
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def db_session() -> Generator:
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def rooms_client() -> Generator[TestClient, None, None]:
    with TestClient(rooms_app) as client:
        yield client


@pytest.fixture()
def bookings_client() -> Generator[TestClient, None, None]:
    with TestClient(bookings_app) as client:
        yield client
    bookings_app.dependency_overrides.clear()


def bearer(member_id: int, role: str = "member", **claims) -> dict[str, str]:
    token = create_access_token({"sub": str(member_id), "role": role, **claims})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def admin_headers() -> dict[str, str]:
    return bearer(1, role="admin", name="Front Desk")


@pytest.fixture()
def member_headers() -> dict[str, str]:
    return bearer(42, name="Maria Santos", email="maria@example.com")


@pytest.fixture()
def other_member_headers() -> dict[str, str]:
    return bearer(43, name="Jose Rizal", email="jose@example.com")


@pytest.fixture()
def booking_day() -> date:
    return date.today() + timedelta(days=7)


@pytest.fixture()
def make_room(db_session):
    def _make_room(**overrides) -> Room:
        values = {
            "name": f"Room {len(db_session.query(Room).all()) + 1}",
            "capacity": 6,
            "hourly_rate": Decimal("500.00"),
            "operating_start": "09:00",
            "operating_end": "18:00",
        }
        values.update(overrides)
        room = Room(**values)
        db_session.add(room)
        db_session.commit()
        db_session.refresh(room)
        return room

    return _make_room
