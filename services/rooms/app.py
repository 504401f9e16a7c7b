from contextlib import asynccontextmanager
from datetime import date, datetime
from typing import List, Optional

from fastapi import Depends, FastAPI, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator

from reservations.auth import Caller
from reservations.availability import AvailabilityService
from reservations.cache import RoomCache
from reservations.config import get_settings
from reservations.database import Base, engine
from reservations.dependencies import get_availability_service, get_store, require_admin
from reservations.errors import add_error_handlers
from reservations.logging_middleware import add_audit_middleware
from reservations.models import Room
from reservations.rate_limit import apply_rate_limiter, limiter
from reservations.schemas import AvailabilityRead, RoomCreate, RoomRead, RoomStatusRead, RoomUpdate
from reservations.store import ReservationStore
from reservations.timegrid import parse_time_of_day

settings = get_settings()
room_cache: RoomCache = RoomCache(ttl=settings.room_cache_ttl)
# Occupancy changes with every booking, which this service never sees; keep it short-lived.
status_cache: RoomCache = RoomCache(ttl=settings.room_status_ttl)


@asynccontextmanager
async def lifespan(_: FastAPI):
    if settings.run_db_migrations:
        Base.metadata.create_all(bind=engine)
    yield


def create_app() -> FastAPI:
    fastapi_app = FastAPI(title="Rooms Service", version="1.0.0", lifespan=lifespan)
    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    apply_rate_limiter(fastapi_app)
    add_audit_middleware(fastapi_app, "rooms")
    add_error_handlers(fastapi_app)
    if settings.metrics_enabled:
        Instrumentator().instrument(fastapi_app).expose(fastapi_app)
    return fastapi_app


app = create_app()


@app.get("/health", tags=["health"])
def health() -> dict[str, str]:
    return {"status": "ok", "service": "rooms"}


@app.post("/rooms", response_model=RoomRead, status_code=status.HTTP_201_CREATED)
@limiter.limit("10/minute")
def add_room(
    request: Request,
    room_in: RoomCreate,
    _: Caller = Depends(require_admin),
    store: ReservationStore = Depends(get_store),
) -> Room:
    room = store.create_room(room_in.model_dump())
    room_cache.invalidate(room.id)
    return room


@app.get("/rooms", response_model=List[RoomRead])
@limiter.limit("60/minute")
def list_rooms(
    request: Request,
    capacity: Optional[int] = Query(None, ge=1),
    store: ReservationStore = Depends(get_store),
) -> List[RoomRead]:
    return room_cache.get_or_load(
        lambda: [RoomRead.model_validate(room) for room in store.list_rooms(capacity=capacity)],
        None,
        "list",
        capacity,
    )


@app.get("/rooms/{room_id}", response_model=RoomRead)
@limiter.limit("60/minute")
def get_room(request: Request, room_id: int, store: ReservationStore = Depends(get_store)) -> Room:
    return store.get_room(room_id)


@app.put("/rooms/{room_id}", response_model=RoomRead)
@limiter.limit("15/minute")
def update_room(
    request: Request,
    room_id: int,
    room_update: RoomUpdate,
    _: Caller = Depends(require_admin),
    store: ReservationStore = Depends(get_store),
) -> Room:
    room = store.update_room(room_id, room_update.model_dump(exclude_unset=True))
    room_cache.invalidate(room_id)
    status_cache.invalidate(room_id)
    return room


@app.delete("/rooms/{room_id}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit("15/minute")
def delete_room(
    request: Request,
    room_id: int,
    _: Caller = Depends(require_admin),
    store: ReservationStore = Depends(get_store),
) -> None:
    store.delete_room(room_id)
    room_cache.invalidate(room_id)
    status_cache.invalidate(room_id)


@app.get("/rooms/{room_id}/availability", response_model=AvailabilityRead)
@limiter.limit("60/minute")
def room_availability(
    request: Request,
    room_id: int,
    booking_date: date = Query(..., alias="date"),
    service: AvailabilityService = Depends(get_availability_service),
) -> AvailabilityRead:
    return AvailabilityRead.model_validate(service.get_availability(room_id, booking_date))


@app.get("/rooms/{room_id}/status", response_model=RoomStatusRead)
@limiter.limit("30/minute")
def room_status(
    request: Request,
    room_id: int,
    force_refresh: bool = False,
    store: ReservationStore = Depends(get_store),
) -> RoomStatusRead:
    room = store.get_room(room_id)
    if not force_refresh:
        cached = status_cache.get(room.id)
        if cached is not None:
            return cached
    now = datetime.now()
    current = now.hour * 60 + now.minute
    occupied = any(
        parse_time_of_day(booking.start_time) <= current < parse_time_of_day(booking.end_time)
        for booking in store.list_active_bookings(room.id, now.date())
    )
    payload = RoomStatusRead(room_id=room.id, status="booked" if occupied else "available", checked_at=now)
    status_cache.set(payload, room.id)
    return payload
