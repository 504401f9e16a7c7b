from contextlib import asynccontextmanager
from datetime import date
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator

from reservations.auth import Caller
from reservations.availability import AvailabilityService
from reservations.config import get_settings
from reservations.database import Base, engine
from reservations.dependencies import (
    get_availability_service,
    get_current_caller,
    get_optional_caller,
    require_admin,
)
from reservations.errors import ValidationError, add_error_handlers
from reservations.logging_middleware import add_audit_middleware
from reservations.models import BookerVariant, Booking, BookingStatus
from reservations.rate_limit import apply_rate_limiter, limiter
from reservations.schemas import (
    BookingCancel,
    BookingCreate,
    BookingRead,
    BookingReschedule,
    BookingStatusUpdate,
    PaymentStatusUpdate,
)
from reservations.store import BookerInfo, PaymentIntent

settings = get_settings()


@asynccontextmanager
async def lifespan(_: FastAPI):
    if settings.run_db_migrations:
        Base.metadata.create_all(bind=engine)
    yield


def create_app() -> FastAPI:
    fastapi_app = FastAPI(title="Bookings Service", version="1.0.0", lifespan=lifespan)
    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    apply_rate_limiter(fastapi_app)
    add_audit_middleware(fastapi_app, "bookings")
    add_error_handlers(fastapi_app)
    if settings.metrics_enabled:
        Instrumentator().instrument(fastapi_app).expose(fastapi_app)
    return fastapi_app


app = create_app()


def _booker_for(booking_in: BookingCreate, caller: Optional[Caller]) -> BookerInfo:
    contact = booking_in.contact
    details = {
        "contact_name": contact.name,
        "contact_email": str(contact.email) if contact.email else None,
        "contact_mobile": contact.mobile,
        "company": contact.company,
        "designation": contact.designation,
    }
    if caller is not None and caller.is_admin:
        variant = booking_in.booker_variant or (
            BookerVariant.MEMBER if booking_in.member_id is not None else BookerVariant.GUEST
        )
        if variant == BookerVariant.MEMBER:
            return BookerInfo(variant=variant, member_id=booking_in.member_id, **details)
        return BookerInfo(variant=variant, guest_id=booking_in.guest_id, **details)

    if caller is not None:
        details["contact_email"] = details["contact_email"] or caller.email
        return BookerInfo(variant=BookerVariant.MEMBER, member_id=caller.member_id, **details)

    if not details["contact_email"] or not details["contact_mobile"] or not booking_in.purpose:
        raise ValidationError("Missing required contact details", code="missing_contact")
    return BookerInfo(variant=BookerVariant.GUEST, **details)


def _ensure_access(booking: Booking, caller: Caller) -> None:
    if caller.is_admin:
        return
    if booking.booker_variant != BookerVariant.MEMBER or booking.member_id != caller.member_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")


@app.get("/health", tags=["health"])
def health() -> dict[str, str]:
    return {"status": "ok", "service": "bookings"}


@app.post("/rooms/{room_id}/bookings", response_model=BookingRead, status_code=status.HTTP_201_CREATED)
@limiter.limit("20/minute")
def create_booking(
    request: Request,
    room_id: int,
    booking_in: BookingCreate,
    caller: Optional[Caller] = Depends(get_optional_caller),
    service: AvailabilityService = Depends(get_availability_service),
) -> Booking:
    return service.book(
        room_id,
        booking_in.booking_date,
        booking_in.start_time,
        booking_in.end_time,
        booking_in.number_of_attendees,
        _booker_for(booking_in, caller),
        PaymentIntent(method=booking_in.payment.method, amount=booking_in.payment.amount),
        purpose=booking_in.purpose,
        duration=booking_in.duration,
        notes=booking_in.notes,
        actor_id=caller.member_id if caller else None,
        is_admin=bool(caller and caller.is_admin),
    )


@app.get("/bookings", response_model=List[BookingRead])
@limiter.limit("30/minute")
def list_bookings(
    request: Request,
    room_id: Optional[int] = None,
    booking_date: Optional[date] = Query(None, alias="date"),
    booking_status: Optional[BookingStatus] = Query(None, alias="status"),
    variant: Optional[BookerVariant] = None,
    _: Caller = Depends(require_admin),
    service: AvailabilityService = Depends(get_availability_service),
) -> List[Booking]:
    return service.list_bookings(room_id=room_id, on_date=booking_date, status=booking_status, variant=variant)


@app.get("/bookings/me", response_model=List[BookingRead])
@limiter.limit("30/minute")
def list_my_bookings(
    request: Request,
    caller: Caller = Depends(get_current_caller),
    service: AvailabilityService = Depends(get_availability_service),
) -> List[Booking]:
    return service.list_bookings(variant=BookerVariant.MEMBER, member_id=caller.member_id)


@app.get("/bookings/{booking_id}", response_model=BookingRead)
@limiter.limit("60/minute")
def get_booking(
    request: Request,
    booking_id: int,
    caller: Caller = Depends(get_current_caller),
    service: AvailabilityService = Depends(get_availability_service),
) -> Booking:
    booking = service.get_booking(booking_id)
    _ensure_access(booking, caller)
    return booking


@app.patch("/bookings/{booking_id}", response_model=BookingRead)
@limiter.limit("20/minute")
def reschedule_booking(
    request: Request,
    booking_id: int,
    change: BookingReschedule,
    caller: Caller = Depends(get_current_caller),
    service: AvailabilityService = Depends(get_availability_service),
) -> Booking:
    _ensure_access(service.get_booking(booking_id), caller)
    total_amount = change.total_amount if caller.is_admin else None
    return service.reschedule(
        booking_id,
        change.booking_date,
        change.start_time,
        change.end_time,
        total_amount=total_amount,
        actor_id=caller.member_id,
    )


@app.post("/bookings/{booking_id}/cancel", response_model=BookingRead)
@limiter.limit("20/minute")
def cancel_booking(
    request: Request,
    booking_id: int,
    cancellation: BookingCancel,
    caller: Caller = Depends(get_current_caller),
    service: AvailabilityService = Depends(get_availability_service),
) -> Booking:
    _ensure_access(service.get_booking(booking_id), caller)
    return service.cancel(booking_id, cancellation.reason, actor_id=caller.member_id)


@app.post("/bookings/{booking_id}/status", response_model=BookingRead)
@limiter.limit("20/minute")
def change_booking_status(
    request: Request,
    booking_id: int,
    update: BookingStatusUpdate,
    caller: Caller = Depends(require_admin),
    service: AvailabilityService = Depends(get_availability_service),
) -> Booking:
    return service.change_status(booking_id, update.status, actor_id=caller.member_id)


@app.patch("/bookings/{booking_id}/payment", response_model=BookingRead)
@limiter.limit("20/minute")
def update_payment_status(
    request: Request,
    booking_id: int,
    update: PaymentStatusUpdate,
    caller: Caller = Depends(require_admin),
    service: AvailabilityService = Depends(get_availability_service),
) -> Booking:
    return service.update_payment_status(booking_id, update.status, actor_id=caller.member_id)


@app.delete("/bookings/{booking_id}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit("20/minute")
def delete_booking(
    request: Request,
    booking_id: int,
    caller: Caller = Depends(require_admin),
    service: AvailabilityService = Depends(get_availability_service),
) -> None:
    service.delete_booking(booking_id, actor_id=caller.member_id)
