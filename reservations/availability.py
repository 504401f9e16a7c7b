"""Entry point used by the HTTP layer: availability reads and booking mutations.

Mutations are delegated to :class:`ReservationStore`; once a change is
committed this service emits the domain event and the audit record.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterator, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .errors import ConcurrencyError, NotFoundError
from .events import AuditRecord, BookingEvent, EventDispatcher, build_dispatcher
from .lifecycle import snapshot
from .models import Booking, BookingStatus, PaymentStatus
from .overlap import Interval, active_intervals
from .store import BookerInfo, BookingDraft, PaymentIntent, ReservationStore, ensure_room_bookable
from .timegrid import SLOT_MINUTES, Slot, generate_slots, parse_range, parse_time_of_day

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Availability:
    room_id: int
    booking_date: date
    operating_start: str
    operating_end: str
    slots: Tuple[Slot, ...]
    busy: Tuple[Interval, ...]


@contextmanager
def storage_errors() -> Iterator[None]:
    """Surface raw database failures as a retryable :class:`ConcurrencyError`."""
    try:
        yield
    except SQLAlchemyError as exc:
        logger.exception("Storage failure while serving a reservation request")
        raise ConcurrencyError("Reservation storage is temporarily unavailable; please retry", code="storage_error") from exc


class AvailabilityService:
    def __init__(
        self,
        db: Session,
        store: Optional[ReservationStore] = None,
        dispatcher: Optional[EventDispatcher] = None,
    ) -> None:
        self.store = store or ReservationStore(db)
        self.dispatcher = dispatcher or build_dispatcher()

    def get_availability(self, room_id: int, on_date: date) -> Availability:
        with storage_errors():
            room = self.store.get_room(room_id)
            if not room.is_active:
                raise NotFoundError("Room not found or inactive", details={"room_id": room_id})
            busy = tuple(active_intervals(self.store.list_active_bookings(room.id, on_date)))
        slots = generate_slots(room.operating_start, room.operating_end, [(item.start, item.end) for item in busy])
        return Availability(
            room_id=room.id,
            booking_date=on_date,
            operating_start=room.operating_start,
            operating_end=room.operating_end,
            slots=slots,
            busy=busy,
        )

    def is_free(self, room_id: int, on_date: date, start_time: str, end_time: str) -> bool:
        """Best-effort read; the authoritative check happens when booking."""
        start, end = parse_range(start_time, end_time)
        availability = self.get_availability(room_id, on_date)
        covered = [slot for slot in availability.slots if start <= parse_time_of_day(slot.time) < end]
        return len(covered) == (end - start) // SLOT_MINUTES and all(slot.available for slot in covered)

    def book(
        self,
        room_id: int,
        on_date: date,
        start_time: str,
        end_time: str,
        attendee_count: int,
        booker: BookerInfo,
        payment: Optional[PaymentIntent] = None,
        *,
        purpose: Optional[str] = None,
        duration: Optional[float] = None,
        notes: Optional[str] = None,
        actor_id: Optional[int] = None,
        is_admin: bool = False,
    ) -> Booking:
        with storage_errors():
            ensure_room_bookable(self.store.get_room(room_id), attendee_count)
            booking = self.store.create_booking(
                BookingDraft(
                    room_id=room_id,
                    booking_date=on_date,
                    start_time=start_time,
                    end_time=end_time,
                    booker=booker,
                    number_of_attendees=attendee_count,
                    purpose=purpose,
                    payment=payment or PaymentIntent(),
                    duration=duration,
                    notes=notes,
                    created_by_admin=is_admin,
                )
            )
        self._emit(booking, "booking_created", actor_id, before=None)
        return booking

    def reschedule(
        self,
        booking_id: int,
        new_date: date,
        new_start: str,
        new_end: str,
        total_amount: Optional[Decimal] = None,
        actor_id: Optional[int] = None,
    ) -> Booking:
        with storage_errors():
            before = snapshot(self.store.get_booking(booking_id))
            booking = self.store.reschedule_booking(booking_id, new_date, new_start, new_end, total_amount)
        self._emit(booking, "booking_rescheduled", actor_id, before=before)
        return booking

    def cancel(self, booking_id: int, reason: Optional[str] = None, actor_id: Optional[int] = None) -> Booking:
        with storage_errors():
            before = snapshot(self.store.get_booking(booking_id))
            booking = self.store.cancel_booking(booking_id, reason)
        self._emit(booking, "booking_cancelled", actor_id, before=before)
        return booking

    def change_status(self, booking_id: int, target: BookingStatus, actor_id: Optional[int] = None) -> Booking:
        with storage_errors():
            before = snapshot(self.store.get_booking(booking_id))
            booking = self.store.change_status(booking_id, target)
        self._emit(booking, f"booking_{target.value.lower()}", actor_id, before=before)
        return booking

    def update_payment_status(self, booking_id: int, target: PaymentStatus, actor_id: Optional[int] = None) -> Booking:
        with storage_errors():
            before = snapshot(self.store.get_booking(booking_id))
            booking = self.store.update_payment_status(booking_id, target)
        self.dispatcher.audit(
            AuditRecord(
                actor_id=actor_id,
                action=f"payment_{target.value.lower()}",
                booking_id=booking.id,
                before_state=before,
                after_state=snapshot(booking),
            )
        )
        return booking

    def delete_booking(self, booking_id: int, actor_id: Optional[int] = None) -> None:
        with storage_errors():
            before = snapshot(self.store.get_booking(booking_id))
            self.store.delete_booking(booking_id)
        self.dispatcher.audit(
            AuditRecord(actor_id=actor_id, action="booking_deleted", booking_id=booking_id, before_state=before, after_state=None)
        )

    def list_bookings(self, **filters) -> List[Booking]:
        with storage_errors():
            return self.store.list_bookings(**filters)

    def get_booking(self, booking_id: int) -> Booking:
        with storage_errors():
            return self.store.get_booking(booking_id)

    def _emit(self, booking: Booking, action: str, actor_id: Optional[int], before: Optional[dict]) -> None:
        self.dispatcher.notify(
            BookingEvent(
                booking_id=booking.id,
                room_id=booking.room_id,
                new_status=booking.status.value,
                contact_email=booking.contact_email,
                event=action,
            )
        )
        self.dispatcher.audit(
            AuditRecord(
                actor_id=actor_id,
                action=action,
                booking_id=booking.id,
                before_state=before,
                after_state=snapshot(booking),
            )
        )
