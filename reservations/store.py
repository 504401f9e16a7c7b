"""Persistence for rooms, guests, bookings and payments.

Every booking write runs as one unit of work: take the ``(room, date)``
critical section, re-read the active bookings, check for overlap, write the
booking together with its payment side effect, and commit before the section
is released. Validation happens before anything is written.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .config import Settings, get_settings
from .errors import (
    AlreadyCancelledError,
    ConcurrencyError,
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    ReservationError,
    ValidationError,
)
from .lifecycle import BookingLifecycle
from .locks import LockKey, RoomDateLocks, room_date_locks
from .models import (
    ACTIVE_STATUSES,
    BookerVariant,
    Booking,
    BookingStatus,
    Guest,
    Payment,
    PaymentMethod,
    PaymentStatus,
    Room,
    RoomStatusEnum,
    utc_now,
)
from .overlap import active_intervals, find_conflicts
from .timegrid import format_time_of_day, parse_range

logger = logging.getLogger(__name__)

_CENTS = Decimal("0.01")
# Bookings that keep a room from being deleted.
UPCOMING_STATUSES = frozenset({BookingStatus.PENDING, BookingStatus.CONFIRMED})


@dataclass
class BookerInfo:
    """Who the booking is for, plus the contact details captured at booking time."""

    variant: BookerVariant
    contact_name: str
    contact_email: Optional[str] = None
    contact_mobile: Optional[str] = None
    company: Optional[str] = None
    designation: Optional[str] = None
    member_id: Optional[int] = None
    guest_id: Optional[int] = None


@dataclass
class PaymentIntent:
    method: PaymentMethod = PaymentMethod.CASH
    amount: Optional[Decimal] = None


@dataclass
class BookingDraft:
    room_id: int
    booking_date: date
    start_time: str
    end_time: str
    booker: BookerInfo
    number_of_attendees: int = 1
    purpose: Optional[str] = None
    payment: PaymentIntent = field(default_factory=PaymentIntent)
    duration: Optional[float] = None
    notes: Optional[str] = None
    created_by_admin: bool = False


def to_money(value: Any) -> Decimal:
    return Decimal(str(value)).quantize(_CENTS, rounding=ROUND_HALF_UP)


def ensure_room_bookable(room: Room, number_of_attendees: int) -> None:
    if not room.is_active or room.status != RoomStatusEnum.AVAILABLE:
        raise ValidationError("Room not available", code="room_unavailable", details={"room_id": room.id})
    if number_of_attendees < 1:
        raise ValidationError("At least one attendee is required", code="invalid_attendees")
    if number_of_attendees > room.capacity:
        raise ValidationError(
            f"Room capacity is {room.capacity} people. Please select a larger room.",
            code="over_capacity",
            details={"capacity": room.capacity, "requested": number_of_attendees},
        )


def validate_schedule(
    room: Room,
    booking_date: date,
    start_time: str,
    end_time: str,
    number_of_attendees: int,
    today: date,
    duration: Optional[float] = None,
) -> Tuple[int, int, float]:
    """Check grid alignment, operating hours, capacity and date; return ``(start, end, hours)``."""
    ensure_room_bookable(room, number_of_attendees)
    start, end = parse_range(start_time, end_time)
    hours = (end - start) / 60
    if duration is not None and abs(duration - hours) > 0.01:
        raise ValidationError(
            "Duration does not match time slot difference",
            code="duration_mismatch",
            details={"duration": duration, "expected": hours},
        )
    open_at, close_at = parse_range(room.operating_start, room.operating_end)
    if start < open_at or end > close_at:
        raise ValidationError(
            f"Bookings must fall within operating hours {room.operating_start}-{room.operating_end}",
            code="outside_operating_hours",
        )
    if booking_date < today:
        raise ValidationError("Cannot book for past dates", code="past_date")
    return start, end, hours


class ReservationStore:
    def __init__(
        self,
        db: Session,
        locks: Optional[RoomDateLocks] = None,
        today: Callable[[], date] = date.today,
        settings: Optional[Settings] = None,
    ) -> None:
        self.db = db
        self.locks = locks or room_date_locks
        self.today = today
        self.settings = settings or get_settings()
        self.lifecycle = BookingLifecycle(db)

    # -- unit of work -------------------------------------------------------

    @contextmanager
    def unit_of_work(
        self, *keys: LockKey, sequence: bool = False, exclusive_room: Optional[int] = None
    ) -> Iterator[None]:
        """Run the block under the given critical sections and commit before leaving them.

        ``exclusive_room`` holds that room's gate alone instead of date keys.
        """
        section = self.locks.hold_room(exclusive_room) if exclusive_room is not None else self.locks.hold(
            self.db, *keys, sequence=sequence
        )
        try:
            with section:
                yield
                self.db.commit()
        except ReservationError:
            self.db.rollback()
            raise
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception("Booking write failed for %s", keys)
            raise ConcurrencyError(
                "The booking could not be saved because of a concurrent change; please retry",
                code="storage_error",
            ) from exc

    # -- rooms --------------------------------------------------------------

    def get_room(self, room_id: int) -> Room:
        room = self.db.get(Room, room_id)
        if room is None:
            raise NotFoundError("Room not found", details={"room_id": room_id})
        return room

    def list_rooms(self, capacity: Optional[int] = None, include_inactive: bool = False) -> List[Room]:
        query = select(Room).order_by(Room.name)
        if not include_inactive:
            query = query.where(Room.is_active.is_(True))
        if capacity:
            query = query.where(Room.capacity >= capacity)
        return list(self.db.scalars(query))

    def create_room(self, data: Dict[str, Any]) -> Room:
        values = dict(data)
        values["operating_start"] = values.get("operating_start") or self.settings.default_operating_start
        values["operating_end"] = values.get("operating_end") or self.settings.default_operating_end
        self._check_room_values(values)
        room = Room(**values)
        with self.unit_of_work():
            self.db.add(room)
        self.db.refresh(room)
        return room

    def update_room(self, room_id: int, data: Dict[str, Any]) -> Room:
        room = self.get_room(room_id)
        merged = {
            "name": room.name,
            "operating_start": room.operating_start,
            "operating_end": room.operating_end,
            **{key: value for key, value in data.items() if value is not None},
        }
        self._check_room_values(merged, room_id=room.id)
        with self.unit_of_work():
            for key, value in data.items():
                if value is not None:
                    setattr(room, key, value)
        self.db.refresh(room)
        return room

    def delete_room(self, room_id: int) -> None:
        with self.unit_of_work(exclusive_room=room_id):
            room = self._lock_room(room_id, shared=False)
            upcoming = set(self._upcoming_booking_ids(room))
            # Everything the cascade will remove is reloaded and checked again.
            bookings = self.db.scalars(
                select(Booking).where(Booking.room_id == room.id).execution_options(populate_existing=True)
            ).all()
            upcoming.update(
                booking.id
                for booking in bookings
                if booking.status in UPCOMING_STATUSES and booking.booking_date >= self.today()
            )
            if upcoming:
                raise ConflictError(
                    "Cannot delete room with upcoming bookings. Please cancel all bookings first.",
                    code="room_in_use",
                    details={"booking_ids": sorted(upcoming)},
                )
            for booking in bookings:
                if booking.payment is not None:
                    self.db.delete(booking.payment)
                self.db.delete(booking)
            self.db.delete(room)

    def _upcoming_booking_ids(self, room: Room) -> List[int]:
        return list(
            self.db.scalars(
                select(Booking.id).where(
                    Booking.room_id == room.id,
                    Booking.status.in_(list(UPCOMING_STATUSES)),
                    Booking.booking_date >= self.today(),
                )
            )
        )

    def _check_room_values(self, values: Dict[str, Any], room_id: Optional[int] = None) -> None:
        parse_range(values["operating_start"], values["operating_end"])
        clash = self.db.scalar(select(Room.id).where(Room.name == values["name"]))
        if clash is not None and clash != room_id:
            raise ConflictError("A room with this name already exists", code="duplicate_room_name")

    def _lock_room(self, room_id: int, shared: bool = True) -> Room:
        # FOR SHARE / FOR UPDATE on databases that support it; no-op on SQLite.
        query = select(Room).where(Room.id == room_id).execution_options(populate_existing=True)
        query = query.with_for_update(read=shared)
        room = self.db.scalars(query).first()
        if room is None:
            raise NotFoundError("Room not found", details={"room_id": room_id})
        return room

    # -- booking reads ------------------------------------------------------

    def get_booking(self, booking_id: int) -> Booking:
        booking = self.db.get(Booking, booking_id)
        if booking is None:
            raise NotFoundError("Booking not found", details={"booking_id": booking_id})
        return booking

    def _reload_booking(self, booking_id: int) -> Booking:
        booking = self.db.get(Booking, booking_id, populate_existing=True)
        if booking is None:
            raise NotFoundError("Booking not found", details={"booking_id": booking_id})
        return booking

    def list_active_bookings(
        self, room_id: int, on_date: date, exclude_booking_id: Optional[int] = None
    ) -> List[Booking]:
        """Active bookings of both booker variants for one room and day."""
        query = (
            select(Booking)
            .where(
                Booking.room_id == room_id,
                Booking.booking_date == on_date,
                Booking.status.in_(list(ACTIVE_STATUSES)),
            )
            .order_by(Booking.start_time)
            .execution_options(populate_existing=True)
        )
        if exclude_booking_id is not None:
            query = query.where(Booking.id != exclude_booking_id)
        return list(self.db.scalars(query))

    def list_bookings(
        self,
        room_id: Optional[int] = None,
        on_date: Optional[date] = None,
        status: Optional[BookingStatus] = None,
        variant: Optional[BookerVariant] = None,
        member_id: Optional[int] = None,
    ) -> List[Booking]:
        query = select(Booking).order_by(Booking.booking_date.desc(), Booking.start_time)
        if room_id is not None:
            query = query.where(Booking.room_id == room_id)
        if on_date is not None:
            query = query.where(Booking.booking_date == on_date)
        if status is not None:
            query = query.where(Booking.status == status)
        if variant is not None:
            query = query.where(Booking.booker_variant == variant)
        if member_id is not None:
            query = query.where(Booking.member_id == member_id)
        return list(self.db.scalars(query))

    # -- booking writes -----------------------------------------------------

    def create_booking(self, draft: BookingDraft) -> Booking:
        room = self.get_room(draft.room_id)
        start, end, hours = validate_schedule(
            room,
            draft.booking_date,
            draft.start_time,
            draft.end_time,
            draft.number_of_attendees,
            self.today(),
            duration=draft.duration,
        )
        self._check_booker(draft.booker)
        amount = draft.payment.amount if draft.payment.amount is not None else room.hourly_rate * Decimal(str(hours))
        if to_money(amount) < 0:
            raise ValidationError("Total amount cannot be negative", code="invalid_amount")

        with self.unit_of_work((room.id, draft.booking_date), sequence=True):
            room = self._lock_room(room.id)
            ensure_room_bookable(room, draft.number_of_attendees)
            self._ensure_free(room.id, draft.booking_date, start, end)
            booker = draft.booker
            guest = self._resolve_guest(booker) if booker.variant == BookerVariant.GUEST else None
            booking = Booking(
                room=room,
                booker_variant=booker.variant,
                member_id=booker.member_id if booker.variant == BookerVariant.MEMBER else None,
                guest=guest,
                booking_date=draft.booking_date,
                start_time=format_time_of_day(start),
                end_time=format_time_of_day(end),
                duration=hours,
                contact_name=booker.contact_name,
                contact_email=booker.contact_email,
                contact_mobile=booker.contact_mobile,
                company=booker.company,
                designation=booker.designation,
                number_of_attendees=draft.number_of_attendees,
                purpose=draft.purpose,
                notes=draft.notes,
                total_amount=to_money(amount),
                created_by_admin=draft.created_by_admin,
            )
            self.lifecycle.open(
                booking,
                payment_reference=self._next_payment_reference(),
                payment_method=draft.payment.method,
                payment_notes=(
                    f"Meeting room booking: {room.name} | {draft.booking_date.isoformat()} "
                    f"{booking.start_time}-{booking.end_time} | {hours:g}hr"
                ),
            )
        self.db.refresh(booking)
        logger.info(
            "Created booking %s for room %s on %s %s-%s (%s)",
            booking.id,
            room.id,
            booking.booking_date,
            booking.start_time,
            booking.end_time,
            booking.booker_variant.value,
        )
        return booking

    def reschedule_booking(
        self,
        booking_id: int,
        new_date: date,
        new_start: str,
        new_end: str,
        total_amount: Optional[Decimal] = None,
    ) -> Booking:
        booking = self.get_booking(booking_id)
        keys = {(booking.room_id, booking.booking_date), (booking.room_id, new_date)}
        with self.unit_of_work(*keys):
            booking = self._reload_booking(booking_id)
            if booking.status == BookingStatus.CANCELLED:
                raise AlreadyCancelledError("Cancelled bookings cannot be rescheduled", details={"booking_id": booking_id})
            if booking.status not in (BookingStatus.PENDING, BookingStatus.CONFIRMED):
                raise InvalidTransitionError(
                    f"Cannot reschedule a {booking.status.value} booking", details={"booking_id": booking_id}
                )
            room = self._lock_room(booking.room_id)
            start, end, hours = validate_schedule(
                room, new_date, new_start, new_end, booking.number_of_attendees, self.today()
            )
            self._ensure_free(room.id, new_date, start, end, exclude_booking_id=booking.id)

            if total_amount is not None:
                amount = to_money(total_amount)
            elif abs(hours - booking.duration) > 0.01:
                amount = to_money(room.hourly_rate * Decimal(str(hours)))
            else:
                amount = booking.total_amount
            booking.booking_date = new_date
            booking.start_time = format_time_of_day(start)
            booking.end_time = format_time_of_day(end)
            booking.duration = hours
            self.lifecycle.reprice(booking, amount)
        self.db.refresh(booking)
        logger.info("Rescheduled booking %s to %s %s-%s", booking.id, new_date, booking.start_time, booking.end_time)
        return booking

    def cancel_booking(self, booking_id: int, reason: Optional[str] = None) -> Booking:
        return self.change_status(booking_id, BookingStatus.CANCELLED, reason=reason)

    def change_status(self, booking_id: int, target: BookingStatus, reason: Optional[str] = None) -> Booking:
        booking = self.get_booking(booking_id)
        with self.unit_of_work((booking.room_id, booking.booking_date)):
            booking = self._reload_booking(booking_id)
            self.lifecycle.transition(booking, target, reason=reason)
        self.db.refresh(booking)
        return booking

    def update_payment_status(self, booking_id: int, target: PaymentStatus) -> Booking:
        booking = self.get_booking(booking_id)
        with self.unit_of_work((booking.room_id, booking.booking_date)):
            booking = self._reload_booking(booking_id)
            self.lifecycle.set_payment_status(booking, target)
        self.db.refresh(booking)
        return booking

    def delete_booking(self, booking_id: int) -> None:
        booking = self.get_booking(booking_id)
        with self.unit_of_work((booking.room_id, booking.booking_date)):
            booking = self._reload_booking(booking_id)
            if booking.status != BookingStatus.CANCELLED:
                raise ValidationError("Only cancelled bookings can be deleted", code="not_cancelled")
            self.db.delete(booking)

    # -- helpers ------------------------------------------------------------

    def _ensure_free(
        self, room_id: int, on_date: date, start: int, end: int, exclude_booking_id: Optional[int] = None
    ) -> None:
        candidates = active_intervals(self.list_active_bookings(room_id, on_date), exclude_booking_id=exclude_booking_id)
        conflicts = find_conflicts(start, end, candidates)
        if conflicts:
            taken = ", ".join(f"{interval.start_time}-{interval.end_time}" for interval in conflicts)
            raise ConflictError(
                f"This time slot is already booked ({taken}). Please select a different time.",
                code="slot_taken",
                details={
                    "requested": {"start_time": format_time_of_day(start), "end_time": format_time_of_day(end)},
                    "conflicts": [interval.as_dict() for interval in conflicts],
                },
            )

    def _check_booker(self, booker: BookerInfo) -> None:
        if not booker.contact_name or not booker.contact_name.strip():
            raise ValidationError("Contact name is required", code="missing_contact")
        if booker.variant == BookerVariant.MEMBER and booker.member_id is None:
            raise ValidationError("Member bookings need a member id", code="missing_member")

    def _resolve_guest(self, booker: BookerInfo) -> Guest:
        email = booker.contact_email.strip().lower() if booker.contact_email and booker.contact_email.strip() else None
        if booker.guest_id is not None:
            guest = self.db.get(Guest, booker.guest_id)
            if guest is None:
                raise NotFoundError("Guest not found", details={"guest_id": booker.guest_id})
            if email and email != guest.email:
                owner = self.db.scalar(select(Guest.id).where(Guest.email == email))
                if owner is not None and owner != guest.id:
                    raise ValidationError("Another guest already uses this email", code="duplicate_guest_email")
                guest.email = email
            guest.name = booker.contact_name
            if booker.company:
                guest.company = booker.company
            return guest

        if email:
            guest = self.db.scalars(select(Guest).where(Guest.email == email)).first()
            if guest is not None:
                return guest
        guest = Guest(
            name=booker.contact_name,
            email=email,
            contact_number=booker.contact_mobile,
            company=booker.company,
            notes="Walk-in meeting room booking",
        )
        self.db.add(guest)
        return guest

    def _next_payment_reference(self) -> str:
        prefix = f"{self.settings.payment_reference_prefix}_{utc_now().year}_"
        references = self.db.scalars(
            select(Payment.payment_reference).where(Payment.payment_reference.like(f"{prefix}%"))
        ).all()
        highest = max((_sequence_number(reference) for reference in references), default=0)
        return f"{prefix}{highest + 1:03d}"


def _sequence_number(reference: str) -> int:
    tail = reference.rsplit("_", 1)[-1]
    return int(tail) if tail.isdigit() else 0
