"""Booking status transitions and the payment side effect each one carries."""
from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Dict, FrozenSet, Mapping, Optional

from sqlalchemy.orm import Session

from .errors import AlreadyCancelledError, InvalidTransitionError
from .models import Booking, BookingStatus, Payment, PaymentMethod, PaymentStatus, utc_now

logger = logging.getLogger(__name__)

TRANSITIONS: Mapping[BookingStatus, FrozenSet[BookingStatus]] = {
    BookingStatus.PENDING: frozenset(
        {BookingStatus.CONFIRMED, BookingStatus.CANCELLED, BookingStatus.COMPLETED, BookingStatus.NO_SHOW}
    ),
    BookingStatus.CONFIRMED: frozenset({BookingStatus.CANCELLED, BookingStatus.COMPLETED, BookingStatus.NO_SHOW}),
    BookingStatus.CANCELLED: frozenset(),
    BookingStatus.COMPLETED: frozenset(),
    BookingStatus.NO_SHOW: frozenset(),
}

PAYMENT_TRANSITIONS: Mapping[PaymentStatus, FrozenSet[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset({PaymentStatus.COMPLETED, PaymentStatus.FAILED}),
    PaymentStatus.FAILED: frozenset({PaymentStatus.PENDING, PaymentStatus.COMPLETED}),
    PaymentStatus.COMPLETED: frozenset({PaymentStatus.REFUNDED}),
    PaymentStatus.REFUNDED: frozenset(),
}


def snapshot(booking: Booking) -> Dict[str, Any]:
    """Plain-dict view of the fields an audit trail cares about."""
    return {
        "status": booking.status.value if booking.status else None,
        "room_id": booking.room_id,
        "booking_date": booking.booking_date.isoformat() if booking.booking_date else None,
        "start_time": booking.start_time,
        "end_time": booking.end_time,
        "duration": booking.duration,
        "total_amount": str(booking.total_amount) if booking.total_amount is not None else None,
        "payment_id": booking.payment_id,
    }


def can_transition(current: BookingStatus, target: BookingStatus) -> bool:
    return target in TRANSITIONS[current]


class BookingLifecycle:
    """Applies transitions to bookings attached to ``db``; the caller owns the commit."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def open(
        self,
        booking: Booking,
        payment_reference: str,
        payment_method: PaymentMethod = PaymentMethod.CASH,
        payment_notes: Optional[str] = None,
    ) -> Payment:
        """Enter PENDING and attach a PENDING payment for the full amount."""
        payment = Payment(
            amount=booking.total_amount,
            payment_method=payment_method,
            status=PaymentStatus.PENDING,
            payment_reference=payment_reference,
            notes=payment_notes,
        )
        booking.status = BookingStatus.PENDING
        booking.payment = payment
        self.db.add(payment)
        self.db.add(booking)
        return payment

    def transition(self, booking: Booking, target: BookingStatus, reason: Optional[str] = None) -> Booking:
        current = booking.status
        if current == BookingStatus.CANCELLED and target == BookingStatus.CANCELLED:
            raise AlreadyCancelledError("Booking is already cancelled", details={"booking_id": booking.id})
        if not can_transition(current, target):
            raise InvalidTransitionError(
                f"Cannot move booking from {current.value} to {target.value}",
                details={"booking_id": booking.id, "from": current.value, "to": target.value},
            )

        booking.status = target
        if target == BookingStatus.CANCELLED:
            self._void_payment(booking)
            booking.cancelled_at = utc_now()
            if reason:
                entry = f"[CANCELLED] {reason}"
                booking.notes = f"{booking.notes}\n\n{entry}" if booking.notes else entry
        logger.info("Booking %s moved %s -> %s", booking.id, current.value, target.value)
        return booking

    def reprice(self, booking: Booking, total_amount: Decimal) -> None:
        """Change the booking amount and keep the linked payment equal to it."""
        booking.total_amount = total_amount
        if booking.payment is not None:
            booking.payment.amount = total_amount

    def set_payment_status(self, booking: Booking, target: PaymentStatus) -> Payment:
        payment = booking.payment
        if payment is None:
            raise InvalidTransitionError(
                "Booking has no payment to update", details={"booking_id": booking.id}
            )
        if target not in PAYMENT_TRANSITIONS[payment.status]:
            raise InvalidTransitionError(
                f"Cannot move payment from {payment.status.value} to {target.value}",
                details={"payment_id": payment.id, "from": payment.status.value, "to": target.value},
            )
        payment.status = target
        if target == PaymentStatus.COMPLETED:
            payment.paid_at = utc_now()
        return payment

    def _void_payment(self, booking: Booking) -> None:
        payment = booking.payment
        if payment is None:
            return
        booking.payment = None
        self.db.delete(payment)
