"""SQLAlchemy models shared by the rooms and bookings services."""
from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Enum as SqlEnum,
    Float,
    ForeignKey,
    Index,
    Integer,
    JSON,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .database import Base


class RoomStatusEnum(str, Enum):
    AVAILABLE = "AVAILABLE"
    MAINTENANCE = "MAINTENANCE"
    UNAVAILABLE = "UNAVAILABLE"


class BookerVariant(str, Enum):
    MEMBER = "MEMBER"
    GUEST = "GUEST"


class BookingStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"
    NO_SHOW = "NO_SHOW"


# Statuses that hold their slot and take part in conflict detection.
ACTIVE_STATUSES = frozenset({BookingStatus.PENDING, BookingStatus.CONFIRMED, BookingStatus.COMPLETED})


def utc_now() -> datetime:
    """Naive UTC timestamp, matching the timezone-less DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class PaymentMethod(str, Enum):
    GCASH = "GCASH"
    BANK_TRANSFER = "BANK_TRANSFER"
    CASH = "CASH"
    CREDIT_CARD = "CREDIT_CARD"


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


class Room(Base):
    __tablename__ = "rooms"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(100), unique=True)
    description: Mapped[Optional[str]] = mapped_column(Text, default=None)
    capacity: Mapped[int] = mapped_column(Integer, index=True)
    hourly_rate: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    location: Mapped[Optional[str]] = mapped_column(String(255), default=None)
    amenities: Mapped[list[str]] = mapped_column(JSON, default=list)
    operating_start: Mapped[str] = mapped_column(String(5), default="09:00")
    operating_end: Mapped[str] = mapped_column(String(5), default="18:00")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    status: Mapped[RoomStatusEnum] = mapped_column(SqlEnum(RoomStatusEnum), default=RoomStatusEnum.AVAILABLE)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)

    bookings: Mapped[List["Booking"]] = relationship(back_populates="room", cascade="all, delete-orphan")


class Guest(Base):
    """A walk-in customer; created on the fly from the contact details of a booking."""

    __tablename__ = "guests"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(100))
    email: Mapped[Optional[str]] = mapped_column(String(255), unique=True, default=None)
    contact_number: Mapped[Optional[str]] = mapped_column(String(50), default=None)
    company: Mapped[Optional[str]] = mapped_column(String(255), default=None)
    notes: Mapped[Optional[str]] = mapped_column(Text, default=None)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)

    bookings: Mapped[List["Booking"]] = relationship(back_populates="guest")


class Payment(Base):
    __tablename__ = "payments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    payment_method: Mapped[PaymentMethod] = mapped_column(SqlEnum(PaymentMethod), default=PaymentMethod.CASH)
    status: Mapped[PaymentStatus] = mapped_column(SqlEnum(PaymentStatus), default=PaymentStatus.PENDING)
    payment_reference: Mapped[str] = mapped_column(String(50), unique=True, index=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, default=None)
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime, default=None)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)

    booking: Mapped[Optional["Booking"]] = relationship(back_populates="payment")


class Booking(Base):
    __tablename__ = "bookings"
    __table_args__ = (Index("ix_bookings_room_date", "room_id", "booking_date"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    room_id: Mapped[int] = mapped_column(ForeignKey("rooms.id", ondelete="CASCADE"), index=True)
    booker_variant: Mapped[BookerVariant] = mapped_column(SqlEnum(BookerVariant))
    member_id: Mapped[Optional[int]] = mapped_column(Integer, index=True, default=None)
    guest_id: Mapped[Optional[int]] = mapped_column(ForeignKey("guests.id", ondelete="SET NULL"), index=True, default=None)

    booking_date: Mapped[date] = mapped_column(Date, nullable=False)
    start_time: Mapped[str] = mapped_column(String(5), nullable=False)
    end_time: Mapped[str] = mapped_column(String(5), nullable=False)
    duration: Mapped[float] = mapped_column(Float, nullable=False)

    contact_name: Mapped[str] = mapped_column(String(100))
    contact_email: Mapped[Optional[str]] = mapped_column(String(255), default=None)
    contact_mobile: Mapped[Optional[str]] = mapped_column(String(50), default=None)
    company: Mapped[Optional[str]] = mapped_column(String(255), default=None)
    designation: Mapped[Optional[str]] = mapped_column(String(100), default=None)
    number_of_attendees: Mapped[int] = mapped_column(Integer, default=1)
    purpose: Mapped[Optional[str]] = mapped_column(Text, default=None)
    notes: Mapped[Optional[str]] = mapped_column(Text, default=None)

    status: Mapped[BookingStatus] = mapped_column(SqlEnum(BookingStatus), default=BookingStatus.PENDING, index=True)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    payment_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("payments.id", ondelete="SET NULL"), unique=True, default=None
    )
    created_by_admin: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, default=None, onupdate=utc_now)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime, default=None)

    room: Mapped[Room] = relationship(back_populates="bookings")
    guest: Mapped[Optional[Guest]] = relationship(back_populates="bookings")
    payment: Mapped[Optional[Payment]] = relationship(back_populates="booking")

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    @property
    def payment_reference(self) -> Optional[str]:
        return self.payment.payment_reference if self.payment else None
