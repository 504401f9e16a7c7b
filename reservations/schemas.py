"""Pydantic schemas for the rooms and bookings services."""
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field, model_validator

from .models import BookerVariant, BookingStatus, PaymentMethod, PaymentStatus, RoomStatusEnum

TIME_PATTERN = r"^\d{2}:\d{2}$"


class RoomBase(BaseModel):
    name: str = Field(..., max_length=100)
    description: Optional[str] = None
    capacity: int = Field(..., gt=0)
    hourly_rate: Decimal = Field(..., gt=0, decimal_places=2)
    location: Optional[str] = Field(None, max_length=255)
    amenities: List[str] = Field(default_factory=list)
    operating_start: Optional[str] = Field(None, pattern=TIME_PATTERN)
    operating_end: Optional[str] = Field(None, pattern=TIME_PATTERN)
    is_active: bool = True
    status: RoomStatusEnum = RoomStatusEnum.AVAILABLE


class RoomCreate(RoomBase):
    pass


class RoomUpdate(BaseModel):
    name: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = None
    capacity: Optional[int] = Field(None, gt=0)
    hourly_rate: Optional[Decimal] = Field(None, gt=0, decimal_places=2)
    location: Optional[str] = Field(None, max_length=255)
    amenities: Optional[List[str]] = None
    operating_start: Optional[str] = Field(None, pattern=TIME_PATTERN)
    operating_end: Optional[str] = Field(None, pattern=TIME_PATTERN)
    is_active: Optional[bool] = None
    status: Optional[RoomStatusEnum] = None


class RoomRead(RoomBase):
    id: int
    operating_start: str
    operating_end: str
    created_at: datetime

    model_config = {"from_attributes": True}


class SlotRead(BaseModel):
    time: str
    available: bool

    model_config = {"from_attributes": True}


class BusyIntervalRead(BaseModel):
    start_time: str
    end_time: str

    model_config = {"from_attributes": True}


class AvailabilityRead(BaseModel):
    room_id: int
    booking_date: date
    operating_start: str
    operating_end: str
    slots: List[SlotRead]
    busy: List[BusyIntervalRead]

    model_config = {"from_attributes": True}


class ContactInfo(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    email: Optional[EmailStr] = None
    mobile: Optional[str] = Field(None, max_length=50)
    company: Optional[str] = Field(None, max_length=255)
    designation: Optional[str] = Field(None, max_length=100)


class PaymentIntentIn(BaseModel):
    method: PaymentMethod = PaymentMethod.CASH
    amount: Optional[Decimal] = Field(None, ge=0, decimal_places=2)


class BookingCreate(BaseModel):
    booking_date: date
    start_time: str
    end_time: str
    duration: Optional[float] = Field(None, gt=0)
    number_of_attendees: int = Field(1, ge=1)
    purpose: Optional[str] = Field(None, max_length=1000)
    notes: Optional[str] = Field(None, max_length=2000)
    contact: ContactInfo
    payment: PaymentIntentIn = Field(default_factory=PaymentIntentIn)
    # Only honoured for admin-initiated bookings.
    booker_variant: Optional[BookerVariant] = None
    member_id: Optional[int] = None
    guest_id: Optional[int] = None


class BookingReschedule(BaseModel):
    booking_date: date
    start_time: str
    end_time: str
    total_amount: Optional[Decimal] = Field(None, ge=0, decimal_places=2)


class BookingCancel(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)


class BookingStatusUpdate(BaseModel):
    status: BookingStatus

    @model_validator(mode="after")
    def _not_initial(self) -> "BookingStatusUpdate":
        if self.status == BookingStatus.PENDING:
            raise ValueError("PENDING is only assigned when a booking is created")
        return self


class PaymentStatusUpdate(BaseModel):
    status: PaymentStatus


class PaymentRead(BaseModel):
    id: int
    amount: Decimal
    payment_method: PaymentMethod
    status: PaymentStatus
    payment_reference: str
    paid_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class BookingRead(BaseModel):
    id: int
    room_id: int
    booker_variant: BookerVariant
    member_id: Optional[int] = None
    guest_id: Optional[int] = None
    booking_date: date
    start_time: str
    end_time: str
    duration: float
    number_of_attendees: int
    purpose: Optional[str] = None
    contact_name: str
    contact_email: Optional[str] = None
    contact_mobile: Optional[str] = None
    company: Optional[str] = None
    designation: Optional[str] = None
    notes: Optional[str] = None
    status: BookingStatus
    total_amount: Decimal
    payment_id: Optional[int] = None
    payment: Optional[PaymentRead] = None
    created_by_admin: bool
    created_at: datetime
    cancelled_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class RoomStatusRead(BaseModel):
    room_id: int
    status: str
    checked_at: datetime
