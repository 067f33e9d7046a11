"""Booking-related Pydantic schemas."""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator


class BookingStatus(str, Enum):
    """Booking status enumeration."""
    RESERVED = "RESERVED"
    GUESTS_ADDED = "GUESTS_ADDED"
    PAYMENTS_PENDING = "PAYMENTS_PENDING"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"


class InitBookingRequest(BaseModel):
    """Request schema for reserving a room over a date range."""

    hotel_id: str = Field(..., description="Hotel to book")
    room_id: str = Field(..., description="Room type to book")
    check_in_date: date = Field(..., description="First night (inclusive)")
    check_out_date: date = Field(..., description="Last night (inclusive)")
    rooms_count: int = Field(..., ge=1, le=50, description="Number of rooms")

    @model_validator(mode="after")
    def check_dates(self) -> "InitBookingRequest":
        if self.check_out_date < self.check_in_date:
            raise ValueError("check_out_date must not be before check_in_date")
        return self


class GuestInput(BaseModel):
    """Guest details supplied by the booker."""

    name: str = Field(..., min_length=1, max_length=200, description="Guest full name")
    age: Optional[int] = Field(None, ge=0, le=150, description="Guest age")
    gender: Optional[str] = Field(None, max_length=20, description="Guest gender")


class AddGuestsRequest(BaseModel):
    """Request schema for adding guests to a reserved booking."""

    booking_id: str = Field(..., description="Booking to add guests to")
    guests: List[GuestInput] = Field(..., min_length=1, max_length=50, description="Guests to add")


class BookingIdRequest(BaseModel):
    """Request schema for operations addressed by booking id."""

    booking_id: str = Field(..., description="Booking to act on")


class Guest(BaseModel):
    """Guest response schema."""

    id: str = Field(..., description="Unique guest ID")
    name: str = Field(..., description="Guest full name")
    age: Optional[int] = Field(None, description="Guest age")
    gender: Optional[str] = Field(None, description="Guest gender")


class Booking(BaseModel):
    """Booking response schema."""

    id: str = Field(..., description="Unique booking ID")
    hotel_id: str = Field(..., description="Booked hotel ID")
    room_id: str = Field(..., description="Booked room type ID")
    check_in_date: date = Field(..., description="First night (inclusive)")
    check_out_date: date = Field(..., description="Last night (inclusive)")
    rooms_count: int = Field(..., ge=1, description="Number of rooms")
    status: BookingStatus = Field(..., description="Booking status")
    amount: Decimal = Field(..., description="Total price of the stay")
    guests: List[Guest] = Field(default_factory=list, description="Guests on the booking")
    created_at: datetime = Field(..., description="Booking creation time (ISO 8601)")
    expires_at: Optional[datetime] = Field(None, description="End of the hold window while unpaid")


class PaymentSession(BaseModel):
    """Checkout session created for a booking."""

    booking_id: str = Field(..., description="Booking being paid")
    session_url: str = Field(..., description="Hosted payment page URL")


class BookingStatusResponse(BaseModel):
    """Booking status response schema."""

    booking_id: str = Field(..., description="Booking ID")
    status: BookingStatus = Field(..., description="Booking status")


class WebhookAck(BaseModel):
    """Acknowledgement of a payment webhook."""

    received: bool = Field(True, description="Webhook was accepted")
    booking_id: Optional[str] = Field(None, description="Booking confirmed by this event")
    status: Optional[BookingStatus] = Field(None, description="Booking status after the event")
