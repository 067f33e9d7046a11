"""Booking and Guest model definitions."""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, Date, DateTime, ForeignKey, Integer, Numeric, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.clock import utcnow
from ..core.database import Base


class BookingStatus(str, Enum):
    """Booking status enumeration."""
    RESERVED = "RESERVED"
    GUESTS_ADDED = "GUESTS_ADDED"
    PAYMENTS_PENDING = "PAYMENTS_PENDING"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"


# Statuses whose ledger units are only soft-held and lapse after the hold window
HOLDING_STATUSES = frozenset({
    BookingStatus.RESERVED,
    BookingStatus.GUESTS_ADDED,
    BookingStatus.PAYMENTS_PENDING,
})


class Booking(Base):
    """Booking of one room type over an inclusive date range."""

    __tablename__ = "bookings"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    # Catalog references are kept without foreign keys; bookings outlive deleted hotels
    hotel_id: Mapped[UUID] = mapped_column(Uuid, nullable=False, index=True)
    room_id: Mapped[UUID] = mapped_column(Uuid, nullable=False, index=True)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)

    check_in_date: Mapped[date] = mapped_column(Date, nullable=False)
    check_out_date: Mapped[date] = mapped_column(Date, nullable=False)
    rooms_count: Mapped[int] = mapped_column(Integer, nullable=False)

    status: Mapped[BookingStatus] = mapped_column(
        String(20),
        nullable=False,
        default=BookingStatus.RESERVED,
        index=True
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    payment_session_id: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        unique=True,
        index=True
    )

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        CheckConstraint("rooms_count > 0", name="ck_booking_rooms_count_positive"),
        CheckConstraint("check_out_date >= check_in_date", name="ck_booking_date_range"),
        CheckConstraint("amount >= 0", name="ck_booking_amount_non_negative"),
    )

    guests: Mapped[list["Guest"]] = relationship(
        "Guest",
        back_populates="booking",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="Guest.name",
    )

    @property
    def nights(self) -> int:
        return (self.check_out_date - self.check_in_date).days + 1

    def __repr__(self) -> str:
        return (
            f"<Booking(id={self.id}, room_id={self.room_id}, "
            f"{self.check_in_date}..{self.check_out_date}, rooms={self.rooms_count}, status={self.status})>"
        )


class Guest(Base):
    """Guest staying under a booking."""

    __tablename__ = "guests"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    booking_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("bookings.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    age: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    gender: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    __table_args__ = (
        CheckConstraint("length(name) > 0", name="ck_guest_name_not_empty"),
        CheckConstraint("age IS NULL OR age >= 0", name="ck_guest_age_non_negative"),
    )

    booking: Mapped["Booking"] = relationship("Booking", back_populates="guests")

    def __repr__(self) -> str:
        return f"<Guest(id={self.id}, booking_id={self.booking_id}, name='{self.name}')>"
