"""Hotel and Room catalog model definitions."""

from datetime import datetime
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import Boolean, CheckConstraint, DateTime, ForeignKey, Integer, Numeric, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.clock import utcnow
from ..core.database import Base


class Hotel(Base):
    """Hotel entity owned by a single manager."""

    __tablename__ = "hotels"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    city: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    owner_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)

    # Inactive hotels have no inventory and cannot be searched or booked
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        CheckConstraint("length(name) > 0", name="ck_hotel_name_not_empty"),
        CheckConstraint("length(city) > 0", name="ck_hotel_city_not_empty"),
    )

    rooms: Mapped[list["Room"]] = relationship(
        "Room",
        back_populates="hotel",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Hotel(id={self.id}, name='{self.name}', city='{self.city}', active={self.active})>"


class Room(Base):
    """Room type of a hotel with a fixed number of identical units."""

    __tablename__ = "rooms"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    hotel_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("hotels.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    type: Mapped[str] = mapped_column(String(50), nullable=False)
    base_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    total_count: Mapped[int] = mapped_column(Integer, nullable=False)
    capacity: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        CheckConstraint("base_price > 0", name="ck_room_base_price_positive"),
        CheckConstraint("total_count >= 0", name="ck_room_total_count_non_negative"),
        CheckConstraint("capacity > 0", name="ck_room_capacity_positive"),
    )

    hotel: Mapped["Hotel"] = relationship("Hotel", back_populates="rooms")

    def __repr__(self) -> str:
        return (
            f"<Room(id={self.id}, hotel_id={self.hotel_id}, type='{self.type}', "
            f"base_price={self.base_price}, total_count={self.total_count})>"
        )
