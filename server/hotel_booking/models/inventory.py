"""Per-room, per-day inventory ledger rows."""

import datetime as dt
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import Boolean, CheckConstraint, Date, ForeignKey, Integer, Numeric, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from ..core.database import Base


class InventoryDay(Base):
    """Capacity counters of one room type on one calendar day."""

    __tablename__ = "inventory_days"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    room_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("rooms.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    # Denormalized for catalog search
    hotel_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("hotels.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    city: Mapped[str] = mapped_column(String(100), nullable=False, index=True)

    date: Mapped[dt.date] = mapped_column(Date, nullable=False, index=True)

    total_count: Mapped[int] = mapped_column(Integer, nullable=False)
    reserved_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    booked_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    surge_factor: Mapped[Decimal] = mapped_column(
        Numeric(5, 2),
        nullable=False,
        default=Decimal("1.00")
    )
    closed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (
        UniqueConstraint("room_id", "date", name="uq_inventory_room_date"),
        CheckConstraint("booked_count >= 0", name="ck_inventory_booked_non_negative"),
        CheckConstraint("booked_count <= reserved_count", name="ck_inventory_booked_lte_reserved"),
        CheckConstraint("reserved_count <= total_count", name="ck_inventory_reserved_lte_total"),
        CheckConstraint("surge_factor > 0", name="ck_inventory_surge_factor_positive"),
    )

    @property
    def available_count(self) -> int:
        return self.total_count - self.reserved_count

    def __repr__(self) -> str:
        return (
            f"<InventoryDay(room_id={self.room_id}, date={self.date}, "
            f"booked={self.booked_count}, reserved={self.reserved_count}/{self.total_count})>"
        )
