"""Atomic reservation of a contiguous date range against the inventory ledger."""

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from ..core.exceptions import (
    IncompleteAvailabilityError,
    InsufficientCapacityError,
    RangeUnavailableError,
    ValidationError,
)
from ..core.observability import metrics_collector
from ..models.hotel import Room
from ..models.inventory import InventoryDay
from .inventory_ledger import InventoryLedger, LockArena
from .pricing import PricingPipeline

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReservationResult:
    """Rows held by a successful reservation and the price of the stay."""

    rows: list[InventoryDay]
    total_amount: Decimal

    @property
    def nights(self) -> int:
        return len(self.rows)


def validate_range(date_from: date, date_to: date, rooms_count: int) -> int:
    """Return the number of days in the inclusive range, rejecting unusable input."""
    errors = {}
    if date_from is None or date_to is None:
        errors["dates"] = "check-in and check-out dates are required"
    elif date_to < date_from:
        errors["date_to"] = "must not be before date_from"
    if rooms_count is None or rooms_count < 1:
        errors["rooms_count"] = "must be at least 1"
    if errors:
        raise ValidationError("Invalid reservation request", errors=errors)
    return (date_to - date_from).days + 1


class ReservationEngine:
    """
    Reserves, confirms, and releases whole date ranges.

    Each call runs its lock, check, mutation, and commit as one critical
    section over the (room, day) keys of the range; the session is rolled
    back on any failure so nothing from a failed call stays held.
    """

    def __init__(
        self,
        db: AsyncSession,
        pricing: Optional[PricingPipeline] = None,
        arena: Optional[LockArena] = None,
    ):
        self.db = db
        self.pricing = pricing or PricingPipeline()
        self.ledger = InventoryLedger(db, arena)

    async def reserve_range(
        self,
        room: Room,
        date_from: date,
        date_to: date,
        rooms_count: int,
    ) -> ReservationResult:
        """
        Soft-hold rooms_count units of the room on every day of the range and price the stay.

        Raises:
            ValidationError: If the range is inverted or rooms_count < 1
            RangeUnavailableError: If the room has no inventory for some day
            IncompleteAvailabilityError: If some day of the range is closed
            InsufficientCapacityError: If some day cannot take rooms_count more units
        """
        expected_days = validate_range(date_from, date_to, rooms_count)
        room_id = room.id
        base_price = room.base_price
        log_context = {
            "room_id": str(room_id),
            "date_from": date_from.isoformat(),
            "date_to": date_to.isoformat(),
            "rooms_count": rooms_count,
        }

        async with self.ledger.guard(room_id, date_from, date_to):
            try:
                rows = await self.ledger.lock_range(room_id, date_from, date_to)
                open_rows = [row for row in rows if not row.closed]
                if len(open_rows) != expected_days:
                    raise IncompleteAvailabilityError(str(room_id), expected_days, len(open_rows))
                self.ledger.reserve(open_rows, rooms_count)
                await self.db.commit()
            except (RangeUnavailableError, IncompleteAvailabilityError, InsufficientCapacityError) as e:
                await self.db.rollback()
                metrics_collector.record_reservation_conflict(e.code)
                logger.info(
                    "Reservation rejected",
                    extra={**log_context, "reason": e.code}
                )
                raise
            except Exception:
                await self.db.rollback()
                logger.exception("Reservation failed", extra=log_context)
                raise

        total_amount = self.pricing.calculate_total(open_rows, base_price, rooms_count)
        metrics_collector.record_reservation(rooms_count * expected_days)

        logger.info(
            "Reserved date range",
            extra={**log_context, "nights": expected_days, "total_amount": str(total_amount)}
        )
        return ReservationResult(rows=open_rows, total_amount=total_amount)

    async def release_range(
        self,
        room_id: UUID,
        date_from: date,
        date_to: date,
        rooms_count: int,
        *,
        confirmed: bool = False,
    ) -> list[InventoryDay]:
        """
        Give back units held (and booked, when confirmed) over the range and commit.

        Pending changes already staged on the session, such as a booking status
        change, are committed together with the ledger rows.
        """
        async with self.ledger.guard(room_id, date_from, date_to):
            try:
                rows = await self.ledger.release(room_id, date_from, date_to, rooms_count, confirmed=confirmed)
                await self.db.commit()
            except Exception:
                await self.db.rollback()
                logger.exception(
                    "Release failed",
                    extra={"room_id": str(room_id), "date_from": date_from.isoformat(), "date_to": date_to.isoformat()}
                )
                raise

        logger.info(
            "Released date range",
            extra={
                "room_id": str(room_id),
                "date_from": date_from.isoformat(),
                "date_to": date_to.isoformat(),
                "rooms_count": rooms_count,
                "confirmed": confirmed,
                "days": len(rows),
            }
        )
        return rows

    async def confirm_range(
        self,
        room_id: UUID,
        date_from: date,
        date_to: date,
        rooms_count: int,
    ) -> list[InventoryDay]:
        """
        Move held units into the booked state over the range and commit.

        Raises:
            RangeUnavailableError: If a day of the range has lost its row
            InventoryConsistencyError: If a row does not hold the units being confirmed
        """
        async with self.ledger.guard(room_id, date_from, date_to):
            try:
                rows = await self.ledger.lock_range(room_id, date_from, date_to)
                self.ledger.confirm(rows, rooms_count)
                await self.db.commit()
            except Exception:
                await self.db.rollback()
                logger.exception(
                    "Confirm failed",
                    extra={"room_id": str(room_id), "date_from": date_from.isoformat(), "date_to": date_to.isoformat()}
                )
                raise

        logger.info(
            "Confirmed date range",
            extra={
                "room_id": str(room_id),
                "date_from": date_from.isoformat(),
                "date_to": date_to.isoformat(),
                "rooms_count": rooms_count,
            }
        )
        return rows

    async def quote_range(self, room: Room, date_from: date, date_to: date, rooms_count: int) -> Optional[Decimal]:
        """
        Price a stay without holding anything.

        Returns None when the room has no inventory for some day of the range.
        """
        expected_days = validate_range(date_from, date_to, rooms_count)
        rows = await self.ledger.get_range(room.id, date_from, date_to)
        if len(rows) != expected_days:
            return None
        return self.pricing.calculate_total(rows, room.base_price, rooms_count)
