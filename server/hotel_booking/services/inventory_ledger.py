"""Per-room, per-day inventory counters and their locking discipline."""

import asyncio
import logging
import weakref
from collections.abc import Hashable, Iterable, Sequence
from contextlib import asynccontextmanager
from datetime import date, timedelta
from decimal import Decimal
from typing import AsyncIterator, Optional
from uuid import UUID

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.exceptions import (
    InsufficientCapacityError,
    InventoryConsistencyError,
    RangeUnavailableError,
    ValidationError,
)
from ..models.hotel import Hotel, Room
from ..models.inventory import InventoryDay

logger = logging.getLogger(__name__)


def date_range(date_from: date, date_to: date) -> list[date]:
    """Every day from date_from to date_to, both inclusive."""
    return [date_from + timedelta(days=i) for i in range((date_to - date_from).days + 1)]


class LockArena:
    """
    In-process exclusive locks keyed by hashable keys.

    Keys are always acquired in sorted order, so two holders whose key sets
    overlap cannot wait on each other in a cycle. Idle locks are dropped as
    soon as nobody references them.
    """

    def __init__(self):
        self._locks: "weakref.WeakValueDictionary[Hashable, asyncio.Lock]" = weakref.WeakValueDictionary()

    def _lock_for(self, key: Hashable) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    def locked(self, key: Hashable) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def hold(self, keys: Iterable[Hashable]) -> AsyncIterator[None]:
        """Hold every lock in keys for the duration of the block."""
        locks = [self._lock_for(key) for key in sorted(set(keys))]
        acquired: list[asyncio.Lock] = []
        try:
            for lock in locks:
                await lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()


# Process-wide arenas; ledger rows and bookings use separate key spaces
ledger_arena = LockArena()
booking_arena = LockArena()


class InventoryLedger:
    """
    Reads and mutates InventoryDay rows.

    Mutating methods never commit; callers own the unit of work and run
    lock_range, the mutation, and the commit inside one guard() block.
    """

    def __init__(self, db: AsyncSession, arena: Optional[LockArena] = None):
        self.db = db
        self.arena = arena or ledger_arena

    def guard(self, room_id: UUID, date_from: date, date_to: date):
        """Critical section over the (room, day) keys of an inclusive range."""
        return self.arena.hold((str(room_id), day) for day in date_range(date_from, date_to))

    @asynccontextmanager
    async def guard_rooms(self, room_ids: Sequence[UUID]) -> AsyncIterator[None]:
        """Critical section over every (room, day) key the rooms have rows for."""
        result = await self.db.execute(
            select(InventoryDay.room_id, InventoryDay.date).where(InventoryDay.room_id.in_(room_ids))
        )
        async with self.arena.hold((str(room_id), day) for room_id, day in result.all()):
            yield

    async def lock_rooms(self, room_ids: Sequence[UUID]) -> list[InventoryDay]:
        """Every row of the rooms, locked for update."""
        result = await self.db.execute(
            select(InventoryDay)
            .where(InventoryDay.room_id.in_(room_ids))
            .order_by(InventoryDay.room_id, InventoryDay.date)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def lock_range(self, room_id: UUID, date_from: date, date_to: date) -> list[InventoryDay]:
        """
        Load every row of the inclusive range, locked for update and ordered by date.

        Raises:
            RangeUnavailableError: If any day of the range has no row
        """
        expected_days = (date_to - date_from).days + 1
        result = await self.db.execute(
            select(InventoryDay)
            .where(
                InventoryDay.room_id == room_id,
                InventoryDay.date >= date_from,
                InventoryDay.date <= date_to,
            )
            .order_by(InventoryDay.date)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        rows = list(result.scalars().all())

        if len(rows) != expected_days:
            logger.warning(
                "Inventory range has missing days",
                extra={
                    "room_id": str(room_id),
                    "date_from": date_from.isoformat(),
                    "date_to": date_to.isoformat(),
                    "expected_days": expected_days,
                    "found_days": len(rows),
                }
            )
            raise RangeUnavailableError(str(room_id), date_from, date_to, expected_days - len(rows))

        return rows

    def reserve(self, rows: Sequence[InventoryDay], rooms_count: int) -> list[InventoryDay]:
        """
        Soft-hold rooms_count units on every row.

        All rows are checked before any is changed, so a failure leaves them untouched.

        Raises:
            InsufficientCapacityError: If any row cannot take rooms_count more units
        """
        for row in rows:
            if row.reserved_count + rooms_count > row.total_count:
                raise InsufficientCapacityError(
                    room_id=str(row.room_id),
                    day=row.date,
                    requested=rooms_count,
                    available=row.total_count - row.reserved_count,
                )

        for row in rows:
            row.reserved_count += rooms_count
        return list(rows)

    def confirm(self, rows: Sequence[InventoryDay], rooms_count: int) -> list[InventoryDay]:
        """
        Move rooms_count held units of every row into the booked state.

        Raises:
            InventoryConsistencyError: If a row does not hold enough unbooked units
        """
        for row in rows:
            if row.booked_count + rooms_count > row.reserved_count:
                raise InventoryConsistencyError(
                    str(row.room_id),
                    row.date,
                    f"cannot book {rooms_count} more unit(s) with booked={row.booked_count}, "
                    f"reserved={row.reserved_count}",
                )

        for row in rows:
            row.booked_count += rooms_count
        return list(rows)

    async def release(
        self,
        room_id: UUID,
        date_from: date,
        date_to: date,
        rooms_count: int,
        *,
        confirmed: bool = False,
    ) -> list[InventoryDay]:
        """
        Give back rooms_count units on every existing row of the range.

        Counters are clamped at zero and booked never exceeds reserved, so
        releasing an already released range changes nothing further. Days
        without a row are skipped.
        """
        result = await self.db.execute(
            select(InventoryDay)
            .where(
                InventoryDay.room_id == room_id,
                InventoryDay.date >= date_from,
                InventoryDay.date <= date_to,
            )
            .order_by(InventoryDay.date)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        rows = list(result.scalars().all())

        for row in rows:
            if confirmed:
                row.booked_count = max(0, row.booked_count - rooms_count)
            row.reserved_count = max(row.booked_count, row.reserved_count - rooms_count)

        return rows

    async def initialize_room(self, room: Room, hotel: Hotel, start: date, horizon_days: int) -> int:
        """
        Create one row per day from start for horizon_days days.

        Days that already have a row are left alone. Returns the number of rows created.
        """
        end = start + timedelta(days=horizon_days - 1)
        existing = set(
            (await self.db.execute(
                select(InventoryDay.date).where(
                    InventoryDay.room_id == room.id,
                    InventoryDay.date >= start,
                    InventoryDay.date <= end,
                )
            )).scalars().all()
        )

        created = 0
        for day in date_range(start, end):
            if day in existing:
                continue
            self.db.add(InventoryDay(
                room_id=room.id,
                hotel_id=hotel.id,
                city=hotel.city,
                date=day,
                total_count=room.total_count,
                reserved_count=0,
                booked_count=0,
                surge_factor=Decimal("1.00"),
                closed=False,
            ))
            created += 1

        logger.info(
            "Initialized room inventory",
            extra={
                "room_id": str(room.id),
                "hotel_id": str(hotel.id),
                "start": start.isoformat(),
                "horizon_days": horizon_days,
                "created_days": created,
            }
        )
        return created

    async def delete_room_inventory(self, room_id: UUID) -> int:
        """Remove every row of the room. Returns the number of rows deleted."""
        result = await self.db.execute(delete(InventoryDay).where(InventoryDay.room_id == room_id))
        logger.info(
            "Deleted room inventory",
            extra={"room_id": str(room_id), "deleted_days": result.rowcount}
        )
        return result.rowcount

    async def update_range(
        self,
        room_id: UUID,
        date_from: date,
        date_to: date,
        surge_factor: Optional[Decimal] = None,
        closed: Optional[bool] = None,
    ) -> list[InventoryDay]:
        """
        Set the surge factor and/or closed flag on every day of the range.

        Raises:
            ValidationError: If the surge factor is not positive
            RangeUnavailableError: If any day of the range has no row
        """
        if surge_factor is not None and surge_factor <= 0:
            raise ValidationError(
                "Surge factor must be positive",
                errors={"surge_factor": str(surge_factor)},
            )

        rows = await self.lock_range(room_id, date_from, date_to)
        for row in rows:
            if surge_factor is not None:
                row.surge_factor = surge_factor
            if closed is not None:
                row.closed = closed
        return rows

    async def available_rooms(self, city: str, date_from: date, date_to: date, rooms_count: int) -> list[UUID]:
        """
        Ids of rooms in the city that can take rooms_count more units on every day of the range.
        """
        expected_days = (date_to - date_from).days + 1
        result = await self.db.execute(
            select(InventoryDay.room_id)
            .where(
                InventoryDay.city == city,
                InventoryDay.date >= date_from,
                InventoryDay.date <= date_to,
                InventoryDay.closed.is_(False),
                InventoryDay.total_count - InventoryDay.reserved_count >= rooms_count,
            )
            .group_by(InventoryDay.room_id)
            .having(func.count(InventoryDay.date) == expected_days)
        )
        return list(result.scalars().all())

    async def get_range(self, room_id: UUID, date_from: date, date_to: date) -> list[InventoryDay]:
        """Rows of the range without locking, ordered by date."""
        result = await self.db.execute(
            select(InventoryDay)
            .where(
                InventoryDay.room_id == room_id,
                InventoryDay.date >= date_from,
                InventoryDay.date <= date_to,
            )
            .order_by(InventoryDay.date)
        )
        return list(result.scalars().all())
