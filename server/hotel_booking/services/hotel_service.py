"""Hotel and room catalog: ownership, activation, inventory administration, search."""

import logging
from collections.abc import Callable
from datetime import date
from decimal import Decimal
from typing import Optional
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.clock import utctoday
from ..core.config import settings
from ..core.dependencies import CurrentUser
from ..core.exceptions import ConflictError, NotFoundError, OwnershipError, ValidationError
from ..models.booking import HOLDING_STATUSES, Booking, BookingStatus
from ..models.hotel import Hotel, Room
from ..models.inventory import InventoryDay
from ..schemas.hotel import CreateHotelRequest, CreateRoomRequest, HotelSearchRequest, UpdateHotelRequest
from ..schemas.inventory import InventoryRangeRequest, UpdateInventoryRequest
from .inventory_ledger import InventoryLedger, LockArena
from .pricing import PricingPipeline, validate_base_price
from .reservation_engine import ReservationEngine

logger = logging.getLogger(__name__)

# Bookings in these statuses still hold or own ledger units
LIVE_STATUSES = [status.value for status in HOLDING_STATUSES] + [BookingStatus.CONFIRMED.value]


class LiveBookingsError(ConflictError):
    """Exception when a hotel or room still has bookings holding its inventory."""

    def __init__(self, resource_type: str, resource_id: str, live_bookings: int, held_days: int = 0):
        super().__init__(
            detail=f"{resource_type.capitalize()} {resource_id} has live bookings holding its inventory "
                   f"and cannot be deleted",
            conflicting_resource={
                "resource_type": resource_type,
                "resource_id": resource_id,
                "live_bookings": live_bookings,
                "held_days": held_days,
            }
        )
        self.problem_details.update({
            "code": "LIVE_BOOKINGS",
            "retryable": False
        })


def parse_uuid(value, field: str) -> UUID:
    """Parse an id from a request, rejecting malformed values as a validation error."""
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        raise ValidationError(f"Invalid {field}", errors={field: str(value)})


class HotelService:
    """Service for hotel catalog operations."""

    def __init__(
        self,
        db: AsyncSession,
        pricing: Optional[PricingPipeline] = None,
        arena: Optional[LockArena] = None,
        today: Callable[[], date] = utctoday,
    ):
        self.db = db
        self.ledger = InventoryLedger(db, arena)
        self.engine = ReservationEngine(db, pricing, arena)
        self.today = today

    async def get_hotel_by_id(self, hotel_id) -> Optional[Hotel]:
        return await self.db.get(Hotel, parse_uuid(hotel_id, "hotel_id"))

    async def get_hotel_by_id_or_raise(self, hotel_id) -> Hotel:
        hotel = await self.get_hotel_by_id(hotel_id)
        if not hotel:
            raise NotFoundError("hotel", str(hotel_id))
        return hotel

    async def get_owned_hotel(self, user: CurrentUser, hotel_id) -> Hotel:
        """
        Raises:
            NotFoundError: If the hotel does not exist
            OwnershipError: If the caller does not own it
        """
        hotel = await self.get_hotel_by_id_or_raise(hotel_id)
        if hotel.owner_id != user.id:
            raise OwnershipError("hotel", str(hotel.id), user.id)
        return hotel

    async def get_owned_room(self, user: CurrentUser, room_id) -> tuple[Hotel, Room]:
        room = await self.db.get(Room, parse_uuid(room_id, "room_id"))
        if not room:
            raise NotFoundError("room", str(room_id))
        hotel = await self.get_owned_hotel(user, room.hotel_id)
        return hotel, room

    async def create_hotel(self, user: CurrentUser, request: CreateHotelRequest) -> Hotel:
        """Create an inactive hotel owned by the caller."""
        hotel = Hotel(name=request.name, city=request.city, owner_id=user.id, active=False, rooms=[])
        self.db.add(hotel)
        await self.db.commit()

        logger.info(
            "Hotel created",
            extra={"hotel_id": str(hotel.id), "owner_id": user.id, "city": hotel.city}
        )
        return hotel

    async def update_hotel(self, user: CurrentUser, request: UpdateHotelRequest) -> Hotel:
        """Rename or relocate a hotel; a new city is carried onto its inventory rows."""
        hotel = await self.get_owned_hotel(user, request.hotel_id)
        if request.name is not None:
            hotel.name = request.name
        if request.city is not None and request.city != hotel.city:
            hotel.city = request.city
            await self.db.execute(
                update(InventoryDay)
                .where(InventoryDay.hotel_id == hotel.id)
                .values(city=request.city)
            )
        await self.db.commit()

        logger.info("Hotel updated", extra={"hotel_id": str(hotel.id), "owner_id": user.id})
        return hotel

    async def activate_hotel(self, user: CurrentUser, hotel_id) -> Hotel:
        """
        Open the hotel for booking and create inventory for every room.

        Activating an active hotel only fills in missing inventory days.
        """
        hotel = await self.get_owned_hotel(user, hotel_id)
        hotel.active = True

        start = self.today()
        for room in hotel.rooms:
            await self.ledger.initialize_room(room, hotel, start, settings.inventory_horizon_days)
        await self.db.commit()

        logger.info(
            "Hotel activated",
            extra={"hotel_id": str(hotel.id), "rooms": len(hotel.rooms), "start": start.isoformat()}
        )
        return hotel

    async def delete_hotel(self, user: CurrentUser, hotel_id) -> None:
        """
        Delete the hotel with its rooms and inventory.

        The check and the delete run under the ledger locks of every room, so no
        reservation can land in between.

        Raises:
            LiveBookingsError: If any booking still holds or owns units of the hotel
        """
        hotel = await self.get_owned_hotel(user, hotel_id)
        room_ids = [room.id for room in hotel.rooms]

        async with self.ledger.guard_rooms(room_ids):
            rows = await self.ledger.lock_rooms(room_ids)
            await self._ensure_unused("hotel", hotel.id, Booking.hotel_id == hotel.id, rows)

            for room_id in room_ids:
                await self.ledger.delete_room_inventory(room_id)
            await self.db.delete(hotel)
            await self.db.commit()

        logger.info("Hotel deleted", extra={"hotel_id": str(hotel_id), "owner_id": user.id})

    async def get_hotel_info(self, hotel_id) -> Hotel:
        """Public view of a hotel and its rooms."""
        return await self.get_hotel_by_id_or_raise(hotel_id)

    async def list_owned_hotels(self, user: CurrentUser) -> list[Hotel]:
        result = await self.db.execute(
            select(Hotel).where(Hotel.owner_id == user.id).order_by(Hotel.created_at)
        )
        return list(result.scalars().all())

    async def create_room(self, user: CurrentUser, request: CreateRoomRequest) -> Room:
        """
        Add a room type to the hotel; inventory is created at once when the hotel is active.

        Raises:
            PricingConfigurationError: If the base price is missing or not positive
        """
        hotel = await self.get_owned_hotel(user, request.hotel_id)
        base_price = validate_base_price(request.base_price)

        room = Room(
            hotel_id=hotel.id,
            type=request.type,
            base_price=base_price,
            total_count=request.total_count,
            capacity=request.capacity,
        )
        hotel.rooms.append(room)
        await self.db.flush()

        if hotel.active:
            await self.ledger.initialize_room(room, hotel, self.today(), settings.inventory_horizon_days)
        await self.db.commit()

        logger.info(
            "Room created",
            extra={
                "room_id": str(room.id),
                "hotel_id": str(hotel.id),
                "type": room.type,
                "total_count": room.total_count,
                "inventory_initialized": hotel.active,
            }
        )
        return room

    async def delete_room(self, user: CurrentUser, room_id) -> None:
        """
        Raises:
            LiveBookingsError: If any booking still holds or owns units of the room
        """
        hotel, room = await self.get_owned_room(user, room_id)

        async with self.ledger.guard_rooms([room.id]):
            rows = await self.ledger.lock_rooms([room.id])
            await self._ensure_unused("room", room.id, Booking.room_id == room.id, rows)

            await self.ledger.delete_room_inventory(room.id)
            hotel.rooms.remove(room)
            await self.db.commit()

        logger.info("Room deleted", extra={"room_id": str(room_id), "hotel_id": str(hotel.id)})

    async def get_room_inventory(self, user: CurrentUser, request: InventoryRangeRequest) -> tuple[Room, list[InventoryDay]]:
        """Owner view of a room's inventory rows over a range."""
        _, room = await self.get_owned_room(user, request.room_id)
        rows = await self.ledger.get_range(room.id, request.date_from, request.date_to)
        return room, rows

    async def update_inventory(self, user: CurrentUser, request: UpdateInventoryRequest) -> tuple[Room, list[InventoryDay]]:
        """
        Set surge factor and/or closed flag over a range of the room's inventory.

        Raises:
            RangeUnavailableError: If some day of the range has no inventory
        """
        _, room = await self.get_owned_room(user, request.room_id)

        async with self.ledger.guard(room.id, request.date_from, request.date_to):
            try:
                rows = await self.ledger.update_range(
                    room.id,
                    request.date_from,
                    request.date_to,
                    surge_factor=request.surge_factor,
                    closed=request.closed,
                )
                await self.db.commit()
            except Exception:
                await self.db.rollback()
                raise

        logger.info(
            "Inventory updated",
            extra={
                "room_id": str(room.id),
                "date_from": request.date_from.isoformat(),
                "date_to": request.date_to.isoformat(),
                "surge_factor": str(request.surge_factor) if request.surge_factor is not None else None,
                "closed": request.closed,
            }
        )
        return room, rows

    async def search(self, request: HotelSearchRequest) -> tuple[list[tuple[Hotel, Room, Decimal]], int]:
        """
        Rooms of active hotels in the city bookable for the whole range, cheapest first.

        Returns:
            One page of (hotel, room, total price) and the number of matches overall
        """
        room_ids = await self.ledger.available_rooms(
            request.city, request.date_from, request.date_to, request.rooms_count
        )
        if not room_ids:
            return [], 0

        result = await self.db.execute(
            select(Room, Hotel)
            .join(Hotel, Room.hotel_id == Hotel.id)
            .where(Room.id.in_(room_ids), Hotel.active.is_(True))
        )

        matches = []
        for room, hotel in result.all():
            total = await self.engine.quote_range(room, request.date_from, request.date_to, request.rooms_count)
            if total is not None:
                matches.append((hotel, room, total))
        matches.sort(key=lambda match: (match[2], match[0].name, str(match[1].id)))

        start = request.page * request.size
        logger.debug(
            "Hotel search",
            extra={"city": request.city, "matches": len(matches), "page": request.page}
        )
        return matches[start:start + request.size], len(matches)

    async def _count_live_bookings(self, condition) -> int:
        result = await self.db.execute(
            select(func.count(Booking.id)).where(condition, Booking.status.in_(LIVE_STATUSES))
        )
        return result.scalar_one()

    async def _ensure_unused(self, resource_type: str, resource_id: UUID, condition, rows) -> None:
        """
        Refuse deletion while bookings, or units held by a booking still being saved, use the inventory.

        Raises:
            LiveBookingsError: If the inventory is in use; the row locks are released first
        """
        live = await self._count_live_bookings(condition)
        held_days = sum(1 for row in rows if row.reserved_count > 0)
        if live or held_days:
            await self.db.commit()
            logger.info(
                "Deletion refused, inventory in use",
                extra={
                    "resource_type": resource_type,
                    "resource_id": str(resource_id),
                    "live_bookings": live,
                    "held_days": held_days,
                }
            )
            raise LiveBookingsError(resource_type, str(resource_id), live, held_days)
