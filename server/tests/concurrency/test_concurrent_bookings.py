"""Concurrency tests for reservations, expiry and payment confirmation."""

import asyncio
from datetime import timedelta
from decimal import Decimal

import pytest
import pytest_asyncio
from conftest import START, T0, FakeCheckoutGateway, FrozenClock
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from hotel_booking.core.database import Base
from hotel_booking.core.exceptions import InsufficientCapacityError, NotFoundError, RangeUnavailableError
from hotel_booking.models.booking import Booking, BookingStatus
from hotel_booking.schemas.booking import InitBookingRequest
from hotel_booking.schemas.hotel import CreateHotelRequest, CreateRoomRequest
from hotel_booking.services.booking_service import BookingLifecycleManager
from hotel_booking.services.hotel_service import HotelService, LiveBookingsError
from hotel_booking.services.inventory_ledger import InventoryLedger, LockArena
from hotel_booking.services.pricing import PricingPipeline

CHECK_IN = START + timedelta(days=10)
CHECK_OUT = START + timedelta(days=12)


@pytest_asyncio.fixture
async def file_session_factory(tmp_path):
    """Sessions on separate connections to a file database, as concurrent requests would have."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'concurrency.db'}",
        poolclass=NullPool,
        connect_args={"timeout": 30},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)

    await engine.dispose()


@pytest.fixture
def shared():
    """Collaborators shared by every concurrent request, as in one server process."""
    return {
        "pricing": PricingPipeline(clock=lambda: START),
        "arena": LockArena(),
        "booking_locks": LockArena(),
        "gateway": FakeCheckoutGateway(),
    }


@pytest_asyncio.fixture
async def room(file_session_factory, shared, owner):
    async with file_session_factory() as db:
        service = HotelService(db, pricing=shared["pricing"], arena=shared["arena"], today=lambda: START)
        hotel = await service.create_hotel(owner, CreateHotelRequest(name="Sea View", city="Goa"))
        room = await service.create_room(
            owner,
            CreateRoomRequest(
                hotel_id=str(hotel.id),
                type="Deluxe",
                base_price=Decimal("1000.00"),
                total_count=5,
                capacity=2,
            ),
        )
        await service.activate_hotel(owner, hotel.id)
        return hotel.id, room.id


def manager_for(db, shared, clock) -> BookingLifecycleManager:
    return BookingLifecycleManager(
        db,
        gateway=shared["gateway"],
        pricing=shared["pricing"],
        arena=shared["arena"],
        booking_locks=shared["booking_locks"],
        clock=clock,
    )


def init_request(room, rooms_count) -> InitBookingRequest:
    hotel_id, room_id = room
    return InitBookingRequest(
        hotel_id=str(hotel_id),
        room_id=str(room_id),
        check_in_date=CHECK_IN,
        check_out_date=CHECK_OUT,
        rooms_count=rooms_count,
    )


async def counters(file_session_factory, room):
    async with file_session_factory() as db:
        rows = await InventoryLedger(db).get_range(room[1], CHECK_IN, CHECK_OUT)
        return [(row.reserved_count, row.booked_count) for row in rows]


@pytest.mark.asyncio
async def test_concurrent_reservations_never_overbook(file_session_factory, shared, room, guest_user):
    """Twelve single-room requests race for five units; exactly five win."""
    clock = FrozenClock(T0)

    async def reserve():
        async with file_session_factory() as db:
            try:
                return await manager_for(db, shared, clock).initiate(guest_user, init_request(room, 1))
            except InsufficientCapacityError:
                return None

    results = await asyncio.gather(*(reserve() for _ in range(12)))

    winners = [booking for booking in results if booking is not None]
    assert len(winners) == 5
    assert await counters(file_session_factory, room) == [(5, 0)] * 3


@pytest.mark.asyncio
async def test_concurrent_mixed_sizes_respect_capacity(file_session_factory, shared, room, guest_user):
    clock = FrozenClock(T0)

    async def reserve(rooms_count):
        async with file_session_factory() as db:
            try:
                booking = await manager_for(db, shared, clock).initiate(guest_user, init_request(room, rooms_count))
                return booking.rooms_count
            except InsufficientCapacityError:
                return 0

    held = await asyncio.gather(*(reserve(count) for count in [3, 2, 2, 1, 3, 1]))

    assert sum(held) <= 5
    assert await counters(file_session_factory, room) == [(sum(held), 0)] * 3


@pytest.mark.asyncio
async def test_concurrent_expiry_releases_once(file_session_factory, shared, room, guest_user):
    """A sweep and two lazy reads racing on one stale booking give its units back once."""
    clock = FrozenClock(T0)
    async with file_session_factory() as db:
        stale = await manager_for(db, shared, clock).initiate(guest_user, init_request(room, 2))
    clock.advance(minutes=5)
    async with file_session_factory() as db:
        await manager_for(db, shared, clock).initiate(guest_user, init_request(room, 1))

    # Only the first booking is past its hold window now
    clock.advance(minutes=6)

    async def sweep():
        async with file_session_factory() as db:
            return await manager_for(db, shared, clock).expire_stale_bookings()

    async def read_status():
        async with file_session_factory() as db:
            booking = await manager_for(db, shared, clock).get_status(guest_user, stale.id)
            return booking.status

    swept, first, second = await asyncio.gather(sweep(), read_status(), read_status())

    assert swept in (0, 1)
    assert first == second == BookingStatus.EXPIRED
    assert await counters(file_session_factory, room) == [(1, 0)] * 3


@pytest.mark.asyncio
async def test_duplicate_payment_signals_book_once(file_session_factory, shared, room, guest_user):
    clock = FrozenClock(T0)
    async with file_session_factory() as db:
        manager = manager_for(db, shared, clock)
        booking = await manager.initiate(guest_user, init_request(room, 2))
        await manager.initiate_payment(guest_user, booking.id)

    async def deliver():
        async with file_session_factory() as db:
            confirmed = await manager_for(db, shared, clock).confirm_payment("cs_test_1")
            return confirmed.status

    statuses = await asyncio.gather(*(deliver() for _ in range(4)))

    assert statuses == [BookingStatus.CONFIRMED] * 4
    assert await counters(file_session_factory, room) == [(2, 2)] * 3
    async with file_session_factory() as db:
        stored = await db.get(Booking, booking.id)
        assert stored.status == BookingStatus.CONFIRMED


@pytest.mark.asyncio
async def test_room_deletion_racing_reservations(file_session_factory, shared, room, owner, guest_user):
    """Either the room goes and nobody holds it, or it stays with every reservation intact."""
    clock = FrozenClock(T0)

    async def reserve():
        async with file_session_factory() as db:
            try:
                return await manager_for(db, shared, clock).initiate(guest_user, init_request(room, 1))
            except (NotFoundError, RangeUnavailableError):
                return None

    async def delete():
        async with file_session_factory() as db:
            service = HotelService(db, pricing=shared["pricing"], arena=shared["arena"], today=lambda: START)
            try:
                await service.delete_room(owner, room[1])
                return True
            except LiveBookingsError:
                return False

    first, second, deleted, third, fourth = await asyncio.gather(
        reserve(), reserve(), delete(), reserve(), reserve()
    )
    bookings = [booking for booking in (first, second, third, fourth) if booking is not None]

    if deleted:
        assert bookings == []
        assert await counters(file_session_factory, room) == []
    else:
        assert bookings
        assert await counters(file_session_factory, room) == [(len(bookings), 0)] * 3
