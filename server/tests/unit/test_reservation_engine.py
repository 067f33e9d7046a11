"""Unit tests for the reservation engine."""

from datetime import timedelta
from decimal import Decimal

import pytest
from conftest import START

from hotel_booking.core.exceptions import (
    IncompleteAvailabilityError,
    InsufficientCapacityError,
    RangeUnavailableError,
    ValidationError,
)
from hotel_booking.services.inventory_ledger import InventoryLedger
from hotel_booking.services.reservation_engine import ReservationEngine, validate_range


def test_validate_range_counts_inclusive_days():
    assert validate_range(START, START, 1) == 1
    assert validate_range(START, START + timedelta(days=2), 3) == 3


@pytest.mark.parametrize(
    "date_from, date_to, rooms_count",
    [
        (START + timedelta(days=1), START, 1),
        (START, START, 0),
        (None, START, 1),
    ],
)
def test_validate_range_rejects_bad_input(date_from, date_to, rooms_count):
    with pytest.raises(ValidationError):
        validate_range(date_from, date_to, rooms_count)


async def _counters(test_session, room_id, date_from, date_to):
    rows = await InventoryLedger(test_session).get_range(room_id, date_from, date_to)
    return [(row.reserved_count, row.booked_count) for row in rows]


@pytest.mark.asyncio
async def test_reserve_range_holds_units_and_prices_stay(test_session, active_room, pricing, ledger_locks):
    _, room = active_room
    room_id = room.id
    engine = ReservationEngine(test_session, pricing, ledger_locks)
    date_from = START + timedelta(days=10)
    date_to = START + timedelta(days=12)

    result = await engine.reserve_range(room, date_from, date_to, 2)

    assert result.nights == 3
    # 3 nights x 2 rooms x 1000, outside the urgency window
    assert result.total_amount == Decimal("6000.00")
    assert await _counters(test_session, room_id, date_from, date_to) == [(2, 0)] * 3
    assert await _counters(test_session, room_id, START, START + timedelta(days=9)) == [(0, 0)] * 10


@pytest.mark.asyncio
async def test_reserve_range_applies_urgency_near_today(test_session, active_room, pricing, ledger_locks):
    _, room = active_room
    engine = ReservationEngine(test_session, pricing, ledger_locks)

    result = await engine.reserve_range(room, START, START + timedelta(days=1), 1)

    assert result.total_amount == Decimal("2300.00")


@pytest.mark.asyncio
async def test_reserve_range_until_sold_out(test_session, active_room, pricing, ledger_locks):
    _, room = active_room
    room_id = room.id
    engine = ReservationEngine(test_session, pricing, ledger_locks)
    date_to = START + timedelta(days=1)

    await engine.reserve_range(room, START, date_to, 3)
    await engine.reserve_range(room, START, date_to, 2)

    with pytest.raises(InsufficientCapacityError):
        await engine.reserve_range(room, START, date_to, 1)

    assert await _counters(test_session, room_id, START, date_to) == [(5, 0), (5, 0)]


@pytest.mark.asyncio
async def test_failed_reservation_changes_nothing(test_session, active_room, pricing, ledger_locks):
    """A capacity failure on the last day leaves earlier days untouched."""
    _, room = active_room
    room_id = room.id
    engine = ReservationEngine(test_session, pricing, ledger_locks)
    last = START + timedelta(days=4)

    await engine.reserve_range(room, last, last, 4)
    with pytest.raises(InsufficientCapacityError):
        await engine.reserve_range(room, START, last, 2)

    assert await _counters(test_session, room_id, START, last) == [(0, 0)] * 4 + [(4, 0)]


@pytest.mark.asyncio
async def test_reserve_range_beyond_horizon(test_session, active_room, pricing, ledger_locks):
    _, room = active_room
    room_id = room.id
    engine = ReservationEngine(test_session, pricing, ledger_locks)

    with pytest.raises(RangeUnavailableError) as exc_info:
        await engine.reserve_range(room, START + timedelta(days=29), START + timedelta(days=30), 1)

    assert exc_info.value.code == "RANGE_UNAVAILABLE"
    assert await _counters(test_session, room_id, START + timedelta(days=29), START + timedelta(days=29)) == [(0, 0)]


@pytest.mark.asyncio
async def test_reserve_range_with_closed_day(test_session, active_room, pricing, ledger_locks):
    _, room = active_room
    room_id = room.id
    engine = ReservationEngine(test_session, pricing, ledger_locks)
    ledger = InventoryLedger(test_session, ledger_locks)
    closed_day = START + timedelta(days=3)
    await ledger.update_range(room_id, closed_day, closed_day, closed=True)
    await test_session.commit()

    with pytest.raises(IncompleteAvailabilityError) as exc_info:
        await engine.reserve_range(room, START + timedelta(days=2), START + timedelta(days=4), 1)

    problem = exc_info.value.problem_details
    assert problem["code"] == "INCOMPLETE_AVAILABILITY"
    assert problem["conflicting_resource"]["expected_days"] == 3
    assert problem["conflicting_resource"]["available_days"] == 2
    assert await _counters(test_session, room_id, START + timedelta(days=2), START + timedelta(days=4)) == [(0, 0)] * 3


@pytest.mark.asyncio
async def test_confirm_and_release_range(test_session, active_room, pricing, ledger_locks):
    _, room = active_room
    room_id = room.id
    engine = ReservationEngine(test_session, pricing, ledger_locks)
    date_to = START + timedelta(days=1)

    await engine.reserve_range(room, START, date_to, 2)
    await engine.confirm_range(room_id, START, date_to, 2)
    assert await _counters(test_session, room_id, START, date_to) == [(2, 2), (2, 2)]

    await engine.release_range(room_id, START, date_to, 2, confirmed=True)
    assert await _counters(test_session, room_id, START, date_to) == [(0, 0), (0, 0)]


@pytest.mark.asyncio
async def test_quote_range_holds_nothing(test_session, active_room, pricing, ledger_locks):
    _, room = active_room
    room_id = room.id
    engine = ReservationEngine(test_session, pricing, ledger_locks)
    date_from = START + timedelta(days=10)

    assert await engine.quote_range(room, date_from, date_from + timedelta(days=1), 1) == Decimal("2000.00")
    assert await engine.quote_range(room, START + timedelta(days=29), START + timedelta(days=30), 1) is None
    assert await _counters(test_session, room_id, date_from, date_from) == [(0, 0)]
