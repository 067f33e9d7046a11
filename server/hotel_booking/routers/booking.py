"""Booking router for the reservation lifecycle."""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db
from ..core.dependencies import CurrentUser, get_checkout_gateway, get_current_user, get_pricing_pipeline
from ..models.booking import HOLDING_STATUSES, BookingStatus
from ..schemas.booking import (
    AddGuestsRequest,
    Booking,
    BookingIdRequest,
    BookingStatusResponse,
    Guest,
    InitBookingRequest,
    PaymentSession,
)
from ..schemas.common import problem_responses
from ..services.booking_service import BookingLifecycleManager
from ..services.checkout import CheckoutGateway
from ..services.pricing import PricingPipeline

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/v1/booking",
    tags=["booking"],
    responses=problem_responses(400, 401, 403, 404),
)

# Define dependencies to avoid B008 linting errors
DB_DEPENDENCY = Depends(get_db)
USER_DEPENDENCY = Depends(get_current_user)
GATEWAY_DEPENDENCY = Depends(get_checkout_gateway)
PRICING_DEPENDENCY = Depends(get_pricing_pipeline)


def _convert_booking_to_schema(booking_model, manager: BookingLifecycleManager) -> Booking:
    """Convert booking model to schema."""
    return Booking(
        id=str(booking_model.id),
        hotel_id=str(booking_model.hotel_id),
        room_id=str(booking_model.room_id),
        check_in_date=booking_model.check_in_date,
        check_out_date=booking_model.check_out_date,
        rooms_count=booking_model.rooms_count,
        status=booking_model.status,
        amount=booking_model.amount,
        guests=[
            Guest(id=str(guest.id), name=guest.name, age=guest.age, gender=guest.gender)
            for guest in booking_model.guests
        ],
        created_at=booking_model.created_at,
        expires_at=(
            manager.expires_at(booking_model)
            if BookingStatus(booking_model.status) in HOLDING_STATUSES else None
        ),
    )


def _manager(
    db: AsyncSession = DB_DEPENDENCY,
    gateway: CheckoutGateway = GATEWAY_DEPENDENCY,
    pricing: PricingPipeline = PRICING_DEPENDENCY,
) -> BookingLifecycleManager:
    return BookingLifecycleManager(db, gateway=gateway, pricing=pricing)


MANAGER_DEPENDENCY = Depends(_manager)


@router.post("/init", response_model=Booking, responses=problem_responses(409))
async def init_booking(
    request: InitBookingRequest,
    user: CurrentUser = USER_DEPENDENCY,
    manager: BookingLifecycleManager = MANAGER_DEPENDENCY,
) -> Booking:
    """
    Reserve rooms for a date range.

    The booking is held for a limited window and expires unless paid in time.
    """
    booking = await manager.initiate(user, request)
    return _convert_booking_to_schema(booking, manager)


@router.post("/guests", response_model=Booking, responses=problem_responses(409, 410))
async def add_guests(
    request: AddGuestsRequest,
    user: CurrentUser = USER_DEPENDENCY,
    manager: BookingLifecycleManager = MANAGER_DEPENDENCY,
) -> Booking:
    """Attach guests to a reserved booking."""
    booking = await manager.add_guests(user, request.booking_id, request.guests)
    return _convert_booking_to_schema(booking, manager)


@router.post("/payment", response_model=PaymentSession, responses=problem_responses(409, 410, 502))
async def initiate_payment(
    request: BookingIdRequest,
    user: CurrentUser = USER_DEPENDENCY,
    manager: BookingLifecycleManager = MANAGER_DEPENDENCY,
) -> PaymentSession:
    """Open a checkout session and return the hosted payment page URL."""
    session_url = await manager.initiate_payment(user, request.booking_id)
    return PaymentSession(booking_id=request.booking_id, session_url=session_url)


@router.post("/cancel", response_model=Booking, responses=problem_responses(409, 502))
async def cancel_booking(
    request: BookingIdRequest,
    user: CurrentUser = USER_DEPENDENCY,
    manager: BookingLifecycleManager = MANAGER_DEPENDENCY,
) -> Booking:
    """
    Cancel a confirmed booking and refund its payment.

    A failed refund is reported as 502 after the cancellation has been recorded.
    """
    booking = await manager.cancel(user, request.booking_id)
    return _convert_booking_to_schema(booking, manager)


@router.post("/status", response_model=BookingStatusResponse)
async def get_booking_status(
    request: BookingIdRequest,
    user: CurrentUser = USER_DEPENDENCY,
    manager: BookingLifecycleManager = MANAGER_DEPENDENCY,
) -> BookingStatusResponse:
    """Current status of a booking; unpaid bookings past their hold window read as EXPIRED."""
    booking = await manager.get_status(user, request.booking_id)
    return BookingStatusResponse(booking_id=str(booking.id), status=booking.status)


@router.post("/get", response_model=Booking)
async def get_booking(
    request: BookingIdRequest,
    user: CurrentUser = USER_DEPENDENCY,
    manager: BookingLifecycleManager = MANAGER_DEPENDENCY,
) -> Booking:
    """Full booking details, with the same expiry handling as the status read."""
    booking = await manager.get_status(user, request.booking_id)
    return _convert_booking_to_schema(booking, manager)
