"""Hotel router for catalog administration and browsing."""

import logging

from fastapi import APIRouter, Depends, status
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db
from ..core.dependencies import CurrentUser, get_hotel_manager, get_pricing_pipeline
from ..schemas.hotel import (
    CreateHotelRequest,
    CreateRoomRequest,
    Hotel,
    HotelIdRequest,
    HotelInfo,
    HotelSearchRequest,
    HotelSearchResponse,
    HotelSearchResult,
    Room,
    RoomIdRequest,
    UpdateHotelRequest,
)
from ..schemas.common import problem_responses
from ..services.hotel_service import HotelService
from ..services.pricing import PricingPipeline

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/hotel", tags=["hotel"], responses=problem_responses(400, 404))

DB_DEPENDENCY = Depends(get_db)
MANAGER_DEPENDENCY = Depends(get_hotel_manager)
PRICING_DEPENDENCY = Depends(get_pricing_pipeline)


def _convert_hotel_to_schema(hotel_model) -> Hotel:
    """Convert hotel model to schema."""
    return Hotel(
        id=str(hotel_model.id),
        name=hotel_model.name,
        city=hotel_model.city,
        active=hotel_model.active,
    )


def _convert_room_to_schema(room_model) -> Room:
    """Convert room model to schema."""
    return Room(
        id=str(room_model.id),
        hotel_id=str(room_model.hotel_id),
        type=room_model.type,
        base_price=room_model.base_price,
        total_count=room_model.total_count,
        capacity=room_model.capacity,
    )


def _hotel_service(
    db: AsyncSession = DB_DEPENDENCY,
    pricing: PricingPipeline = PRICING_DEPENDENCY,
) -> HotelService:
    return HotelService(db, pricing=pricing)


SERVICE_DEPENDENCY = Depends(_hotel_service)


@router.post("/create", response_model=Hotel, status_code=status.HTTP_201_CREATED)
async def create_hotel(
    request: CreateHotelRequest,
    user: CurrentUser = MANAGER_DEPENDENCY,
    service: HotelService = SERVICE_DEPENDENCY,
) -> Hotel:
    """Create an inactive hotel owned by the caller."""
    hotel = await service.create_hotel(user, request)
    return _convert_hotel_to_schema(hotel)


@router.post("/update", response_model=Hotel)
async def update_hotel(
    request: UpdateHotelRequest,
    user: CurrentUser = MANAGER_DEPENDENCY,
    service: HotelService = SERVICE_DEPENDENCY,
) -> Hotel:
    """Rename or relocate an owned hotel."""
    hotel = await service.update_hotel(user, request)
    return _convert_hotel_to_schema(hotel)


@router.post("/activate", response_model=Hotel)
async def activate_hotel(
    request: HotelIdRequest,
    user: CurrentUser = MANAGER_DEPENDENCY,
    service: HotelService = SERVICE_DEPENDENCY,
) -> Hotel:
    """Open an owned hotel for booking and create its room inventory."""
    hotel = await service.activate_hotel(user, request.hotel_id)
    return _convert_hotel_to_schema(hotel)


@router.post("/delete", status_code=status.HTTP_204_NO_CONTENT, responses=problem_responses(409))
async def delete_hotel(
    request: HotelIdRequest,
    user: CurrentUser = MANAGER_DEPENDENCY,
    service: HotelService = SERVICE_DEPENDENCY,
) -> Response:
    """Delete an owned hotel without live bookings, with its rooms and inventory."""
    await service.delete_hotel(user, request.hotel_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/mine", response_model=list[Hotel])
async def list_my_hotels(
    user: CurrentUser = MANAGER_DEPENDENCY,
    service: HotelService = SERVICE_DEPENDENCY,
) -> list[Hotel]:
    """Hotels owned by the caller."""
    hotels = await service.list_owned_hotels(user)
    return [_convert_hotel_to_schema(hotel) for hotel in hotels]


@router.post("/room/create", response_model=Room, status_code=status.HTTP_201_CREATED)
async def create_room(
    request: CreateRoomRequest,
    user: CurrentUser = MANAGER_DEPENDENCY,
    service: HotelService = SERVICE_DEPENDENCY,
) -> Room:
    """Add a room type to an owned hotel."""
    room = await service.create_room(user, request)
    return _convert_room_to_schema(room)


@router.post("/room/delete", status_code=status.HTTP_204_NO_CONTENT, responses=problem_responses(409))
async def delete_room(
    request: RoomIdRequest,
    user: CurrentUser = MANAGER_DEPENDENCY,
    service: HotelService = SERVICE_DEPENDENCY,
) -> Response:
    """Delete a room type without live bookings, with its inventory."""
    await service.delete_room(user, request.room_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/info", response_model=HotelInfo)
async def get_hotel_info(
    request: HotelIdRequest,
    service: HotelService = SERVICE_DEPENDENCY,
) -> HotelInfo:
    """Public details of a hotel and its room types."""
    hotel = await service.get_hotel_info(request.hotel_id)
    return HotelInfo(
        hotel=_convert_hotel_to_schema(hotel),
        rooms=[_convert_room_to_schema(room) for room in hotel.rooms],
    )


@router.post("/search", response_model=HotelSearchResponse)
async def search_hotels(
    request: HotelSearchRequest,
    service: HotelService = SERVICE_DEPENDENCY,
) -> HotelSearchResponse:
    """Rooms bookable in a city for the whole date range, cheapest first."""
    matches, total = await service.search(request)
    return HotelSearchResponse(
        results=[
            HotelSearchResult(
                hotel=_convert_hotel_to_schema(hotel),
                room=_convert_room_to_schema(room),
                total_price=price,
            )
            for hotel, room, price in matches
        ],
        page=request.page,
        size=request.size,
        total=total,
    )
