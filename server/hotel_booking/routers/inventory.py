"""Inventory router for owner administration of room inventory."""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db
from ..core.dependencies import CurrentUser, get_hotel_manager, get_pricing_pipeline
from ..schemas.inventory import InventoryDay, InventoryRange, InventoryRangeRequest, UpdateInventoryRequest
from ..services.hotel_service import HotelService
from ..services.pricing import PricingPipeline

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/inventory", tags=["inventory"])

DB_DEPENDENCY = Depends(get_db)
MANAGER_DEPENDENCY = Depends(get_hotel_manager)
PRICING_DEPENDENCY = Depends(get_pricing_pipeline)


def _convert_range_to_schema(room, rows, pricing: PricingPipeline) -> InventoryRange:
    """Convert inventory rows to schema, pricing each day for one unit."""
    prices = pricing.nightly_prices(rows, room.base_price)
    return InventoryRange(
        room_id=str(room.id),
        days=[
            InventoryDay(
                room_id=str(row.room_id),
                date=row.date,
                total_count=row.total_count,
                reserved_count=row.reserved_count,
                booked_count=row.booked_count,
                surge_factor=row.surge_factor,
                closed=row.closed,
                price=price,
            )
            for row, price in zip(rows, prices)
        ],
    )


@router.post("/get", response_model=InventoryRange)
async def get_inventory(
    request: InventoryRangeRequest,
    user: CurrentUser = MANAGER_DEPENDENCY,
    db: AsyncSession = DB_DEPENDENCY,
    pricing: PricingPipeline = PRICING_DEPENDENCY,
) -> InventoryRange:
    """Inventory counters and prices of an owned room over a date range."""
    service = HotelService(db, pricing=pricing)
    room, rows = await service.get_room_inventory(user, request)
    return _convert_range_to_schema(room, rows, pricing)


@router.post("/update", response_model=InventoryRange)
async def update_inventory(
    request: UpdateInventoryRequest,
    user: CurrentUser = MANAGER_DEPENDENCY,
    db: AsyncSession = DB_DEPENDENCY,
    pricing: PricingPipeline = PRICING_DEPENDENCY,
) -> InventoryRange:
    """Set the surge factor or close/reopen days of an owned room."""
    service = HotelService(db, pricing=pricing)
    room, rows = await service.update_inventory(user, request)

    logger.info(
        "Inventory update requested",
        extra={"room_id": request.room_id, "user_id": user.id, "days": len(rows)}
    )
    return _convert_range_to_schema(room, rows, pricing)
