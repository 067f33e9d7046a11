#!/usr/bin/env python3
"""Setup script for the hotel booking API: creates the schema and a sample hotel."""

import asyncio
import logging
import os
from decimal import Decimal

from hotel_booking.core.database import async_session_factory, close_db, init_db
from hotel_booking.core.dependencies import HOTEL_MANAGER_ROLE, CurrentUser
from hotel_booking.schemas.hotel import CreateHotelRequest, CreateRoomRequest
from hotel_booking.services.hotel_service import HotelService

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

SAMPLE_OWNER = CurrentUser(
    id=os.getenv("SAMPLE_OWNER_ID", "sample-manager"),
    name="Sample Manager",
    roles=(HOTEL_MANAGER_ROLE,),
)

SAMPLE_ROOMS = [
    ("Standard", Decimal("2500.00"), 20, 2),
    ("Deluxe", Decimal("4000.00"), 10, 2),
    ("Family Suite", Decimal("7500.00"), 4, 4),
]


async def setup_database():
    """Create every table that does not exist yet."""
    logger.info("Setting up database...")
    await init_db()
    logger.info("Database setup completed successfully!")


async def create_sample_data():
    """Create an active sample hotel with inventory, unless the sample owner already has one."""
    logger.info("Creating sample data...")

    async with async_session_factory() as db:
        service = HotelService(db)
        if await service.list_owned_hotels(SAMPLE_OWNER):
            logger.info("Sample data already exists, skipping...")
            return

        hotel = await service.create_hotel(SAMPLE_OWNER, CreateHotelRequest(name="Seaside Palms", city="Goa"))
        for room_type, base_price, total_count, capacity in SAMPLE_ROOMS:
            await service.create_room(
                SAMPLE_OWNER,
                CreateRoomRequest(
                    hotel_id=str(hotel.id),
                    type=room_type,
                    base_price=base_price,
                    total_count=total_count,
                    capacity=capacity,
                ),
            )
        await service.activate_hotel(SAMPLE_OWNER, hotel.id)

        logger.info("Sample data created successfully!", extra={"hotel_id": str(hotel.id)})


async def main():
    """Main setup function."""
    logger.info("Starting hotel booking API setup...")

    try:
        await setup_database()
        await create_sample_data()
    finally:
        await close_db()

    logger.info("Setup completed successfully!")
    logger.info("You can now start the API server with: uvicorn hotel_booking.main:app --reload")


if __name__ == "__main__":
    asyncio.run(main())
