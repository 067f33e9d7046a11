"""Background worker for expiring unpaid bookings."""

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.database import async_session_factory
from ..services.booking_service import BookingLifecycleManager
from .base import BaseWorker

logger = logging.getLogger(__name__)


class BookingExpiryWorker(BaseWorker):
    """
    Background worker that expires bookings past their hold window.

    Reads already treat stale bookings as expired; the sweep returns their
    reserved units to inventory even when nobody reads them again.
    """

    def __init__(
        self,
        interval_seconds: float = 60,
        batch_size: int = 100,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    ):
        super().__init__(name="BookingExpiry", interval_seconds=interval_seconds)
        self.batch_size = batch_size
        self.session_factory = session_factory or async_session_factory

    async def process(self) -> int:
        """Run one sweep; returns the number of bookings expired."""
        async with self.session_factory() as db:
            manager = BookingLifecycleManager(db)
            expired = await manager.expire_stale_bookings(batch_size=self.batch_size)

        if expired:
            logger.info("Booking expiry sweep", extra={"worker": self.name, "expired": expired})
        return expired
