"""Models module exporting all database models."""

from .booking import HOLDING_STATUSES, Booking, BookingStatus, Guest
from .hotel import Hotel, Room
from .inventory import InventoryDay

__all__ = [
    # Catalog entities
    "Hotel",
    "Room",

    # Ledger entity
    "InventoryDay",

    # Booking entities
    "Booking",
    "BookingStatus",
    "Guest",
    "HOLDING_STATUSES",
]
