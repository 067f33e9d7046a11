"""Service layer package."""

from .booking_service import BookingLifecycleManager
from .checkout import CheckoutGateway, StripeCheckoutGateway
from .hotel_service import HotelService
from .inventory_ledger import InventoryLedger, LockArena
from .pricing import PricingPipeline
from .reservation_engine import ReservationEngine

__all__ = [
    "BookingLifecycleManager",
    "CheckoutGateway",
    "HotelService",
    "InventoryLedger",
    "LockArena",
    "PricingPipeline",
    "ReservationEngine",
    "StripeCheckoutGateway",
]
