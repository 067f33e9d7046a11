"""FastAPI routers package."""

from .booking import router as booking_router
from .health import router as health_router
from .hotel import router as hotel_router
from .inventory import router as inventory_router
from .metrics import router as metrics_router
from .payment import router as payment_router

__all__ = [
    "booking_router",
    "health_router",
    "hotel_router",
    "inventory_router",
    "metrics_router",
    "payment_router",
]
