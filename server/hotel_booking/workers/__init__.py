"""Background workers for the hotel booking service."""

from .booking_expiry_worker import BookingExpiryWorker
from .manager import WorkerManager

__all__ = ["BookingExpiryWorker", "WorkerManager"]
