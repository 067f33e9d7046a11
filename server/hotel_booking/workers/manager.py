"""Worker manager for coordinating background tasks."""

import asyncio
import logging
from typing import Dict

from ..core.config import Settings, settings as default_settings
from .base import BaseWorker
from .booking_expiry_worker import BookingExpiryWorker

logger = logging.getLogger(__name__)


class WorkerManager:
    """Starts and stops the application's background workers."""

    def __init__(self, config: Settings = default_settings):
        self.workers: Dict[str, BaseWorker] = {}
        self._setup_workers(config)

    def _setup_workers(self, config: Settings) -> None:
        if config.expiry_sweep_enabled:
            self.workers["booking_expiry"] = BookingExpiryWorker(
                interval_seconds=config.expiry_sweep_interval_seconds
            )
        logger.info("Initialized workers", extra={"workers": sorted(self.workers)})

    async def start_all(self) -> None:
        for name, worker in self.workers.items():
            try:
                await worker.start()
            except Exception:
                logger.exception("Failed to start worker", extra={"worker": name})

    async def stop_all(self) -> None:
        """Stop all workers, logging any that fail to stop cleanly."""
        results = await asyncio.gather(
            *(worker.stop() for worker in self.workers.values()),
            return_exceptions=True,
        )
        for name, result in zip(self.workers, results):
            if isinstance(result, Exception):
                logger.error(
                    "Error stopping worker",
                    exc_info=result,
                    extra={"worker": name}
                )
        logger.info("All workers stopped")

    def get_worker(self, name: str) -> BaseWorker:
        """
        Raises:
            KeyError: If worker not found
        """
        return self.workers[name]

    def get_worker_status(self) -> Dict[str, bool]:
        return {name: worker.running for name, worker in self.workers.items()}
