"""Base worker class for background tasks."""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import Optional

logger = logging.getLogger(__name__)


class BaseWorker(ABC):
    """
    Abstract base class for background workers.

    Runs `process` every `interval_seconds` on the event loop until stopped.
    A failing iteration is logged and the loop carries on at the next tick.
    """

    def __init__(self, name: str, interval_seconds: float = 60):
        self.name = name
        self.interval_seconds = interval_seconds
        self._running = False
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._running

    @abstractmethod
    async def process(self) -> None:
        """Process one iteration of the background task."""

    async def start(self) -> None:
        """Start the worker."""
        if self._running:
            logger.warning("Worker is already running", extra={"worker": self.name})
            return

        self._running = True
        self._task = asyncio.create_task(self._run(), name=f"worker-{self.name}")
        logger.info(
            "Worker started",
            extra={"worker": self.name, "interval_seconds": self.interval_seconds}
        )

    async def stop(self) -> None:
        """Stop the worker, cancelling an iteration in progress."""
        if not self._running:
            logger.warning("Worker is not running", extra={"worker": self.name})
            return

        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        logger.info("Worker stopped", extra={"worker": self.name})

    async def _run(self) -> None:
        """Main worker loop."""
        while self._running:
            started = time.monotonic()
            try:
                await self.process()
            except asyncio.CancelledError:
                logger.info("Worker loop cancelled", extra={"worker": self.name})
                raise
            except Exception:
                logger.exception("Worker iteration failed", extra={"worker": self.name})

            duration = time.monotonic() - started
            logger.debug(
                "Worker iteration completed",
                extra={"worker": self.name, "duration_seconds": round(duration, 3)}
            )
            await asyncio.sleep(max(0.0, self.interval_seconds - duration))
