"""Periodic trigger for notification queue passes."""

import asyncio

from ordernotify.core.exceptions import StoreUnavailable
from ordernotify.core.logging import get_logger
from ordernotify.notification.queue import NotificationDispatchQueue

logger = get_logger(__name__)


class QueueWorker:
    """Runs a queue pass every ``interval`` seconds until stopped."""

    def __init__(
        self,
        queue: NotificationDispatchQueue,
        interval: float,
        retention_seconds: int = 0,
    ):
        """Initialize worker.

        Args:
            queue: Queue to drive
            interval: Seconds between passes
            retention_seconds: Prune terminal jobs older than this, 0 disables
        """
        self._queue = queue
        self._interval = interval
        self._retention_seconds = retention_seconds
        self._stop_event = asyncio.Event()

    async def start(self) -> None:
        """Start the trigger loop."""
        logger.info("Queue worker started", interval=self._interval)

        while not self._stop_event.is_set():
            await self.run_once()
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._interval)
            except asyncio.TimeoutError:
                pass

        logger.info("Queue worker stopped")

    async def run_once(self) -> None:
        """Trigger one pass, then prune.

        Store outages are logged and retried on the next tick.
        """
        try:
            report = await self._queue.process_queue()
            if not report.skipped and self._retention_seconds:
                await self._queue.prune(self._retention_seconds)
        except StoreUnavailable as e:
            logger.error("Queue pass failed, store unavailable", error=str(e))
        except Exception as e:
            logger.error("Worker error", error=str(e), exc_info=True)

    def stop(self) -> None:
        """Signal worker to stop."""
        self._stop_event.set()
