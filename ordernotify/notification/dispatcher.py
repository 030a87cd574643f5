"""Turns order events into queued notification jobs."""

from ordernotify.core.logging import get_logger
from ordernotify.models.event import OrderEvent
from ordernotify.models.notification import NotificationJob
from ordernotify.notification.queue import NotificationDispatchQueue

logger = get_logger(__name__)


class NotificationDispatcher:
    """Entry point used by order ingestion to request a notification."""

    def __init__(self, queue: NotificationDispatchQueue):
        """Initialize dispatcher.

        Args:
            queue: Queue receiving the jobs
        """
        self._queue = queue

    async def dispatch(self, event: OrderEvent) -> NotificationJob:
        """Queue a notification for an order event.

        One event gives one job; deduplicating repeated webhook deliveries
        is up to the ingestion side.

        Args:
            event: Order created / status changed event

        Returns:
            The queued job
        """
        job = NotificationJob(
            destination_user_id=event.user_id,
            payload=event.order,
        )
        await self._queue.enqueue(job)

        logger.debug(
            "Order event dispatched",
            event_id=event.event_id,
            job_id=job.job_id,
        )
        return job
