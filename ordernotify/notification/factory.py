"""Builds the notification queue and its collaborators from settings."""

from ordernotify.core.config import Settings
from ordernotify.notification.channels.base import NotificationChannel
from ordernotify.notification.channels.telegram import TelegramChannel
from ordernotify.notification.queue import NotificationDispatchQueue
from ordernotify.storage.destination_store import (
    DestinationLookup,
    MemoryDestinationLookup,
    RedisDestinationLookup,
)
from ordernotify.storage.job_store import JobStore, MemoryJobStore, RedisJobStore


def build_stores(settings: Settings) -> tuple[JobStore, DestinationLookup]:
    """Create the job store and destination lookup for the configured backend.

    The redis backend expects ``init_redis_pool`` to have been awaited.
    """
    if settings.queue_store == "redis":
        return RedisJobStore(), RedisDestinationLookup()
    return MemoryJobStore(), MemoryDestinationLookup()


def build_queue(
    settings: Settings,
    store: JobStore,
    destinations: DestinationLookup,
    channel: NotificationChannel | None = None,
) -> NotificationDispatchQueue:
    """Create the process-wide queue instance."""
    return NotificationDispatchQueue(
        store=store,
        destinations=destinations,
        channel=channel or TelegramChannel(),
        max_attempts=settings.notification_max_attempts,
        delivery_timeout=settings.notification_delivery_timeout,
        batch_size=settings.notification_batch_size,
        pass_lock_timeout=settings.notification_pass_lock_timeout,
    )
