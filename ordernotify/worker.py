"""Worker process entry point: periodic queue passes and order event consumption."""

import asyncio
import signal

from ordernotify.core.config import get_settings
from ordernotify.core.logging import get_logger, setup_logging
from ordernotify.messaging.consumer import RabbitMQConsumer
from ordernotify.notification.dispatcher import NotificationDispatcher
from ordernotify.notification.factory import build_queue, build_stores
from ordernotify.notification.queue import NotificationDispatchQueue
from ordernotify.notification.worker import QueueWorker
from ordernotify.storage.redis_client import close_redis_pool, init_redis_pool

logger = get_logger(__name__)


class WorkerManager:
    """Runs the periodic queue worker and, when enabled, the order event consumer."""

    def __init__(self):
        """Initialize worker manager."""
        self._settings = get_settings()
        self._queue: NotificationDispatchQueue | None = None
        self._consumer: RabbitMQConsumer | None = None
        self._queue_worker: QueueWorker | None = None

    async def start(self) -> None:
        """Start all worker processes."""
        setup_logging(self._settings)
        logger.info("Starting worker manager", store=self._settings.queue_store)

        if self._settings.queue_store == "redis":
            await init_redis_pool()
        else:
            logger.warning("Worker running with the memory store; API-enqueued jobs are not visible here")

        store, destinations = build_stores(self._settings)
        self._queue = build_queue(self._settings, store, destinations)
        self._queue_worker = QueueWorker(
            self._queue,
            interval=self._settings.notification_process_interval or 60,
            retention_seconds=self._settings.notification_retention_seconds,
        )

        tasks = [self._run_queue_worker()]
        if self._settings.rabbitmq_enabled:
            dispatcher = NotificationDispatcher(self._queue)
            self._consumer = RabbitMQConsumer(dispatcher.dispatch)
            tasks.append(self._run_consumer())

        try:
            await asyncio.gather(*tasks)
        finally:
            await self._cleanup()

    async def _run_consumer(self) -> None:
        """Run message consumer."""
        if self._consumer:
            try:
                await self._consumer.start_consuming()
            except asyncio.CancelledError:
                logger.info("Consumer cancelled")
            except Exception as e:
                logger.error("Consumer error", error=str(e), exc_info=True)

    async def _run_queue_worker(self) -> None:
        """Run periodic queue passes."""
        if self._queue_worker:
            try:
                await self._queue_worker.start()
            except asyncio.CancelledError:
                logger.info("Queue worker cancelled")

    async def stop(self) -> None:
        """Signal workers to stop."""
        logger.info("Stopping workers")
        if self._consumer:
            await self._consumer.stop()
        if self._queue_worker:
            self._queue_worker.stop()

    async def _cleanup(self) -> None:
        """Clean up resources."""
        logger.info("Cleaning up resources")
        if self._consumer:
            await self._consumer.disconnect()
        if self._queue:
            await self._queue.close()
        await close_redis_pool()
        logger.info("Cleanup complete")


async def main() -> None:
    """Main entry point for worker process."""
    manager = WorkerManager()

    loop = asyncio.get_running_loop()

    def signal_handler():
        logger.info("Received shutdown signal")
        asyncio.create_task(manager.stop())

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler)

    await manager.start()


def run() -> None:
    """Console script entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
