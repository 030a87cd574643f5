"""RabbitMQ consumer for order events."""

import json
from typing import Any, Callable, Coroutine

import aio_pika
from aio_pika import IncomingMessage
from aio_pika.abc import AbstractQueueIterator, AbstractRobustConnection
from pydantic import ValidationError

from ordernotify.core.config import get_settings
from ordernotify.core.logging import get_logger
from ordernotify.models.event import OrderEvent

logger = get_logger(__name__)

# Type alias for message handler
MessageHandler = Callable[[OrderEvent], Coroutine[Any, Any, Any]]


class RabbitMQConsumer:
    """Consumes order events published by the ingestion webhooks."""

    def __init__(self, handler: MessageHandler):
        """Initialize consumer.

        Args:
            handler: Async function receiving each order event
        """
        self._settings = get_settings()
        self._handler = handler
        self._connection: AbstractRobustConnection | None = None
        self._queue_iter: AbstractQueueIterator | None = None
        self._should_stop = False

    async def connect(self) -> None:
        """Connect to RabbitMQ."""
        self._connection = await aio_pika.connect_robust(
            self._settings.rabbitmq_url,
            reconnect_interval=5,
        )
        logger.info("Connected to RabbitMQ")

    async def disconnect(self) -> None:
        """Disconnect from RabbitMQ."""
        if self._connection:
            await self._connection.close()
            self._connection = None
            logger.info("Disconnected from RabbitMQ")

    async def start_consuming(self) -> None:
        """Start consuming messages from queue."""
        if not self._connection:
            await self.connect()

        channel = await self._connection.channel()
        await channel.set_qos(prefetch_count=10)

        queue = await channel.declare_queue(
            self._settings.rabbitmq_queue,
            durable=True,
        )

        logger.info("Starting message consumption", queue=self._settings.rabbitmq_queue)

        if self._should_stop:
            return
        async with queue.iterator() as queue_iter:
            self._queue_iter = queue_iter
            async for message in queue_iter:
                if self._should_stop:
                    break
                try:
                    await self.process_message(message)
                except Exception as e:
                    logger.error(
                        "Error processing message",
                        message_id=message.message_id,
                        error=str(e),
                        exc_info=True,
                    )

    async def process_message(self, message: IncomingMessage) -> None:
        """Process a single message.

        Malformed messages are acknowledged and dropped; handler errors
        reject the message so the broker can redeliver it.

        Args:
            message: Incoming RabbitMQ message
        """
        async with message.process(requeue=True):
            try:
                body = json.loads(message.body.decode())
                event = OrderEvent.from_message(body, message.message_id)
            except (json.JSONDecodeError, UnicodeDecodeError) as e:
                logger.error("Invalid JSON message", error=str(e))
                return
            except TypeError:
                logger.error("Message body is not an object", message_id=message.message_id)
                return
            except ValidationError as e:
                logger.warning(
                    "Invalid order event",
                    message_id=message.message_id,
                    errors=e.error_count(),
                )
                return

            logger.debug(
                "Order event received",
                event_id=event.event_id,
                user_id=event.user_id,
                order_id=event.order.order_id,
            )
            await self._handler(event)

    async def stop(self) -> None:
        """Stop consuming.

        Closing the iterator ends ``start_consuming`` even when no message
        arrives.
        """
        self._should_stop = True
        logger.info("Consumer stop requested")
        if self._queue_iter:
            await self._queue_iter.close()
            self._queue_iter = None
