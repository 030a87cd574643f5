"""Order event domain models."""

import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from ordernotify.models.notification import OrderNotification, utcnow


class OrderEvent(BaseModel):
    """Order event emitted by the ingestion webhooks.

    Received over HTTP or RabbitMQ and turned into one notification job.
    """

    event_id: str = Field(
        default_factory=lambda: uuid.uuid4().hex,
        description="Event unique identifier",
    )
    user_id: str = Field(..., min_length=1, description="Seller owning the storefront")
    order: OrderNotification
    timestamp: datetime = Field(default_factory=utcnow, description="Event timestamp")

    @classmethod
    def from_message(cls, body: dict[str, Any], message_id: str | None = None) -> "OrderEvent":
        """Build an event from a broker message body."""
        if not isinstance(body, dict):
            raise TypeError(f"Expected a JSON object, got {type(body).__name__}")
        data = dict(body)
        if not data.get("event_id") and message_id:
            data["event_id"] = message_id
        return cls.model_validate(data)
