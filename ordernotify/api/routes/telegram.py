"""Telegram destination settings and diagnostics routes."""

from decimal import Decimal
from typing import Any

from fastapi import APIRouter, HTTPException

from ordernotify.api.deps import ChannelDep, DestinationsDep
from ordernotify.core.exceptions import DestinationNotConfigured, TransportError
from ordernotify.core.logging import get_logger
from ordernotify.models.notification import OrderItem, OrderNotification
from ordernotify.notification.formatter import render_order_message
from ordernotify.schemas.common import APIResponse
from ordernotify.schemas.notification import (
    SampleNotificationRequest,
    TelegramSettings,
    TelegramSettingsUpdate,
)

logger = get_logger(__name__)

router = APIRouter(tags=["telegram"])


def sample_order(is_update: bool = False) -> OrderNotification:
    """Order used for test notifications."""
    return OrderNotification(
        order_id="TEST-12345",
        customer_name="Test Customer",
        customer_email="test@example.com",
        total_amount=Decimal("99.99"),
        status="completed" if is_update else "processing",
        previous_status="processing" if is_update else None,
        items=[OrderItem(product_name="Test Product", quantity=1, price=Decimal("99.99"))],
        is_update=is_update,
        source="Test",
    )


@router.get("/users/{user_id}/telegram-settings", response_model=APIResponse[TelegramSettings])
async def get_telegram_settings(
    user_id: str,
    destinations: DestinationsDep,
) -> APIResponse[TelegramSettings]:
    """Get a seller's Telegram destination."""
    chat_id = await destinations.get_chat_id(user_id)
    return APIResponse(
        data=TelegramSettings(user_id=user_id, chat_id=chat_id, is_configured=bool(chat_id))
    )


@router.put("/users/{user_id}/telegram-settings", response_model=APIResponse[TelegramSettings])
async def update_telegram_settings(
    user_id: str,
    data: TelegramSettingsUpdate,
    destinations: DestinationsDep,
    channel: ChannelDep,
) -> APIResponse[TelegramSettings]:
    """Set a seller's Telegram destination, optionally testing it first."""
    if data.send_test:
        try:
            await channel.send(data.chat_id, render_order_message(sample_order()))
        except TransportError as e:
            raise HTTPException(status_code=400, detail=f"Connection test failed: {e}") from e

    await destinations.set_chat_id(user_id, data.chat_id)
    logger.info("Telegram settings updated", user_id=user_id)

    return APIResponse(
        data=TelegramSettings(user_id=user_id, chat_id=data.chat_id, is_configured=True)
    )


@router.delete("/users/{user_id}/telegram-settings", response_model=APIResponse[None])
async def delete_telegram_settings(
    user_id: str,
    destinations: DestinationsDep,
) -> APIResponse[None]:
    """Remove a seller's Telegram destination."""
    if not await destinations.remove(user_id):
        raise HTTPException(status_code=404, detail=f"No Telegram settings for user {user_id}")

    logger.info("Telegram settings removed", user_id=user_id)
    return APIResponse(message="Telegram settings removed")


@router.get("/telegram/bot", response_model=APIResponse[dict[str, Any]])
async def get_bot_info(channel: ChannelDep) -> APIResponse[dict[str, Any]]:
    """Check the bot token by asking the transport who it is."""
    return APIResponse(data=await channel.describe())


@router.post("/telegram/test", response_model=APIResponse[dict[str, Any]])
async def send_test_notification(
    data: SampleNotificationRequest,
    destinations: DestinationsDep,
    channel: ChannelDep,
) -> APIResponse[dict[str, Any]]:
    """Send a sample order message to a seller, bypassing the queue."""
    chat_id = await destinations.get_chat_id(data.user_id)
    if not chat_id:
        raise DestinationNotConfigured(data.user_id)

    await channel.send(chat_id, render_order_message(sample_order(data.is_update)))
    return APIResponse(
        message="Test notification sent",
        data={"user_id": data.user_id, "chat_id": chat_id},
    )
