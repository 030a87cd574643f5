"""Notification queue API schemas."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from ordernotify.models.notification import (
    JobState,
    NotificationJob,
    OrderNotification,
    PassReport,
    QueueStats,
)


class OrderNotificationCreate(BaseModel):
    """Enqueue request sent by the order webhook handlers."""

    user_id: str = Field(..., min_length=1, description="Seller owning the storefront")
    order: OrderNotification


class JobCreateResponse(BaseModel):
    """Response for an enqueued job."""

    job_id: str
    state: JobState
    enqueued_at: datetime


class JobResponse(NotificationJob):
    """Response model for a job."""

    pass


class ProcessResponse(BaseModel):
    """Result of a triggered pass."""

    triggered_by: Literal["cron", "manual"]
    report: PassReport
    stats: QueueStats


class TelegramSettings(BaseModel):
    """A seller's Telegram destination."""

    user_id: str
    chat_id: str | None = None
    is_configured: bool = False


class TelegramSettingsUpdate(BaseModel):
    """Set a seller's Telegram destination."""

    chat_id: str = Field(
        ...,
        min_length=1,
        max_length=64,
        pattern=r"^(-?\d+|@[A-Za-z0-9_]{5,})$",
        description="Numeric chat id or @channel username",
    )
    send_test: bool = Field(default=False, description="Send a test message before saving")


class SampleNotificationRequest(BaseModel):
    """Send a sample order notification straight through the transport."""

    user_id: str = Field(..., min_length=1)
    is_update: bool = False
