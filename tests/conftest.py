"""Pytest configuration and fixtures."""

import asyncio
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

import pytest

from ordernotify.models.notification import NotificationJob, OrderItem, OrderNotification
from ordernotify.notification.channels.base import NotificationChannel
from ordernotify.notification.queue import NotificationDispatchQueue
from ordernotify.storage.destination_store import MemoryDestinationLookup
from ordernotify.storage.job_store import MemoryJobStore


class FakeChannel(NotificationChannel):
    """Transport recording every call.

    ``outcomes`` is consumed one entry per call: an exception instance is
    raised, anything else means success. Once exhausted, calls succeed.
    """

    def __init__(self, outcomes: list[Any] | None = None):
        self.outcomes = list(outcomes or [])
        self.calls: list[tuple[str, str]] = []
        self.delivered: list[tuple[str, str]] = []
        self.gate: asyncio.Event | None = None
        self.delay = 0.0
        self.closed = False

    @property
    def channel_type(self) -> str:
        return "fake"

    async def send(self, chat_id: str, text: str) -> None:
        self.calls.append((chat_id, text))
        if self.gate is not None:
            await self.gate.wait()
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.outcomes:
            outcome = self.outcomes.pop(0)
            if isinstance(outcome, BaseException):
                raise outcome
        self.delivered.append((chat_id, text))

    async def describe(self) -> dict[str, Any]:
        return {"channel": "fake", "username": "fake_bot"}

    async def close(self) -> None:
        self.closed = True


def make_order(**overrides: Any) -> OrderNotification:
    data: dict[str, Any] = {
        "order_id": "WC-1001",
        "customer_name": "Mario Rossi",
        "customer_email": "mario@example.com",
        "total_amount": Decimal("149.90"),
        "status": "processing",
        "created_at": datetime(2026, 3, 14, 9, 30, tzinfo=timezone.utc),
        "items": [
            OrderItem(product_name="Espresso Machine", quantity=1, price=Decimal("129.90")),
            OrderItem(product_name="Coffee Beans", quantity=2, price=Decimal("10.00")),
        ],
    }
    data.update(overrides)
    return OrderNotification(**data)


def make_job(user_id: str = "seller-1", **order_overrides: Any) -> NotificationJob:
    return NotificationJob(destination_user_id=user_id, payload=make_order(**order_overrides))


@pytest.fixture
def channel() -> FakeChannel:
    return FakeChannel()


@pytest.fixture
def channel_factory():
    """Build extra channels, for tests running several queues."""
    return FakeChannel


@pytest.fixture
def destinations() -> MemoryDestinationLookup:
    return MemoryDestinationLookup({"seller-1": "1001", "seller-2": "1002"})


@pytest.fixture
def store() -> MemoryJobStore:
    return MemoryJobStore()


@pytest.fixture
def queue(
    store: MemoryJobStore,
    destinations: MemoryDestinationLookup,
    channel: FakeChannel,
) -> NotificationDispatchQueue:
    return NotificationDispatchQueue(
        store=store,
        destinations=destinations,
        channel=channel,
        max_attempts=3,
        delivery_timeout=0.5,
    )


@pytest.fixture
def sample_order_payload() -> dict:
    """Order payload as sent by the webhook handlers."""
    return {
        "order_id": "WC-2001",
        "customer_name": "Giulia Bianchi",
        "customer_email": "giulia@example.com",
        "total_amount": "59.50",
        "currency": "EUR",
        "status": "processing",
        "created_at": "2026-03-14T10:00:00Z",
        "items": [{"product_name": "Moka Pot", "quantity": 1, "price": "59.50"}],
        "is_update": False,
        "source": "WooCommerce",
    }


@pytest.fixture
def order_factory():
    return make_order


@pytest.fixture
def job_factory():
    return make_job
