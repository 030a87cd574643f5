"""Tests for the HTTP interface."""

import pytest
from fastapi.testclient import TestClient

from ordernotify.api.app import create_app
from ordernotify.api.deps import get_channel, get_destinations, get_queue
from ordernotify.api.routes import notifications as notifications_routes
from ordernotify.core.config import Settings
from ordernotify.core.exceptions import PermanentTransportError, StoreUnavailable
from ordernotify.notification.queue import NotificationDispatchQueue
from ordernotify.storage.job_store import MemoryJobStore


class DeadStore(MemoryJobStore):
    async def list_jobs(self, state=None):
        raise StoreUnavailable("connection refused")


def make_client(queue, destinations, channel) -> TestClient:
    app = create_app()
    app.dependency_overrides[get_queue] = lambda: queue
    app.dependency_overrides[get_destinations] = lambda: destinations
    app.dependency_overrides[get_channel] = lambda: channel
    return TestClient(app)


@pytest.fixture
def client(queue, destinations, channel) -> TestClient:
    return make_client(queue, destinations, channel)


@pytest.fixture
def no_background_pass(monkeypatch) -> None:
    monkeypatch.setattr(
        notifications_routes,
        "get_settings",
        lambda: Settings(notification_process_on_enqueue=False),
    )


def test_health(client) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_enqueue_returns_pending_job(client, no_background_pass, sample_order_payload) -> None:
    response = client.post(
        "/api/v1/notifications/orders",
        json={"user_id": "seller-1", "order": sample_order_payload},
    )

    assert response.status_code == 202
    data = response.json()["data"]
    assert data["state"] == "pending"
    assert data["job_id"].startswith("notify_")

    stats = client.get("/api/v1/queue/stats").json()["data"]
    assert stats == {
        "pending": 1,
        "in_flight": 0,
        "delivered": 0,
        "failed": 0,
        "abandoned": 0,
        "total_processed": 0,
    }


def test_enqueue_triggers_background_pass(client, channel, sample_order_payload) -> None:
    response = client.post(
        "/api/v1/notifications/orders",
        json={"user_id": "seller-1", "order": sample_order_payload},
    )

    assert response.status_code == 202
    assert len(channel.delivered) == 1
    assert client.get("/api/v1/queue/stats").json()["data"]["delivered"] == 1


def test_enqueue_validates_payload(client) -> None:
    response = client.post(
        "/api/v1/notifications/orders",
        json={"user_id": "seller-1", "order": {"customer_name": "No id"}},
    )

    assert response.status_code == 422
    payload = response.json()
    assert payload["code"] == 422
    assert payload["message"] == "Validation error"
    assert payload["data"]


def test_process_echoes_stats(client, no_background_pass, sample_order_payload) -> None:
    client.post("/api/v1/notifications/orders", json={"user_id": "seller-1", "order": sample_order_payload})
    client.post("/api/v1/notifications/orders", json={"user_id": "ghost", "order": sample_order_payload})

    response = client.post("/api/v1/queue/process", params={"triggered_by": "cron"})

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["triggered_by"] == "cron"
    assert data["report"]["attempted"] == 2
    assert data["report"]["skipped"] is False
    assert data["stats"]["delivered"] == 1
    assert data["stats"]["abandoned"] == 1
    assert data["stats"]["total_processed"] == 2


def test_process_reports_store_outage(destinations, channel) -> None:
    queue = NotificationDispatchQueue(DeadStore(), destinations, channel)
    client = make_client(queue, destinations, channel)

    response = client.post("/api/v1/queue/process")

    assert response.status_code == 503
    assert response.json()["code"] == 503


def test_list_and_get_jobs(client, no_background_pass, sample_order_payload) -> None:
    for user_id in ("seller-1", "seller-2", "seller-1"):
        client.post("/api/v1/notifications/orders", json={"user_id": user_id, "order": sample_order_payload})

    listed = client.get("/api/v1/queue/jobs", params={"user_id": "seller-1", "page_size": 1}).json()
    assert listed["total"] == 2
    assert len(listed["data"]) == 1

    job_id = listed["data"][0]["job_id"]
    job = client.get(f"/api/v1/queue/jobs/{job_id}").json()["data"]
    assert job["destination_user_id"] == "seller-1"
    assert job["payload"]["order_id"] == "WC-2001"

    by_state = client.get("/api/v1/queue/jobs", params={"state": "delivered"}).json()
    assert by_state["total"] == 0


def test_get_missing_job_returns_404(client) -> None:
    response = client.get("/api/v1/queue/jobs/notify_missing")

    assert response.status_code == 404
    assert response.json()["message"] == "Job notify_missing not found"


def test_telegram_settings_crud(client, channel) -> None:
    assert client.get("/api/v1/users/seller-7/telegram-settings").json()["data"]["is_configured"] is False

    response = client.put("/api/v1/users/seller-7/telegram-settings", json={"chat_id": "-100123"})
    assert response.status_code == 200
    assert response.json()["data"]["chat_id"] == "-100123"
    assert channel.calls == []

    settings = client.get("/api/v1/users/seller-7/telegram-settings").json()["data"]
    assert settings == {"user_id": "seller-7", "chat_id": "-100123", "is_configured": True}

    assert client.delete("/api/v1/users/seller-7/telegram-settings").status_code == 200
    assert client.delete("/api/v1/users/seller-7/telegram-settings").status_code == 404


def test_telegram_settings_rejects_bad_chat_id(client) -> None:
    response = client.put("/api/v1/users/seller-7/telegram-settings", json={"chat_id": "not a chat"})

    assert response.status_code == 422


def test_telegram_settings_connection_test_failure(client, channel, destinations) -> None:
    channel.outcomes = [PermanentTransportError("Telegram rejected message: chat not found")]

    response = client.put(
        "/api/v1/users/seller-7/telegram-settings",
        json={"chat_id": "12345", "send_test": True},
    )

    assert response.status_code == 400
    assert response.json()["message"].startswith("Connection test failed")
    assert client.get("/api/v1/users/seller-7/telegram-settings").json()["data"]["chat_id"] is None


def test_send_test_notification(client, channel) -> None:
    response = client.post("/api/v1/telegram/test", json={"user_id": "seller-2"})

    assert response.status_code == 200
    assert response.json()["data"]["chat_id"] == "1002"
    assert "TEST-12345" in channel.delivered[0][1]


def test_send_test_notification_without_destination(client) -> None:
    response = client.post("/api/v1/telegram/test", json={"user_id": "ghost"})

    assert response.status_code == 404
    assert response.json()["data"] == {"user_id": "ghost"}


def test_send_test_notification_transport_failure(client, channel) -> None:
    channel.outcomes = [PermanentTransportError("Telegram rejected message: bot was blocked")]

    response = client.post("/api/v1/telegram/test", json={"user_id": "seller-1"})

    assert response.status_code == 502
    assert response.json()["data"] == {"retryable": False}


def test_bot_info(client) -> None:
    response = client.get("/api/v1/telegram/bot")

    assert response.status_code == 200
    assert response.json()["data"]["username"] == "fake_bot"
