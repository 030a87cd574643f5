"""Tests for the notification dispatch queue."""

import asyncio

import pytest
from prometheus_client import REGISTRY

from ordernotify.core.exceptions import (
    PermanentTransportError,
    StoreUnavailable,
    TransientTransportError,
)
from ordernotify.models.notification import JobState, QueueStats
from ordernotify.notification.queue import NotificationDispatchQueue
from ordernotify.storage.destination_store import MemoryDestinationLookup
from ordernotify.storage.job_store import MemoryJobStore


class FlakyDestinations(MemoryDestinationLookup):
    """Destination lookup that can be switched to fail like a dead store."""

    def __init__(self, chat_ids: dict[str, str]):
        super().__init__(chat_ids)
        self.broken = False

    async def get_chat_id(self, user_id: str) -> str | None:
        if self.broken:
            raise StoreUnavailable("connection refused")
        return await super().get_chat_id(user_id)


class HangingDestinations(MemoryDestinationLookup):
    async def get_chat_id(self, user_id: str) -> str | None:
        await asyncio.Event().wait()


class UnreadableStore(MemoryJobStore):
    async def list_pending(self, limit: int):
        raise StoreUnavailable("connection refused")


async def wait_for_calls(channel, count: int) -> None:
    for _ in range(200):
        if len(channel.calls) >= count:
            return
        await asyncio.sleep(0)
    raise AssertionError(f"transport never reached {count} calls")


@pytest.mark.asyncio
async def test_enqueue_shows_job_as_pending_only(queue, job_factory) -> None:
    await queue.enqueue(job_factory())

    stats = await queue.get_stats()

    assert stats == QueueStats(pending=1)


@pytest.mark.asyncio
async def test_enqueue_rejects_jobs_that_are_not_fresh(queue, job_factory) -> None:
    job = job_factory()
    job.state = JobState.DELIVERED

    with pytest.raises(ValueError):
        await queue.enqueue(job)

    assert await queue.get_stats() == QueueStats()


@pytest.mark.asyncio
async def test_missing_destination_abandons_without_retry(queue, channel, job_factory) -> None:
    job = await queue.enqueue(job_factory(user_id="seller-without-chat"))

    report = await queue.process_queue()

    assert report.abandoned == 1
    assert report.stats.abandoned == 1
    assert report.stats.pending == 0
    assert channel.calls == []

    stored = await queue.get_job(job.job_id)
    assert stored.state is JobState.ABANDONED
    assert "seller-without-chat" in stored.last_error


@pytest.mark.asyncio
async def test_transient_failures_abandon_at_ceiling(queue, channel, job_factory) -> None:
    channel.outcomes = [TransientTransportError("Telegram unavailable")] * 3
    job = await queue.enqueue(job_factory())

    first = await queue.process_queue()
    assert first.retried == 1
    assert first.stats.pending == 1
    assert first.stats.failed == 1

    await queue.process_queue()
    stored = await queue.get_job(job.job_id)
    assert stored.state is JobState.PENDING
    assert stored.attempt_count == 2

    third = await queue.process_queue()
    stored = await queue.get_job(job.job_id)
    assert third.abandoned == 1
    assert stored.state is JobState.ABANDONED
    assert stored.attempt_count == 3
    assert stored.last_error == "Telegram unavailable"
    assert len(channel.calls) == 3


@pytest.mark.asyncio
async def test_successful_first_attempt_delivers(queue, channel, job_factory) -> None:
    job = await queue.enqueue(job_factory())

    report = await queue.process_queue()

    assert report.delivered == 1
    assert report.stats.delivered == 1
    assert report.stats.total_processed == 1
    stored = await queue.get_job(job.job_id)
    assert stored.state is JobState.DELIVERED
    assert stored.attempt_count == 1
    assert stored.last_error is None
    assert len(channel.delivered) == 1
    chat_id, text = channel.delivered[0]
    assert chat_id == "1001"
    assert "WC-1001" in text


@pytest.mark.asyncio
async def test_permanent_failure_abandons_immediately(queue, channel, job_factory) -> None:
    channel.outcomes = [PermanentTransportError("chat not found")]
    job = await queue.enqueue(job_factory())

    await queue.process_queue()
    await queue.process_queue()

    stored = await queue.get_job(job.job_id)
    assert stored.state is JobState.ABANDONED
    assert stored.attempt_count == 1
    assert len(channel.calls) == 1


@pytest.mark.asyncio
async def test_retry_after_transient_failure_then_delivery(queue, channel, job_factory) -> None:
    channel.outcomes = [TransientTransportError("rate limited")]
    job = await queue.enqueue(job_factory())

    await queue.process_queue()
    report = await queue.process_queue()

    stored = await queue.get_job(job.job_id)
    assert report.delivered == 1
    assert stored.state is JobState.DELIVERED
    assert stored.attempt_count == 2
    assert stored.last_error is None
    assert len(channel.delivered) == 1


@pytest.mark.asyncio
async def test_attempt_count_never_exceeds_ceiling(store, destinations, channel, job_factory) -> None:
    queue = NotificationDispatchQueue(store, destinations, channel, max_attempts=2)
    channel.outcomes = [TransientTransportError("down")] * 10
    job = await queue.enqueue(job_factory())

    for _ in range(5):
        await queue.process_queue()

    stored = await queue.get_job(job.job_id)
    assert stored.attempt_count == 2
    assert stored.state is JobState.ABANDONED
    assert len(channel.calls) == 2


@pytest.mark.asyncio
async def test_timeout_counts_as_transient_failure(store, destinations, channel, job_factory) -> None:
    queue = NotificationDispatchQueue(store, destinations, channel, delivery_timeout=0.05)
    channel.gate = asyncio.Event()
    job = await queue.enqueue(job_factory())

    report = await queue.process_queue()

    stored = await queue.get_job(job.job_id)
    assert report.retried == 1
    assert stored.state is JobState.PENDING
    assert "timed out" in stored.last_error


@pytest.mark.asyncio
async def test_unexpected_transport_error_is_retried(queue, channel, job_factory) -> None:
    channel.outcomes = [RuntimeError("boom")]
    job = await queue.enqueue(job_factory())

    report = await queue.process_queue()

    stored = await queue.get_job(job.job_id)
    assert report.retried == 1
    assert stored.state is JobState.PENDING
    assert "boom" in stored.last_error


@pytest.mark.asyncio
async def test_one_failing_job_does_not_stop_the_pass(queue, channel, job_factory) -> None:
    channel.outcomes = [PermanentTransportError("bot was blocked by the user")]
    await queue.enqueue(job_factory(user_id="ghost"))
    await queue.enqueue(job_factory(user_id="seller-1", order_id="A-1"))
    await queue.enqueue(job_factory(user_id="seller-2", order_id="A-2"))

    report = await queue.process_queue()

    assert report.attempted == 3
    assert report.abandoned == 2
    assert report.delivered == 1
    assert report.stats.total_processed == 3
    assert channel.delivered[0][0] == "1002"


@pytest.mark.asyncio
async def test_concurrent_pass_is_skipped_and_enqueue_is_not_lost(queue, channel, job_factory) -> None:
    channel.gate = asyncio.Event()
    first_job = await queue.enqueue(job_factory())

    running = asyncio.create_task(queue.process_queue())
    await wait_for_calls(channel, 1)

    assert queue.is_processing
    during = await queue.get_stats()
    assert during.in_flight == 1

    skipped = await queue.process_queue()
    assert skipped.skipped
    assert skipped.attempted == 0

    late_job = await queue.enqueue(job_factory(order_id="LATE-1"))
    assert (await queue.get_stats()).pending == 1

    channel.gate.set()
    report = await running
    assert report.attempted == 1
    assert (await queue.get_job(late_job.job_id)).state is JobState.PENDING

    await queue.process_queue()
    assert (await queue.get_job(first_job.job_id)).state is JobState.DELIVERED
    assert (await queue.get_job(late_job.job_id)).state is JobState.DELIVERED
    assert (await queue.get_stats()).delivered == 2


@pytest.mark.asyncio
async def test_store_failure_propagates_from_process_queue(destinations, channel, job_factory) -> None:
    queue = NotificationDispatchQueue(UnreadableStore(), destinations, channel)
    await queue.enqueue(job_factory())

    with pytest.raises(StoreUnavailable):
        await queue.process_queue()

    assert not queue.is_processing


@pytest.mark.asyncio
async def test_interrupted_job_is_recovered_on_next_pass(store, channel, job_factory) -> None:
    destinations = FlakyDestinations({"seller-1": "1001"})
    queue = NotificationDispatchQueue(store, destinations, channel)
    job = await queue.enqueue(job_factory())

    destinations.broken = True
    with pytest.raises(StoreUnavailable):
        await queue.process_queue()
    assert (await queue.get_stats()).in_flight == 1

    destinations.broken = False
    report = await queue.process_queue()

    stored = await queue.get_job(job.job_id)
    assert report.delivered == 1
    assert stored.state is JobState.DELIVERED
    assert stored.attempt_count == 2


@pytest.mark.asyncio
async def test_get_stats_is_idempotent(queue, channel, job_factory) -> None:
    channel.outcomes = [TransientTransportError("down")]
    await queue.enqueue(job_factory())
    await queue.enqueue(job_factory(user_id="seller-2"))
    await queue.process_queue()

    assert await queue.get_stats() == await queue.get_stats()


@pytest.mark.asyncio
async def test_batch_size_limits_jobs_per_pass(store, destinations, channel, job_factory) -> None:
    queue = NotificationDispatchQueue(store, destinations, channel, batch_size=2)
    for i in range(3):
        await queue.enqueue(job_factory(order_id=f"B-{i}"))

    first = await queue.process_queue()
    second = await queue.process_queue()

    assert first.attempted == 2
    assert second.attempted == 1
    assert second.stats.delivered == 3


@pytest.mark.asyncio
async def test_prune_removes_only_terminal_jobs(queue, job_factory) -> None:
    await queue.enqueue(job_factory())
    await queue.process_queue()
    pending = await queue.enqueue(job_factory(order_id="KEEP-1"))

    removed = await queue.prune(retention_seconds=0)

    assert removed == 1
    jobs = await queue.list_jobs()
    assert [j.job_id for j in jobs] == [pending.job_id]


def test_max_attempts_must_be_positive(store, destinations, channel) -> None:
    with pytest.raises(ValueError):
        NotificationDispatchQueue(store, destinations, channel, max_attempts=0)


@pytest.mark.asyncio
async def test_hung_destination_lookup_times_out(store, channel, job_factory) -> None:
    queue = NotificationDispatchQueue(store, HangingDestinations(), channel, delivery_timeout=0.05)
    job = await queue.enqueue(job_factory())

    report = await queue.process_queue()

    stored = await queue.get_job(job.job_id)
    assert report.retried == 1
    assert stored.state is JobState.PENDING
    assert "timed out" in stored.last_error
    assert channel.calls == []


def test_pass_lock_must_outlast_one_attempt(store, destinations, channel) -> None:
    with pytest.raises(ValueError):
        NotificationDispatchQueue(store, destinations, channel, delivery_timeout=10, pass_lock_timeout=10)


@pytest.mark.asyncio
async def test_pass_publishes_failed_count(queue, channel, job_factory) -> None:
    channel.outcomes = [TransientTransportError("Bad Gateway")]
    await queue.enqueue(job_factory())
    await queue.enqueue(job_factory(order_id="WC-1002"))

    report = await queue.process_queue()

    assert report.stats.failed == 1
    assert REGISTRY.get_sample_value("ordernotify_jobs", {"state": "failed"}) == 1
    assert REGISTRY.get_sample_value("ordernotify_jobs", {"state": "delivered"}) == 1
