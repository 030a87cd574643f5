"""Notification dispatch queue with bounded retries."""

import asyncio
import time
from datetime import timedelta

from ordernotify.core.exceptions import (
    DestinationNotConfigured,
    PermanentTransportError,
    StoreUnavailable,
    TransientTransportError,
)
from ordernotify.core.logging import get_logger
from ordernotify.models.notification import (
    AttemptResult,
    JobState,
    NotificationJob,
    PassReport,
    QueueStats,
    utcnow,
)
from ordernotify.notification.channels.base import NotificationChannel
from ordernotify.notification.formatter import render_order_message
from ordernotify.observability.metrics import (
    DELIVERY_ATTEMPTS,
    DELIVERY_LATENCY,
    JOBS_ENQUEUED,
    PASSES,
    observe_stats,
)
from ordernotify.observability.tracing import new_pass_id, pass_scope
from ordernotify.storage.destination_store import DestinationLookup
from ordernotify.storage.job_store import JobStore, PassLease

logger = get_logger(__name__)


class NotificationDispatchQueue:
    """Buffers order notification jobs and delivers them in passes.

    The queue has no scheduler of its own: ``process_queue`` is called by an
    external trigger (periodic worker, cron endpoint, or right after an
    enqueue), and the spacing between triggers is the only retry backoff.
    Only one pass runs at a time.
    """

    def __init__(
        self,
        store: JobStore,
        destinations: DestinationLookup,
        channel: NotificationChannel,
        max_attempts: int = 3,
        delivery_timeout: float = 10.0,
        batch_size: int = 50,
        pass_lock_timeout: float = 300,
    ):
        """Initialize queue.

        Args:
            store: Job collection
            destinations: User id to chat id lookup
            channel: Messaging transport
            max_attempts: Delivery attempts before a job is abandoned
            delivery_timeout: Per-attempt transport timeout in seconds
            batch_size: Maximum pending jobs attempted per pass
            pass_lock_timeout: Expiry of the cross-process pass lock. It is
                renewed before every attempt, so it must outlast one attempt.
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if pass_lock_timeout <= delivery_timeout:
            raise ValueError("pass_lock_timeout must exceed delivery_timeout")
        self._store = store
        self._destinations = destinations
        self._channel = channel
        self._max_attempts = max_attempts
        self._delivery_timeout = delivery_timeout
        self._batch_size = batch_size
        self._pass_lock_timeout = pass_lock_timeout
        self._pass_lock = asyncio.Lock()

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    @property
    def channel(self) -> NotificationChannel:
        return self._channel

    @property
    def is_processing(self) -> bool:
        return self._pass_lock.locked()

    async def enqueue(self, job: NotificationJob) -> NotificationJob:
        """Add a pending job; it is attempted on the next pass.

        Args:
            job: Fully formed job in pending state

        Returns:
            The enqueued job
        """
        if job.state is not JobState.PENDING or job.attempt_count:
            raise ValueError("Only fresh pending jobs can be enqueued")

        await self._store.add(job)
        JOBS_ENQUEUED.labels(kind="update" if job.payload.is_update else "created").inc()

        logger.info(
            "Notification job enqueued",
            job_id=job.job_id,
            user_id=job.destination_user_id,
            order_id=job.payload.order_id,
            is_update=job.payload.is_update,
        )
        return job

    async def get_stats(self) -> QueueStats:
        """Snapshot of job counts. Read-only."""
        return QueueStats.from_jobs(await self._store.list_jobs())

    async def get_job(self, job_id: str) -> NotificationJob | None:
        return await self._store.get(job_id)

    async def list_jobs(self, state: JobState | None = None) -> list[NotificationJob]:
        return await self._store.list_jobs(state)

    async def prune(self, retention_seconds: int) -> int:
        """Drop delivered/abandoned jobs older than the retention window."""
        removed = await self._store.prune(utcnow() - timedelta(seconds=retention_seconds))
        if removed:
            logger.info("Pruned terminal jobs", removed=removed)
        return removed

    async def process_queue(self) -> PassReport:
        """Run one pass over the pending jobs.

        Delivery failures are recorded on the jobs and never raised.

        Returns:
            Report of the pass (``skipped`` if another pass was running)

        Raises:
            StoreUnavailable: The job store could not be read or written
        """
        if self._pass_lock.locked():
            logger.info("Queue pass already in progress, skipping")
            return await self._skipped_report()

        async with self._pass_lock:
            with pass_scope() as pass_id:
                async with self._store.pass_lock(self._pass_lock_timeout) as lease:
                    if lease is None:
                        logger.info("Queue pass running in another process, skipping")
                        return await self._skipped_report(pass_id)

                    try:
                        report = await self._run_pass(pass_id, lease)
                    except Exception:
                        PASSES.labels(result="error").inc()
                        logger.error("Queue pass aborted", exc_info=True)
                        raise

        PASSES.labels(result="lock_lost" if report.lock_lost else "completed").inc()
        observe_stats(report.stats)
        return report

    async def _skipped_report(self, pass_id: str | None = None) -> PassReport:
        PASSES.labels(result="skipped").inc()
        return PassReport(
            pass_id=pass_id or new_pass_id(),
            skipped=True,
            finished_at=utcnow(),
            stats=await self.get_stats(),
        )

    async def _run_pass(self, pass_id: str, lease: PassLease) -> PassReport:
        report = PassReport(pass_id=pass_id)
        await self._recover_interrupted()

        # Jobs enqueued from here on wait for the next pass
        jobs = await self._store.list_pending(self._batch_size)
        logger.info("Starting queue pass", pending=len(jobs))

        for job in jobs:
            # Another process may take over once the lock lapses
            if not await lease.renew():
                report.lock_lost = True
                logger.warning("Pass lock lost, stopping pass", remaining=len(jobs) - report.attempted)
                break
            result = await self._attempt(job)
            report.record(result)
            DELIVERY_ATTEMPTS.labels(outcome=result.value).inc()

        report.finished_at = utcnow()
        report.stats = await self.get_stats()
        logger.info(
            "Queue pass completed",
            attempted=report.attempted,
            delivered=report.delivered,
            retried=report.retried,
            abandoned=report.abandoned,
        )
        return report

    async def _recover_interrupted(self) -> None:
        """Settle jobs left in flight by a pass that died mid-attempt.

        Passes are exclusive, so any in-flight job seen here belongs to an
        earlier pass that raised or crashed.
        """
        for job in await self._store.list_jobs(JobState.IN_FLIGHT):
            self._settle_transient(job, "Attempt interrupted before completion")
            await self._store.save(job)
            logger.warning(
                "Recovered interrupted job",
                job_id=job.job_id,
                state=job.state.value,
                attempt_count=job.attempt_count,
            )

    def _settle_transient(self, job: NotificationJob, error: str) -> AttemptResult:
        if job.can_retry(self._max_attempts):
            job.mark_for_retry(error)
            return AttemptResult.RETRY
        job.mark_abandoned(error)
        return AttemptResult.ABANDONED

    async def _attempt(self, job: NotificationJob) -> AttemptResult:
        """Make one delivery attempt and persist the outcome.

        Store errors propagate; every delivery error becomes a result.
        """
        job.start_attempt()
        await self._store.save(job)
        log = logger.bind(job_id=job.job_id, attempt=job.attempt_count)

        try:
            await self._deliver(job)
        except DestinationNotConfigured as e:
            job.mark_abandoned(str(e))
            result = AttemptResult.ABANDONED
        except PermanentTransportError as e:
            job.mark_abandoned(str(e))
            result = AttemptResult.ABANDONED
        except TransientTransportError as e:
            result = self._settle_transient(job, str(e))
        except StoreUnavailable:
            raise
        except Exception as e:
            log.error("Unexpected delivery error", error=str(e), exc_info=True)
            result = self._settle_transient(job, f"Unexpected error: {e}")
        else:
            job.mark_delivered()
            result = AttemptResult.DELIVERED

        await self._store.save(job)

        if result is AttemptResult.DELIVERED:
            log.info("Notification delivered")
        elif result is AttemptResult.RETRY:
            log.info("Notification will be retried", error=job.last_error)
        else:
            log.warning("Notification abandoned", error=job.last_error)
        return result

    async def _deliver(self, job: NotificationJob) -> None:
        """Look up the destination and send, both within the attempt timeout."""
        started = time.monotonic()
        try:
            await asyncio.wait_for(self._send(job), timeout=self._delivery_timeout)
        except asyncio.TimeoutError as e:
            raise TransientTransportError(
                f"Delivery timed out after {self._delivery_timeout}s"
            ) from e
        finally:
            DELIVERY_LATENCY.observe(time.monotonic() - started)

    async def _send(self, job: NotificationJob) -> None:
        chat_id = await self._destinations.get_chat_id(job.destination_user_id)
        if not chat_id:
            raise DestinationNotConfigured(job.destination_user_id)
        await self._channel.send(chat_id, render_order_message(job.payload))

    async def close(self) -> None:
        await self._channel.close()
