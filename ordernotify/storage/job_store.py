"""Notification job storage (in-memory and Redis)."""

import asyncio
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager, contextmanager
from datetime import datetime
from typing import AsyncIterator, Iterator

from pydantic import ValidationError
from redis.asyncio import Redis
from redis.asyncio.lock import Lock
from redis.exceptions import LockError, RedisError

from ordernotify.core.exceptions import StoreUnavailable
from ordernotify.core.logging import get_logger
from ordernotify.models.notification import JobState, NotificationJob
from ordernotify.storage.redis_client import RedisKeys, get_redis

logger = get_logger(__name__)


class JobStore(ABC):
    """Collection of notification jobs owned by one queue.

    Reads return private copies; a changed job is persisted with ``save``.
    """

    @abstractmethod
    async def add(self, job: NotificationJob) -> None:
        """Insert a new job."""

    @abstractmethod
    async def save(self, job: NotificationJob) -> None:
        """Persist the current state of an existing job."""

    @abstractmethod
    async def get(self, job_id: str) -> NotificationJob | None:
        """Get a job by ID."""

    @abstractmethod
    async def list_pending(self, limit: int) -> list[NotificationJob]:
        """Pending jobs, oldest first."""

    @abstractmethod
    async def list_jobs(self, state: JobState | None = None) -> list[NotificationJob]:
        """All jobs (optionally in one state), oldest first."""

    @abstractmethod
    async def prune(self, before: datetime) -> int:
        """Delete terminal jobs last updated before ``before``.

        Returns:
            Number of jobs removed
        """

    @asynccontextmanager
    async def pass_lock(self, timeout: float) -> AsyncIterator["PassLease | None"]:
        """Guard a processing pass across processes sharing this store.

        Args:
            timeout: Seconds the lock lives without a renewal

        Yields:
            A lease if the caller may run a pass, None otherwise
        """
        yield PassLease()


class PassLease:
    """Ownership of the pass lock, held for the duration of one pass."""

    async def renew(self) -> bool:
        """Restart the lock expiry.

        Returns:
            False if the lock was lost and the pass must stop
        """
        return True


class MemoryJobStore(JobStore):
    """Process-local job store."""

    def __init__(self) -> None:
        self._jobs: dict[str, NotificationJob] = {}
        self._lock = asyncio.Lock()

    async def add(self, job: NotificationJob) -> None:
        async with self._lock:
            if job.job_id in self._jobs:
                raise ValueError(f"Job {job.job_id} already exists")
            self._jobs[job.job_id] = job.model_copy(deep=True)

    async def save(self, job: NotificationJob) -> None:
        async with self._lock:
            if job.job_id not in self._jobs:
                raise KeyError(job.job_id)
            self._jobs[job.job_id] = job.model_copy(deep=True)

    async def get(self, job_id: str) -> NotificationJob | None:
        job = self._jobs.get(job_id)
        return job.model_copy(deep=True) if job else None

    async def list_pending(self, limit: int) -> list[NotificationJob]:
        jobs = await self.list_jobs(JobState.PENDING)
        return jobs[:limit]

    async def list_jobs(self, state: JobState | None = None) -> list[NotificationJob]:
        # Copy the values first so concurrent adds don't disturb iteration
        snapshot = list(self._jobs.values())
        jobs = [
            job.model_copy(deep=True)
            for job in snapshot
            if state is None or job.state is state
        ]
        jobs.sort(key=lambda j: j.enqueued_at)
        return jobs

    async def prune(self, before: datetime) -> int:
        async with self._lock:
            stale = [
                job_id
                for job_id, job in self._jobs.items()
                if job.state.is_terminal and job.updated_at < before
            ]
            for job_id in stale:
                del self._jobs[job_id]
        return len(stale)


@contextmanager
def _redis_errors() -> Iterator[None]:
    """Translate Redis failures into StoreUnavailable."""
    try:
        yield
    except RedisError as e:
        raise StoreUnavailable(f"Job store unavailable: {e}") from e


class RedisJobStore(JobStore):
    """Job store shared between processes through Redis.

    Jobs are JSON documents in one hash; a sorted set scored by enqueue time
    indexes the pending ones.
    """

    def __init__(self, redis: Redis | None = None):
        self._redis = redis

    @property
    def redis(self) -> Redis:
        return self._redis or get_redis()

    async def add(self, job: NotificationJob) -> None:
        # Document and index entry are written in one MULTI/EXEC
        with _redis_errors():
            async with self.redis.pipeline(transaction=True) as pipe:
                pipe.hsetnx(RedisKeys.JOBS, job.job_id, job.model_dump_json())
                if job.state is JobState.PENDING:
                    pipe.zadd(
                        RedisKeys.JOBS_PENDING,
                        {job.job_id: job.enqueued_at.timestamp()},
                        nx=True,
                    )
                created, *_ = await pipe.execute()
        if not created:
            raise ValueError(f"Job {job.job_id} already exists")

    async def save(self, job: NotificationJob) -> None:
        with _redis_errors():
            async with self.redis.pipeline(transaction=True) as pipe:
                pipe.hset(RedisKeys.JOBS, job.job_id, job.model_dump_json())
                if job.state is JobState.PENDING:
                    pipe.zadd(RedisKeys.JOBS_PENDING, {job.job_id: job.enqueued_at.timestamp()})
                else:
                    pipe.zrem(RedisKeys.JOBS_PENDING, job.job_id)
                await pipe.execute()

    async def get(self, job_id: str) -> NotificationJob | None:
        with _redis_errors():
            data = await self.redis.hget(RedisKeys.JOBS, job_id)
        return self._load(job_id, data) if data else None

    async def list_pending(self, limit: int) -> list[NotificationJob]:
        with _redis_errors():
            job_ids = await self.redis.zrange(RedisKeys.JOBS_PENDING, 0, limit - 1)
            if not job_ids:
                return []
            values = await self.redis.hmget(RedisKeys.JOBS, job_ids)

        jobs = []
        stale = []
        for job_id, data in zip(job_ids, values):
            job = self._load(job_id, data) if data else None
            if job and job.state is JobState.PENDING:
                jobs.append(job)
            else:
                stale.append(job_id)

        if stale:
            # Index entries whose document is gone, corrupt or no longer pending
            with _redis_errors():
                await self.redis.zrem(RedisKeys.JOBS_PENDING, *stale)
        return jobs

    async def list_jobs(self, state: JobState | None = None) -> list[NotificationJob]:
        with _redis_errors():
            entries = await self.redis.hgetall(RedisKeys.JOBS)

        jobs = []
        for job_id, data in entries.items():
            job = self._load(job_id, data)
            if job and (state is None or job.state is state):
                jobs.append(job)
        jobs.sort(key=lambda j: j.enqueued_at)
        return jobs

    async def prune(self, before: datetime) -> int:
        stale = [
            job.job_id
            for job in await self.list_jobs()
            if job.state.is_terminal and job.updated_at < before
        ]
        if stale:
            with _redis_errors():
                await self.redis.hdel(RedisKeys.JOBS, *stale)
        return len(stale)

    @asynccontextmanager
    async def pass_lock(self, timeout: float) -> AsyncIterator[PassLease | None]:
        lock = self.redis.lock(RedisKeys.PASS_LOCK, timeout=timeout)
        with _redis_errors():
            acquired = await lock.acquire(blocking=False)
        if not acquired:
            yield None
            return

        try:
            yield _RedisPassLease(lock)
        finally:
            with _redis_errors():
                try:
                    await lock.release()
                except LockError:
                    logger.warning("Pass lock lost before release", timeout=timeout)

    @staticmethod
    def _load(job_id: str, data: str) -> NotificationJob | None:
        try:
            return NotificationJob.model_validate_json(data)
        except ValidationError as e:
            logger.error("Corrupt job document skipped", job_id=job_id, error=str(e))
            return None


class _RedisPassLease(PassLease):
    """Lease backed by a redis-py ``Lock``; renewal resets its TTL."""

    def __init__(self, lock: Lock):
        self._lock = lock

    async def renew(self) -> bool:
        try:
            await self._lock.reacquire()
        except LockError as e:
            # Expired, or taken over by another process
            logger.warning("Pass lock lost", error=str(e))
            return False
        except RedisError as e:
            raise StoreUnavailable(f"Job store unavailable: {e}") from e
        return True
