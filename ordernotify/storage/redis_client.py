"""Process-wide redis.asyncio pool shared by the job and destination stores."""

from redis.asyncio import ConnectionPool, Redis

from ordernotify.core.config import get_settings

_pool: ConnectionPool | None = None


async def init_redis_pool(url: str | None = None) -> None:
    """Create the pool once per process.

    Args:
        url: Redis URL, defaults to ``settings.redis_url``
    """
    global _pool
    if _pool is None:
        _pool = ConnectionPool.from_url(
            url or get_settings().redis_url,
            decode_responses=True,
            max_connections=20,
            health_check_interval=30,
            socket_timeout=get_settings().redis_socket_timeout,
        )


async def close_redis_pool() -> None:
    global _pool
    if _pool is not None:
        await _pool.disconnect()
        _pool = None


def get_redis() -> Redis:
    """Get a client bound to the shared pool.

    Raises:
        RuntimeError: If ``init_redis_pool`` has not been awaited
    """
    if _pool is None:
        raise RuntimeError("Redis pool is not initialized, call init_redis_pool() first")
    return Redis(connection_pool=_pool)


class RedisKeys:
    """Key layout under the ``ordernotify:`` prefix."""

    # hash: job_id -> job JSON
    JOBS = "ordernotify:jobs"
    # sorted set: pending job ids scored by enqueue time
    JOBS_PENDING = "ordernotify:jobs:pending"
    # lock held for the duration of one queue pass
    PASS_LOCK = "ordernotify:queue:pass_lock"

    # hash: user_id -> Telegram chat id
    TELEGRAM_CHAT_IDS = "ordernotify:telegram:chat_ids"
