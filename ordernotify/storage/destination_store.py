"""Telegram destination lookup (per-user chat ids)."""

from abc import ABC, abstractmethod

from redis.asyncio import Redis
from redis.exceptions import RedisError

from ordernotify.core.exceptions import StoreUnavailable
from ordernotify.storage.redis_client import RedisKeys, get_redis


class DestinationLookup(ABC):
    """Maps a seller's user id to the chat their notifications go to."""

    @abstractmethod
    async def get_chat_id(self, user_id: str) -> str | None:
        """Return the configured chat id, or None when not configured."""

    @abstractmethod
    async def set_chat_id(self, user_id: str, chat_id: str) -> None:
        """Configure the chat id for a user."""

    @abstractmethod
    async def remove(self, user_id: str) -> bool:
        """Remove a user's chat id.

        Returns:
            True if a chat id was configured
        """


class MemoryDestinationLookup(DestinationLookup):
    """Process-local destination settings."""

    def __init__(self, chat_ids: dict[str, str] | None = None):
        self._chat_ids: dict[str, str] = dict(chat_ids or {})

    async def get_chat_id(self, user_id: str) -> str | None:
        return self._chat_ids.get(user_id)

    async def set_chat_id(self, user_id: str, chat_id: str) -> None:
        self._chat_ids[user_id] = chat_id

    async def remove(self, user_id: str) -> bool:
        return self._chat_ids.pop(user_id, None) is not None


class RedisDestinationLookup(DestinationLookup):
    """Destination settings stored in a Redis hash."""

    def __init__(self, redis: Redis | None = None):
        self._redis = redis

    @property
    def redis(self) -> Redis:
        return self._redis or get_redis()

    async def get_chat_id(self, user_id: str) -> str | None:
        try:
            chat_id = await self.redis.hget(RedisKeys.TELEGRAM_CHAT_IDS, user_id)
        except RedisError as e:
            raise StoreUnavailable(f"Destination store unavailable: {e}") from e
        return chat_id or None

    async def set_chat_id(self, user_id: str, chat_id: str) -> None:
        try:
            await self.redis.hset(RedisKeys.TELEGRAM_CHAT_IDS, user_id, chat_id)
        except RedisError as e:
            raise StoreUnavailable(f"Destination store unavailable: {e}") from e

    async def remove(self, user_id: str) -> bool:
        try:
            removed = await self.redis.hdel(RedisKeys.TELEGRAM_CHAT_IDS, user_id)
        except RedisError as e:
            raise StoreUnavailable(f"Destination store unavailable: {e}") from e
        return removed > 0
