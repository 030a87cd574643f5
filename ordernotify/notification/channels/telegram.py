"""Telegram notification channel."""

from typing import Any

from aiogram import Bot
from aiogram.exceptions import (
    TelegramAPIError,
    TelegramNetworkError,
    TelegramRetryAfter,
    TelegramServerError,
)

from ordernotify.core.config import get_settings
from ordernotify.core.exceptions import PermanentTransportError, TransientTransportError
from ordernotify.core.logging import get_logger
from ordernotify.notification.channels.base import NotificationChannel

logger = get_logger(__name__)


def classify_telegram_error(error: TelegramAPIError) -> TransientTransportError | PermanentTransportError:
    """Map an aiogram error onto the transport error taxonomy.

    Flood control, network and 5xx errors are worth retrying; anything else
    the Bot API rejected (bad request, blocked bot, unknown chat, bad token)
    will not succeed on a later pass.
    """
    if isinstance(error, TelegramRetryAfter):
        return TransientTransportError(
            f"Telegram rate limit, retry after {error.retry_after}s",
            retry_after=float(error.retry_after),
        )
    if isinstance(error, (TelegramNetworkError, TelegramServerError)):
        return TransientTransportError(f"Telegram unavailable: {error.message}")
    return PermanentTransportError(f"Telegram rejected message: {error.message}")


class TelegramChannel(NotificationChannel):
    """Telegram Bot notification channel."""

    def __init__(self, bot: Bot | None = None):
        """Initialize Telegram bot.

        Args:
            bot: Preconfigured bot, built from settings when omitted
        """
        settings = get_settings()
        self._parse_mode = settings.telegram_parse_mode
        self._bot = bot
        if self._bot is None and settings.telegram_bot_token:
            self._bot = Bot(token=settings.telegram_bot_token)

    @property
    def channel_type(self) -> str:
        return "telegram"

    @property
    def configured(self) -> bool:
        return self._bot is not None

    async def send(self, chat_id: str, text: str) -> None:
        """Send message via Telegram Bot.

        Args:
            chat_id: Telegram chat id
            text: Rendered message

        Raises:
            TransientTransportError: Retryable failure
            PermanentTransportError: Bot missing or message rejected
        """
        if not self._bot:
            raise PermanentTransportError("Telegram bot token not configured")

        try:
            await self._bot.send_message(
                chat_id=chat_id,
                text=text,
                parse_mode=self._parse_mode,
            )
        except TelegramAPIError as e:
            error = classify_telegram_error(e)
            logger.warning(
                "Telegram send failed",
                chat_id=chat_id,
                retryable=error.retryable,
                error=str(error),
            )
            raise error from e

        logger.info("Telegram message sent", chat_id=chat_id)

    async def describe(self) -> dict[str, Any]:
        """Return bot identity from getMe."""
        if not self._bot:
            raise PermanentTransportError("Telegram bot token not configured")

        try:
            me = await self._bot.get_me()
        except TelegramAPIError as e:
            raise classify_telegram_error(e) from e

        return {
            "channel": self.channel_type,
            "id": me.id,
            "first_name": me.first_name,
            "username": me.username,
            "can_join_groups": me.can_join_groups,
            "can_read_all_group_messages": me.can_read_all_group_messages,
            "supports_inline_queries": me.supports_inline_queries,
        }

    async def close(self) -> None:
        """Close bot session."""
        if self._bot:
            await self._bot.session.close()
