"""Base class for notification transports."""

from abc import ABC, abstractmethod
from typing import Any


class NotificationChannel(ABC):
    """Abstract messaging transport.

    ``send`` returns normally on delivery and raises
    ``TransientTransportError`` or ``PermanentTransportError`` otherwise.
    """

    @property
    @abstractmethod
    def channel_type(self) -> str:
        """Return channel type identifier."""
        pass

    @abstractmethod
    async def send(self, chat_id: str, text: str) -> None:
        """Deliver a rendered message to a destination.

        Args:
            chat_id: Destination handle
            text: Rendered message content
        """
        pass

    async def describe(self) -> dict[str, Any]:
        """Return transport identity details. Override if supported."""
        return {"channel": self.channel_type}

    async def close(self) -> None:
        """Clean up resources. Override if needed."""
        pass
