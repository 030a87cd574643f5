"""Notification delivery error taxonomy."""


class NotificationError(Exception):
    """Base class for notification errors."""


class DestinationNotConfigured(NotificationError):
    """The user has no delivery target (chat id) configured.

    Permanent: a job hitting this is abandoned without retry.
    """

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"No Telegram chat configured for user {user_id}")


class TransportError(NotificationError):
    """Delivery through the messaging transport failed."""

    retryable: bool = False


class TransientTransportError(TransportError):
    """Timeout, rate limit, network or server-side failure. Retried."""

    retryable = True

    def __init__(self, message: str, retry_after: float | None = None):
        self.retry_after = retry_after
        super().__init__(message)


class PermanentTransportError(TransportError):
    """Transport rejected the message for good (bad chat, blocked bot, bad markup)."""


class StoreUnavailable(NotificationError):
    """The job store cannot be read or written.

    Catastrophic: propagates out of a processing pass.
    """
