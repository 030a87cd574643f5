"""API dependency injection."""

from typing import Annotated

from fastapi import Depends, Query, Request

from ordernotify.notification.channels.base import NotificationChannel
from ordernotify.notification.dispatcher import NotificationDispatcher
from ordernotify.notification.queue import NotificationDispatchQueue
from ordernotify.schemas.common import PaginationParams
from ordernotify.storage.destination_store import DestinationLookup


def get_queue(request: Request) -> NotificationDispatchQueue:
    """Get the process-wide queue built at startup."""
    return request.app.state.queue


def get_destinations(request: Request) -> DestinationLookup:
    """Get the destination lookup built at startup."""
    return request.app.state.destinations


def get_channel(request: Request) -> NotificationChannel:
    """Get the messaging transport built at startup."""
    return request.app.state.channel


def get_dispatcher(
    queue: Annotated[NotificationDispatchQueue, Depends(get_queue)],
) -> NotificationDispatcher:
    """Get a dispatcher bound to the queue."""
    return NotificationDispatcher(queue)


# Type aliases for dependency injection
QueueDep = Annotated[NotificationDispatchQueue, Depends(get_queue)]
DestinationsDep = Annotated[DestinationLookup, Depends(get_destinations)]
ChannelDep = Annotated[NotificationChannel, Depends(get_channel)]
DispatcherDep = Annotated[NotificationDispatcher, Depends(get_dispatcher)]


def get_pagination(
    page: int = Query(default=1, ge=1, description="Page number"),
    page_size: int = Query(default=20, ge=1, le=100, description="Items per page"),
) -> PaginationParams:
    """Get pagination parameters from query."""
    return PaginationParams(page=page, page_size=page_size)


PaginationDep = Annotated[PaginationParams, Depends(get_pagination)]
