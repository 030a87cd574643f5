"""Order notification enqueue routes."""

from fastapi import APIRouter, BackgroundTasks

from ordernotify.api.deps import DispatcherDep, QueueDep
from ordernotify.core.config import get_settings
from ordernotify.core.exceptions import StoreUnavailable
from ordernotify.core.logging import get_logger
from ordernotify.models.event import OrderEvent
from ordernotify.notification.queue import NotificationDispatchQueue
from ordernotify.schemas.common import APIResponse
from ordernotify.schemas.notification import JobCreateResponse, OrderNotificationCreate

logger = get_logger(__name__)

router = APIRouter(prefix="/notifications", tags=["notifications"])


async def process_in_background(queue: NotificationDispatchQueue) -> None:
    """Run a pass after the response has been sent."""
    try:
        await queue.process_queue()
    except StoreUnavailable as e:
        logger.error("Background pass failed, store unavailable", error=str(e))


@router.post("/orders", response_model=APIResponse[JobCreateResponse], status_code=202)
async def enqueue_order_notification(
    data: OrderNotificationCreate,
    dispatcher: DispatcherDep,
    queue: QueueDep,
    background_tasks: BackgroundTasks,
) -> APIResponse[JobCreateResponse]:
    """Queue a Telegram notification for an order event.

    Called by the order webhook handlers; returns as soon as the job is
    stored, delivery happens on a later pass.
    """
    job = await dispatcher.dispatch(OrderEvent(user_id=data.user_id, order=data.order))

    if get_settings().notification_process_on_enqueue:
        background_tasks.add_task(process_in_background, queue)

    return APIResponse(
        message="Notification queued",
        data=JobCreateResponse(
            job_id=job.job_id,
            state=job.state,
            enqueued_at=job.enqueued_at,
        ),
    )
