"""Notification queue trigger and inspection routes."""

from typing import Literal

from fastapi import APIRouter, HTTPException, Query

from ordernotify.api.deps import PaginationDep, QueueDep
from ordernotify.core.logging import get_logger
from ordernotify.models.notification import JobState, QueueStats
from ordernotify.schemas.common import APIResponse, PaginatedResponse
from ordernotify.schemas.notification import JobResponse, ProcessResponse

logger = get_logger(__name__)

router = APIRouter(prefix="/queue", tags=["queue"])


@router.get("/stats", response_model=APIResponse[QueueStats])
async def get_queue_stats(queue: QueueDep) -> APIResponse[QueueStats]:
    """Get job counts per state."""
    return APIResponse(data=await queue.get_stats())


@router.post("/process", response_model=APIResponse[ProcessResponse])
async def process_queue(
    queue: QueueDep,
    triggered_by: Literal["cron", "manual"] = Query(
        default="manual",
        description="Who triggered the pass",
    ),
) -> APIResponse[ProcessResponse]:
    """Run one processing pass and echo the resulting stats.

    Meant for a cron job or a manual trigger. A request arriving while a pass
    is running returns immediately with ``report.skipped`` set.
    """
    logger.info("Queue pass triggered", triggered_by=triggered_by)
    report = await queue.process_queue()

    return APIResponse(
        message="Queue pass skipped" if report.skipped else "Queue processed",
        data=ProcessResponse(
            triggered_by=triggered_by,
            report=report,
            stats=report.stats,
        ),
    )


@router.get("/jobs", response_model=PaginatedResponse[JobResponse])
async def list_jobs(
    queue: QueueDep,
    pagination: PaginationDep,
    state: JobState | None = Query(default=None, description="Filter by job state"),
    user_id: str | None = Query(default=None, description="Filter by destination user"),
) -> PaginatedResponse[JobResponse]:
    """List jobs, oldest first."""
    jobs = await queue.list_jobs(state)
    if user_id:
        jobs = [j for j in jobs if j.destination_user_id == user_id]

    page = [JobResponse.model_validate(j.model_dump()) for j in pagination.select(jobs)]
    return PaginatedResponse[JobResponse].for_page(page, total=len(jobs), pagination=pagination)


@router.get("/jobs/{job_id}", response_model=APIResponse[JobResponse])
async def get_job(job_id: str, queue: QueueDep) -> APIResponse[JobResponse]:
    """Get a single job by ID."""
    job = await queue.get_job(job_id)
    if not job:
        raise HTTPException(status_code=404, detail=f"Job {job_id} not found")

    return APIResponse(data=JobResponse.model_validate(job.model_dump()))
