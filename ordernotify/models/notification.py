"""Notification job domain models."""

import uuid
from collections.abc import Iterable
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def new_job_id() -> str:
    """Generate a job identifier."""
    return f"notify_{uuid.uuid4().hex[:12]}"


class JobState(str, Enum):
    """Notification job state."""

    PENDING = "pending"
    IN_FLIGHT = "in_flight"
    DELIVERED = "delivered"
    ABANDONED = "abandoned"

    @property
    def is_terminal(self) -> bool:
        return self in (JobState.DELIVERED, JobState.ABANDONED)


class AttemptResult(str, Enum):
    """Outcome of one delivery attempt."""

    DELIVERED = "delivered"
    RETRY = "retry"
    ABANDONED = "abandoned"


class OrderItem(BaseModel):
    """Order line item shown in the notification."""

    product_name: str = Field(..., min_length=1, description="Product name")
    quantity: int = Field(default=1, ge=0, description="Ordered quantity")
    price: Decimal = Field(default=Decimal("0"), description="Unit price")


class OrderNotification(BaseModel):
    """Order event payload rendered into a Telegram message."""

    order_id: str = Field(..., min_length=1, description="External (storefront) order id")
    customer_name: str = Field(default="", description="Customer full name")
    customer_email: str = Field(default="", description="Customer email")
    total_amount: Decimal = Field(default=Decimal("0"), description="Order total")
    currency: str = Field(default="EUR", description="ISO currency code")
    status: str = Field(..., min_length=1, description="Current order status")
    previous_status: str | None = Field(
        default=None,
        description="Status before the change (status updates only)",
    )
    created_at: datetime = Field(default_factory=utcnow, description="Order creation time")
    items: list[OrderItem] = Field(default_factory=list, description="Line items")
    is_update: bool = Field(
        default=False,
        description="True for status changes, False for new orders",
    )
    source: str = Field(default="WooCommerce", description="Storefront integration name")


class NotificationJob(BaseModel):
    """One notification delivery unit tied to one order event."""

    job_id: str = Field(default_factory=new_job_id, description="Job unique identifier")
    destination_user_id: str = Field(..., min_length=1, description="Seller owning the notification")
    payload: OrderNotification
    state: JobState = Field(default=JobState.PENDING)
    attempt_count: int = Field(default=0, ge=0, description="Delivery attempts made")
    last_error: str | None = Field(default=None, description="Last failure reason")
    enqueued_at: datetime = Field(default_factory=utcnow)
    last_attempt_at: datetime | None = None
    updated_at: datetime = Field(default_factory=utcnow)

    def can_retry(self, max_attempts: int) -> bool:
        """Check if another attempt is allowed under the ceiling."""
        return self.attempt_count < max_attempts

    def _transition(self, allowed_from: JobState, target: JobState) -> None:
        if self.state is not allowed_from:
            raise ValueError(
                f"Job {self.job_id} cannot move from {self.state.value} to {target.value}"
            )
        self.state = target
        self.updated_at = utcnow()

    def start_attempt(self) -> None:
        """pending -> in_flight, counting the attempt."""
        self._transition(JobState.PENDING, JobState.IN_FLIGHT)
        self.attempt_count += 1
        self.last_attempt_at = self.updated_at

    def mark_delivered(self) -> None:
        self._transition(JobState.IN_FLIGHT, JobState.DELIVERED)
        self.last_error = None

    def mark_for_retry(self, error: str) -> None:
        self._transition(JobState.IN_FLIGHT, JobState.PENDING)
        self.last_error = error

    def mark_abandoned(self, error: str) -> None:
        self._transition(JobState.IN_FLIGHT, JobState.ABANDONED)
        self.last_error = error


class QueueStats(BaseModel):
    """Aggregate job counts, derived from the job set on demand."""

    pending: int = 0
    in_flight: int = 0
    delivered: int = 0
    failed: int = Field(default=0, description="Pending jobs with at least one failed attempt")
    abandoned: int = 0
    total_processed: int = Field(default=0, description="Jobs in a terminal state")

    @classmethod
    def from_jobs(cls, jobs: Iterable[NotificationJob]) -> "QueueStats":
        stats = cls()
        for job in jobs:
            if job.state is JobState.PENDING:
                stats.pending += 1
                if job.attempt_count > 0:
                    stats.failed += 1
            elif job.state is JobState.IN_FLIGHT:
                stats.in_flight += 1
            elif job.state is JobState.DELIVERED:
                stats.delivered += 1
            elif job.state is JobState.ABANDONED:
                stats.abandoned += 1
        stats.total_processed = stats.delivered + stats.abandoned
        return stats


class PassReport(BaseModel):
    """Summary of one processing pass."""

    pass_id: str
    skipped: bool = Field(default=False, description="Another pass was already running")
    lock_lost: bool = Field(default=False, description="Stopped early after losing the pass lock")
    attempted: int = 0
    delivered: int = 0
    retried: int = 0
    abandoned: int = 0
    started_at: datetime = Field(default_factory=utcnow)
    finished_at: datetime | None = None
    stats: QueueStats = Field(default_factory=QueueStats)

    def record(self, result: AttemptResult) -> None:
        self.attempted += 1
        if result is AttemptResult.DELIVERED:
            self.delivered += 1
        elif result is AttemptResult.RETRY:
            self.retried += 1
        else:
            self.abandoned += 1
