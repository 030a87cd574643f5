"""Response envelopes shared by all routes.

Successful responses use ``code == 0``; error responses produced by the
exception handlers in ``api.app`` use the HTTP status as ``code``.
"""

from typing import Generic, Sequence, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


class APIResponse(BaseModel, Generic[T]):
    """Envelope for a single payload."""

    code: int = Field(default=0, description="0 on success")
    message: str = Field(default="success")
    data: T | None = None


class PaginationParams(BaseModel):
    """Page selection from the query string."""

    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=20, ge=1, le=100)

    def select(self, items: Sequence[T]) -> list[T]:
        """Return the items on the requested page."""
        start = (self.page - 1) * self.page_size
        return list(items[start : start + self.page_size])


class PaginatedResponse(BaseModel, Generic[T]):
    """Envelope for one page of a list, with the unpaged total."""

    code: int = 0
    message: str = "success"
    data: list[T] = Field(default_factory=list)
    total: int = Field(default=0, ge=0, description="Items across all pages")
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=20, ge=1, le=100)

    @classmethod
    def for_page(
        cls,
        data: list[T],
        total: int,
        pagination: PaginationParams,
    ) -> "PaginatedResponse[T]":
        return cls(data=data, total=total, page=pagination.page, page_size=pagination.page_size)
