"""Pass ids bound into the structlog context.

Every event logged while a queue pass runs carries its ``pass_id``, so the
attempts of one pass can be followed across the worker and API processes.
"""

import uuid
from contextlib import contextmanager
from typing import Iterator

import structlog


def new_pass_id() -> str:
    """Generate a pass id."""
    return f"pass_{uuid.uuid4().hex[:12]}"


@contextmanager
def pass_scope(pass_id: str | None = None) -> Iterator[str]:
    """Bind a pass id to every log event emitted inside the block.

    Args:
        pass_id: Id to bind, a new one when omitted

    Yields:
        The bound pass id
    """
    pass_id = pass_id or new_pass_id()
    with structlog.contextvars.bound_contextvars(pass_id=pass_id):
        yield pass_id
