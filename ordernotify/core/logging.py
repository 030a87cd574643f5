"""Structured logging configuration using structlog."""

import logging
import sys
from typing import Any

import structlog
from structlog.types import Processor

from ordernotify.core.config import Settings, get_settings

# Library loggers that are noisy at INFO
_QUIET_LOGGERS = ("aiogram.event", "aio_pika", "aiormq", "httpx")


def _renderer(debug: bool) -> list[Processor]:
    if debug:
        return [structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())]
    return [
        structlog.processors.dict_tracebacks,
        structlog.processors.JSONRenderer(),
    ]


def setup_logging(settings: Settings | None = None) -> None:
    """Configure structlog for the API and worker processes.

    Debug mode renders colored console lines; otherwise one JSON object per
    line. Standard library loggers (aiogram, aio-pika, uvicorn) share the
    configured level.

    Args:
        settings: Settings to read, defaults to the cached instance
    """
    settings = settings or get_settings()
    level: int = getattr(logging, settings.log_level)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            *_renderer(settings.debug),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(levelname)s %(name)s: %(message)s", stream=sys.stdout, level=level)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


def get_logger(name: str | None = None, **initial_values: Any) -> structlog.stdlib.BoundLogger:
    """Get a logger, optionally with bound context.

    Args:
        name: Logger name, usually ``__name__``
        **initial_values: Key-value pairs added to every event

    Returns:
        Bound logger instance
    """
    logger = structlog.get_logger(name)
    return logger.bind(**initial_values) if initial_values else logger
