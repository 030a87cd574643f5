"""FastAPI application entry point."""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ordernotify.api.routes import notifications, queue, telegram
from ordernotify.core.config import get_settings
from ordernotify.core.exceptions import (
    DestinationNotConfigured,
    StoreUnavailable,
    TransportError,
)
from ordernotify.core.logging import get_logger, setup_logging
from ordernotify.notification.factory import build_queue, build_stores
from ordernotify.notification.worker import QueueWorker
from ordernotify.storage.redis_client import close_redis_pool, init_redis_pool

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan manager."""
    settings = get_settings()

    # Startup
    setup_logging(settings)
    logger.info("Starting application", app_name=settings.app_name, version=settings.app_version)

    if settings.queue_store == "redis":
        await init_redis_pool()
        logger.info("Redis connection pool initialized")

    store, destinations = build_stores(settings)
    notification_queue = build_queue(settings, store, destinations)
    app.state.queue = notification_queue
    app.state.destinations = destinations
    app.state.channel = notification_queue.channel

    # With the memory store the API process is the only one holding jobs,
    # so it also runs the periodic trigger.
    worker_task = None
    worker = None
    if settings.queue_store == "memory" and settings.notification_process_interval:
        worker = QueueWorker(
            notification_queue,
            interval=settings.notification_process_interval,
            retention_seconds=settings.notification_retention_seconds,
        )
        worker_task = asyncio.create_task(worker.start())

    yield

    # Shutdown
    logger.info("Shutting down application")
    if worker and worker_task:
        worker.stop()
        await worker_task
    await notification_queue.close()
    await close_redis_pool()


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Order notification dispatch service",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(notifications.router, prefix="/api/v1")
    app.include_router(queue.router, prefix="/api/v1")
    app.include_router(telegram.router, prefix="/api/v1")

    # Error response handlers
    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        detail = exc.detail
        content = {
            "code": exc.status_code,
            "message": detail if isinstance(detail, str) else "HTTP error",
            "data": None if isinstance(detail, str) else detail,
        }
        return JSONResponse(status_code=exc.status_code, content=content)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request,
        exc: RequestValidationError,
    ) -> JSONResponse:
        return JSONResponse(
            status_code=422,
            content={
                "code": 422,
                "message": "Validation error",
                "data": jsonable_encoder(exc.errors()),
            },
        )

    @app.exception_handler(DestinationNotConfigured)
    async def destination_exception_handler(
        request: Request,
        exc: DestinationNotConfigured,
    ) -> JSONResponse:
        return JSONResponse(
            status_code=404,
            content={"code": 404, "message": str(exc), "data": {"user_id": exc.user_id}},
        )

    @app.exception_handler(TransportError)
    async def transport_exception_handler(request: Request, exc: TransportError) -> JSONResponse:
        logger.warning("Transport error", path=request.url.path, error=str(exc))
        return JSONResponse(
            status_code=502,
            content={
                "code": 502,
                "message": str(exc),
                "data": {"retryable": exc.retryable},
            },
        )

    @app.exception_handler(StoreUnavailable)
    async def store_exception_handler(request: Request, exc: StoreUnavailable) -> JSONResponse:
        logger.error("Store unavailable", path=request.url.path, error=str(exc))
        return JSONResponse(
            status_code=503,
            content={
                "code": 503,
                "message": "Notification store unavailable",
                "data": str(exc) if settings.debug else None,
            },
        )

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error(
            "Unhandled exception",
            exc_info=exc,
            path=request.url.path,
            method=request.method,
        )
        return JSONResponse(
            status_code=500,
            content={
                "code": 500,
                "message": "Internal server error",
                "data": str(exc) if settings.debug else None,
            },
        )

    # Health check endpoint
    @app.get("/health")
    async def health_check() -> dict:
        """Health check endpoint."""
        return {"status": "ok", "version": settings.app_version}

    return app


# Application instance for uvicorn
app = create_app()
