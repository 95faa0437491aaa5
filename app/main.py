"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.api.v1.router import api_router
from app.core.config import Settings, settings
from app.core.errors import (
    NotFoundError,
    PersistenceError,
    SchedulerError,
    SchedulerValidationError,
    StateConflictError,
)
from app.core.logging import setup_logging
from app.db.init_db import create_tables, init_db
from app.db.session import AsyncSessionLocal
from app.queueing.events import BroadcastChangeNotifier, ChangeNotifier
from app.queueing.store import QueueStore
from app.rules.engine import DepartmentRouter
from app.services.directory import SqlDirectory
from app.services.notifications import CriticalAlertService
from app.services.queue_repository import SqlQueueRepository
from app.services.scheduler import QueueScheduler

# Setup logging
setup_logging()
logger = logging.getLogger(__name__)

SERVICE_NAME = "Ward Queue API"
SERVICE_VERSION = "0.1.0"

# Scheduler error class -> HTTP status, most specific first
ERROR_STATUS: list[tuple[type[SchedulerError], int]] = [
    (SchedulerValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (StateConflictError, status.HTTP_409_CONFLICT),
    (PersistenceError, status.HTTP_503_SERVICE_UNAVAILABLE),
]


def status_for(exc: SchedulerError) -> int:
    for error_class, code in ERROR_STATUS:
        if isinstance(exc, error_class):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def build_scheduler(
    config: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    notifier: ChangeNotifier,
    router: DepartmentRouter,
) -> QueueScheduler:
    """Wire the scheduler to the database and outbound channels."""
    return QueueScheduler(
        store=QueueStore(SqlQueueRepository(session_factory)),
        directory=SqlDirectory(session_factory),
        notifier=notifier,
        alerts=CriticalAlertService.from_settings(config),
        router=router,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup and shutdown events."""
    # Startup
    logger.info(f"Starting {SERVICE_NAME} (env={settings.env})")

    router = DepartmentRouter(settings.routing_ruleset)
    router.load_ruleset()
    logger.info(
        f"Loaded routing ruleset {router.table.id} v{router.table.version} "
        f"({router.ruleset_hash[:12]})"
    )

    if settings.init_db_on_startup:
        logger.info("Initializing database...")
        await create_tables()
        if settings.seed_departments:
            async with AsyncSessionLocal() as session:
                await init_db(session, router.departments)

    notifier = BroadcastChangeNotifier(settings.event_subscriber_queue_size)
    app.state.notifier = notifier
    app.state.scheduler = build_scheduler(settings, AsyncSessionLocal, notifier, router)

    yield

    # Shutdown
    await app.state.scheduler.shutdown()
    logger.info(f"Shutting down {SERVICE_NAME}")


# Create FastAPI application
app = FastAPI(
    title=SERVICE_NAME,
    description="Hospital department triage and queue scheduling",
    version=SERVICE_VERSION,
    docs_url="/docs" if settings.is_dev else None,
    redoc_url="/redoc" if settings.is_dev else None,
    openapi_url="/openapi.json" if settings.is_dev else None,
    lifespan=lifespan,
)

# CORS middleware (configure appropriately for production)
if settings.is_dev:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:3000", "http://localhost:3001"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


@app.exception_handler(SchedulerError)
async def scheduler_exception_handler(request: Request, exc: SchedulerError) -> JSONResponse:
    """Map scheduler errors to status codes with a structured body."""
    code = status_for(exc)
    if code >= 500:
        logger.error(f"{exc.kind} on {request.method} {request.url.path}: {exc.message}")
    else:
        logger.info(f"{exc.kind} on {request.method} {request.url.path}: {exc.message}")

    return JSONResponse(status_code=code, content=exc.to_dict())


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unhandled exceptions."""
    logger.exception(f"Unhandled exception: {exc}")

    # Don't expose internal errors in production
    if settings.is_prod:
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Internal server error"},
        )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": str(exc)},
    )


# Include API router
app.include_router(api_router, prefix="/api/v1")


# Root endpoint
@app.get("/", include_in_schema=False)
async def root() -> dict:
    """Root endpoint with service info."""
    return {
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "docs": "/docs" if settings.is_dev else "Disabled in production",
    }
