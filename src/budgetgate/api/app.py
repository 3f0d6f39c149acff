"""FastAPI application exposing budget admission control."""

import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request

from budgetgate import __version__
from budgetgate.api.routes import router as api_router
from budgetgate.budget.callers import CallerTracker
from budgetgate.budget.service import AdmissionController
from budgetgate.budget.types import derived_rules_for
from budgetgate.config import Settings, get_settings
from budgetgate.scheduler import ReplenishmentScheduler

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan events."""
    settings: Settings = app.state.settings
    scheduler: ReplenishmentScheduler | None = None

    # Startup
    logger.info("Starting budget gate API...")
    if settings.authoritative:
        scheduler = ReplenishmentScheduler(
            app.state.controller,
            caller_count=app.state.callers.count,
            interval_seconds=settings.tick_interval_seconds,
            timezone=settings.scheduler_timezone,
        )
        scheduler.start()
    else:
        logger.info("Not authoritative; budgets will not be replenished")
    app.state.scheduler = scheduler
    yield
    # Shutdown
    logger.info("Shutting down budget gate API...")
    if scheduler is not None:
        scheduler.shutdown()


def create_app(
    controller: AdmissionController | None = None,
    callers: CallerTracker | None = None,
    settings: Settings | None = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        controller: Initialized controller; built from settings if None
        callers: Active-caller tracker feeding the tick
        settings: Settings to use instead of the cached environment ones
    """
    settings = settings or get_settings()
    if controller is None:
        controller = AdmissionController()
        configs = settings.budget_configs()
        controller.initialize(configs, derived_rules_for(configs))

    app = FastAPI(
        title="Budget Gate",
        description="Multi-budget admission control with fair queuing",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.controller = controller
    app.state.callers = callers or CallerTracker()
    app.state.scheduler = None

    # Request timing middleware
    @app.middleware("http")
    async def add_timing_header(request: Request, call_next):
        start_time = time.perf_counter()
        response = await call_next(request)
        process_time = (time.perf_counter() - start_time) * 1000
        response.headers["X-Process-Time-Ms"] = f"{process_time:.2f}"
        return response

    app.include_router(api_router, prefix="/v1", tags=["budgets"])

    # Health check
    @app.get("/health")
    async def health_check():
        return {"status": "healthy", "version": __version__}

    return app
