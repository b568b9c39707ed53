"""Main FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI

from stretchtime.api.calendar import router as calendar_router
from stretchtime.api.settings import router as settings_router
from stretchtime.api.timer import router as timer_router
from stretchtime.config import settings
from stretchtime.core.coordinator import AppCoordinator, build_coordinator

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)


def create_app(coordinator: Optional[AppCoordinator] = None) -> FastAPI:
    """Build the control API. Without a coordinator, one is built from settings at startup."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Starts the timer and calendar polling, and stops them on shutdown."""
        logger.info("Starting StretchTime")
        app.state.coordinator = coordinator or build_coordinator(settings)
        app.state.coordinator.start()

        yield

        logger.info("Shutting down StretchTime")
        await app.state.coordinator.stop()

    app = FastAPI(
        title="StretchTime",
        description="Stretch reminders that stay out of your meetings",
        version="1.0.0",
        debug=settings.debug,
        lifespan=lifespan,
    )

    app.include_router(settings_router)
    app.include_router(calendar_router)
    app.include_router(timer_router)

    @app.get("/")
    async def root():
        """Provides basic information about the running service."""
        return {"message": "StretchTime", "status": "running"}

    @app.get("/health")
    async def health_check():
        """Reports whether the timer and calendar polling are alive."""
        current = getattr(app.state, "coordinator", None)
        return {
            "status": "healthy",
            "timer_paused": current.timer.is_paused() if current else None,
            "calendar_polling": current.calendar.is_polling if current else False,
        }

    return app


app = create_app()


def run():
    """Console entry point: serve the control API on localhost."""
    uvicorn.run(app, host=settings.api_host, port=settings.api_port, log_level=settings.log_level.lower())
