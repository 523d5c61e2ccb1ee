"""
FastAPI worker service for the scout engine.

Receives execution hand-offs from the scheduler and runs them through
the agent loop.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from api.routes import executions, health
from scout_engine import __version__
from scout_engine.config import Settings
from scout_engine.utils.logging import setup_logging
from scout_engine.worker.trigger import ExecutionTrigger, build_trigger

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    trigger: Optional[ExecutionTrigger] = None,
) -> FastAPI:
    """
    Build the worker app.

    Args:
        settings: Settings override (defaults to the environment at startup)
        trigger: Trigger override (defaults to one built from settings)
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan - startup and shutdown."""
        if app.state.settings is None:
            app.state.settings = Settings.from_env()
            setup_logging(app.state.settings.log_level, app.state.settings.log_file)
        if app.state.trigger is None:
            app.state.trigger = build_trigger(app.state.settings)
        if not app.state.settings.scheduler.worker_token:
            logger.warning("SCOUT_WORKER_TOKEN not set; trigger endpoint is unauthenticated")
        logger.info(f"Scout worker {app.state.settings.worker_id} starting")
        yield
        logger.info("Scout worker shutting down")

    app = FastAPI(
        title="Scout Engine Worker API",
        description="Runs scout executions handed off by the scheduler",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.trigger = trigger

    app.include_router(health.router, tags=["Health"])
    app.include_router(executions.router, prefix="/api", tags=["Executions"])
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "api.main:app",
        host="0.0.0.0",
        port=8000,
    )
