"""
Retrieval Engine Application Entry Point

Defines the FastAPI application, registers routers and exception handlers,
and optionally runs the partition scheduler for the lifetime of the process.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI

from .config import settings
from .core.errors import (
    InvalidInput,
    RetrievalUnavailable,
    invalid_input_handler,
    retrieval_unavailable_handler,
    unhandled_exception_handler,
)
from .core.log import configure_logging
from .partitions.scheduler import PartitionScheduler

from .api import (
    health_routes,
    partition_routes,
    retrieval_routes,
)
from .api.dependencies import get_partition_manager


logger = logging.getLogger("retrieval.app")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    logger.info("Starting retrieval engine")

    scheduler: Optional[PartitionScheduler] = None
    if settings.partition_scheduler_enabled:
        scheduler = PartitionScheduler(get_partition_manager())
        scheduler.start()
    app.state.partition_scheduler = scheduler

    try:
        yield
    finally:
        if scheduler is not None:
            await scheduler.stop()
        logger.info("Shutting down retrieval engine")


# ---------------------------------------------------------------------
# Application Factory (Test-Friendly)
# ---------------------------------------------------------------------

def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns
    -------
    FastAPI
        Fully configured application; tests override dependencies on it.
    """
    configure_logging()

    app = FastAPI(
        title="metachat-retrieval",
        version="1.0.0",
        lifespan=lifespan,
    )

    # --------------------------------------------------------------
    # Exception Handling
    # --------------------------------------------------------------

    app.add_exception_handler(InvalidInput, invalid_input_handler)
    app.add_exception_handler(RetrievalUnavailable, retrieval_unavailable_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # --------------------------------------------------------------
    # Router Registration
    # --------------------------------------------------------------

    app.include_router(health_routes.router)
    app.include_router(retrieval_routes.router)
    app.include_router(partition_routes.router)

    return app


# ---------------------------------------------------------------------
# Default Application Instance (for Uvicorn)
# ---------------------------------------------------------------------

app = create_app()
