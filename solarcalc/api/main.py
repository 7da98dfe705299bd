"""
FastAPI application with assembled routers.

Initializes FastAPI app with all API routers and configures uvicorn server.

Dependencies: fastapi, solarcalc.api.routers, uvicorn
System role: API entry point with router assembly and server launch
"""

from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

import logging
from solarcalc.api.deps.dependencies import get_service_cache
from solarcalc.boundary.db.create_tables import create_all_tables
from solarcalc.configs import get_settings
from solarcalc.observability import configure_logging
from solarcalc.observability.middleware import CorrelationMiddleware, RequestLoggingMiddleware
from .routers import (
    health_router,
    operations_router,
    queue_router,
    sessions_router,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan context manager.

    Startup: logging, optional table creation, session sweep.
    Shutdown: queue drain, process cleanup, cache reset.
    """
    settings = get_settings()
    configure_logging(settings.log_level)
    logger = logging.getLogger("uvicorn")

    # Startup
    if settings.database.create_tables_on_startup:
        await create_all_tables()

    cache = get_service_cache()
    service = cache.session_management
    service.start()
    logger.info("Session management service started")

    yield

    # Shutdown
    await service.stop()
    cache.clear()
    logger.info("Service cache cleared")


def create_app() -> FastAPI:
    """
    Create and configure FastAPI application with routers.

    Returns:
        FastAPI: Configured application instance with all routers registered
    """
    app = FastAPI(
        title="Solar Calculator Automation API",
        description="Per-user queued Excel calculator automation",
        version="0.1.0",
        lifespan=lifespan,
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Add observability middleware
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(CorrelationMiddleware)

    # Register all routers with /api/v1 prefix for versioning
    app.include_router(health_router, prefix="/api/v1")
    app.include_router(sessions_router, prefix="/api/v1")
    app.include_router(queue_router, prefix="/api/v1")
    app.include_router(operations_router, prefix="/api/v1")

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(
        "solarcalc.api.main:app",
        host="0.0.0.0",
        port=8000,
    )
