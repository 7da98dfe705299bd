"""API routers."""

from .health import router as health_router
from .operations import router as operations_router
from .queue import router as queue_router
from .sessions import router as sessions_router

__all__ = [
    "health_router",
    "operations_router",
    "queue_router",
    "sessions_router",
]
