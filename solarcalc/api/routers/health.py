"""
Health check API endpoints.

Routes: GET /health, GET /health/db, GET /health/queue

Dependencies: solarcalc.boundary.db, solarcalc.application.services
System role: Health check HTTP API
"""

import logging

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from solarcalc.api.deps import get_session_management_service
from solarcalc.application.services import SessionManagementService
from solarcalc.boundary.db import get_async_db
from solarcalc.models.queue import QueueStatusResponse

logger = logging.getLogger(__name__)


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str
    message: str


router = APIRouter(prefix="/health", tags=["health"])


@router.get("", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Basic health check."""
    return HealthResponse(status="healthy", message="Server Healthy")


@router.get("/db", response_model=HealthResponse)
async def health_check_db(db: AsyncSession = Depends(get_async_db)) -> HealthResponse:
    """Database health check."""
    try:
        await db.execute(text("SELECT 1"))
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        raise HTTPException(status_code=503, detail=f"Database unavailable: {e}")
    return HealthResponse(status="healthy", message="Database connection OK")


@router.get("/queue", response_model=QueueStatusResponse)
async def health_check_queue(
    service: SessionManagementService = Depends(get_session_management_service),
) -> QueueStatusResponse:
    """Queue occupancy per operation category."""
    return QueueStatusResponse(**service.get_queue_status())
