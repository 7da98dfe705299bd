"""
Operation queue API endpoints.

Routes:
- POST /queue/batch - Run several operations for a user concurrently
- POST /queue/{operation_type} - Queue one operation and wait for its result
- GET /queue/status - Occupancy per category

Dependencies: solarcalc.application.services, solarcalc.models
System role: Operation queue HTTP API
"""

import logging

from fastapi import APIRouter, Depends, HTTPException

from solarcalc.api.deps import get_session_management_service
from solarcalc.api.routers.router_utils import to_http_exception
from solarcalc.application.services import SessionManagementService
from solarcalc.core.session.models import OperationType
from solarcalc.models.queue import (
    BatchRequest,
    BatchResponse,
    QueueRequest,
    QueueResponse,
    QueueStatusResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/queue", tags=["queue"])


@router.get("/status", response_model=QueueStatusResponse)
async def get_queue_status(
    service: SessionManagementService = Depends(get_session_management_service),
) -> QueueStatusResponse:
    """Queued and active requests per operation category."""
    return QueueStatusResponse(**service.get_queue_status())


@router.post("/batch", response_model=BatchResponse)
async def run_batch(
    request: BatchRequest,
    service: SessionManagementService = Depends(get_session_management_service),
) -> BatchResponse:
    """
    Run several operations for one user; failures are reported per item.

    Raises:
        HTTPException(404): No valid session
    """
    if service.get_user_session(request.user_id) is None:
        raise HTTPException(status_code=404, detail=f"Session not found or expired for user {request.user_id}")
    try:
        result = await service.run_batch(
            request.user_id,
            [op.model_dump() for op in request.operations],
        )
        return BatchResponse(**result)
    except Exception as e:
        raise to_http_exception(e, "Batch")


@router.post("/{operation_type}", response_model=QueueResponse)
async def queue_operation(
    operation_type: OperationType,
    request: QueueRequest,
    service: SessionManagementService = Depends(get_session_management_service),
) -> QueueResponse:
    """
    Queue one operation and wait for it to finish.

    Args:
        operation_type: com, non-com, database or api
        request: user_id, operation, data, priority
        service: Injected SessionManagementService

    Raises:
        HTTPException(400): Invalid payload
        HTTPException(404): Unknown operation, no session, missing workbook
        HTTPException(503): Queue closed or automation unavailable on this host
        HTTPException(500): Operation failed
    """
    try:
        result = await service.queue_request(
            request.user_id,
            request.operation,
            operation_type,
            request.data,
            request.priority,
        )
    except Exception as e:
        raise to_http_exception(e, f"Operation {request.operation}")
    return QueueResponse(
        success=True,
        operation=request.operation,
        operation_type=operation_type,
        result=result,
    )
