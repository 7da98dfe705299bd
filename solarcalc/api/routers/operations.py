"""
Operation history API endpoints.

Routes:
- GET /operations/{request_id} - One recorded request
- GET /operations?user_id= - A user's requests, newest first
- GET /operations/summary/{user_id} - Counts by category and status

Dependencies: solarcalc.application.services.operation_record_service
System role: Operation audit trail HTTP API
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query

from solarcalc.api.deps import get_operation_record_service
from solarcalc.application.services import OperationRecordService
from solarcalc.models.operation import OperationResponse, OperationSummaryResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/operations", tags=["operations"])


@router.get("", response_model=list[OperationResponse])
async def list_operations(
    user_id: str = Query(..., min_length=1),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    service: OperationRecordService = Depends(get_operation_record_service),
) -> list[OperationResponse]:
    """
    List a user's recorded operations.

    Raises:
        HTTPException(500): Retrieval failed
    """
    try:
        operations = await service.list_user_operations(user_id, limit=limit, offset=offset)
        return [OperationResponse.model_validate(op) for op in operations]
    except Exception as e:
        raise HTTPException(
            status_code=500,
            detail=f"Failed to retrieve operations: {str(e)}"
        )


@router.get("/summary/{user_id}", response_model=OperationSummaryResponse)
async def get_operation_summary(
    user_id: str,
    service: OperationRecordService = Depends(get_operation_record_service),
) -> OperationSummaryResponse:
    """Count a user's operations by category and status."""
    try:
        return OperationSummaryResponse(**await service.get_user_summary(user_id))
    except Exception as e:
        raise HTTPException(
            status_code=500,
            detail=f"Failed to summarize operations: {str(e)}"
        )


@router.get("/{request_id}", response_model=OperationResponse)
async def get_operation(
    request_id: str,
    service: OperationRecordService = Depends(get_operation_record_service),
) -> OperationResponse:
    """
    Get a recorded operation by request ID.

    Raises:
        HTTPException(404): Not recorded
    """
    try:
        operation = await service.get_operation(request_id)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return OperationResponse.model_validate(operation)
