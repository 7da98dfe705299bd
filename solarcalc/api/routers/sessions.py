"""
Session API endpoints.

Routes:
- POST /sessions - Create or resume a user's session
- GET /sessions/{user_id} - Get the user's valid session
- DELETE /sessions/{user_id} - Tear down session, processes and files
- POST /sessions/{user_id}/processes/{application} - Start isolated Office process

Dependencies: solarcalc.application.services, solarcalc.models
System role: Session management HTTP API
"""

import logging

from fastapi import APIRouter, Depends, HTTPException

from solarcalc.api.deps import get_session_management_service
from solarcalc.api.routers.router_utils import to_http_exception
from solarcalc.application.services import SessionManagementService
from solarcalc.models.session import (
    ComProcessResponse,
    CreateSessionRequest,
    SessionResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sessions", tags=["sessions"])


@router.post("", response_model=SessionResponse)
async def create_session(
    request: CreateSessionRequest,
    service: SessionManagementService = Depends(get_session_management_service),
) -> SessionResponse:
    """
    Create a session for the user, or return the one still valid.

    Raises:
        HTTPException(400): Invalid user ID
        HTTPException(500): Creation failed
    """
    try:
        session = service.create_or_get_session(request.user_id)
        return SessionResponse(**session.to_dict())
    except Exception as e:
        raise to_http_exception(e, "Session creation")


@router.get("/{user_id}", response_model=SessionResponse)
async def get_session(
    user_id: str,
    service: SessionManagementService = Depends(get_session_management_service),
) -> SessionResponse:
    """
    Get the user's session.

    Raises:
        HTTPException(404): No valid session
    """
    session = service.get_user_session(user_id)
    if session is None:
        raise HTTPException(status_code=404, detail=f"Session not found or expired for user {user_id}")
    return SessionResponse(**session.to_dict())


@router.delete("/{user_id}", status_code=204)
async def delete_session(
    user_id: str,
    service: SessionManagementService = Depends(get_session_management_service),
) -> None:
    """
    Clean up the user's session.

    Returns:
        204 No Content on success

    Raises:
        HTTPException(404): No session
        HTTPException(500): Cleanup failed
    """
    try:
        removed = await service.cleanup_user_session(user_id)
    except Exception as e:
        raise to_http_exception(e, "Session cleanup")
    if not removed:
        raise HTTPException(status_code=404, detail=f"No session for user: {user_id}")


@router.post("/{user_id}/processes/{application}", response_model=ComProcessResponse)
async def start_process(
    user_id: str,
    application: str,
    service: SessionManagementService = Depends(get_session_management_service),
) -> ComProcessResponse:
    """
    Start an isolated Excel or PowerPoint process in the session folder.

    Raises:
        HTTPException(400): Unsupported application
        HTTPException(404): No valid session
        HTTPException(500): Launch failed
    """
    try:
        info = await service.start_com_process(user_id, application)
        return ComProcessResponse(**info.to_dict())
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise to_http_exception(e, "Process launch")
