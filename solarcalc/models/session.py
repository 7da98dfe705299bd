"""
Session domain models and schemas.

Request/response schemas for user session operations.

Dependencies: pydantic
System role: Session API contracts
"""

from datetime import datetime

from pydantic import BaseModel, Field


class CreateSessionRequest(BaseModel):
    """Request schema for creating (or resuming) a user session."""

    user_id: str = Field(..., min_length=1, max_length=255, description="User identifier")


class SessionResponse(BaseModel):
    """Response schema for session operations."""

    user_id: str
    session_id: str
    working_directory: str
    start_time: datetime
    last_activity: datetime
    active_operations: list[str] = Field(default_factory=list)
    com_processes: dict[str, int] = Field(default_factory=dict)


class ComProcessResponse(BaseModel):
    """An isolated Office process started for a session."""

    process_id: int
    user_id: str
    session_id: str
    application: str
    working_directory: str
    start_time: datetime
