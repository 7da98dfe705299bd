"""
Operation history schemas.

Dependencies: pydantic
System role: Operation audit API contracts
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict

from solarcalc.core.session.models import OperationType, RequestStatus


class OperationResponse(BaseModel):
    """A recorded queue request."""

    model_config = ConfigDict(from_attributes=True)

    request_id: str
    user_id: str
    operation: str
    operation_type: OperationType
    priority: int
    status: RequestStatus
    payload: dict[str, Any]
    error: str | None = None
    queued_at: datetime
    started_at: datetime | None = None
    completed_at: datetime | None = None
    duration_ms: int | None = None


class OperationSummaryResponse(BaseModel):
    """Counts of a user's operations by category and status."""

    user_id: str
    total: int
    counts: dict[str, dict[str, int]]
