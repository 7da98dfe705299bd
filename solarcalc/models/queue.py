"""
Queue request and status schemas.

Dependencies: pydantic
System role: Operation queue API contracts
"""

from typing import Any

from pydantic import BaseModel, Field

from solarcalc.core.session.models import OperationType


class QueueRequest(BaseModel):
    """Submit one operation for a user."""

    user_id: str = Field(..., min_length=1)
    operation: str = Field(..., min_length=1, description="Registered operation name")
    data: dict[str, Any] = Field(default_factory=dict)
    priority: int | None = Field(default=None, description="Higher runs first; category default if omitted")


class QueueResponse(BaseModel):
    """Result of a completed operation."""

    success: bool
    operation: str
    operation_type: OperationType
    result: Any = None


class BatchOperation(BaseModel):
    """One entry of a batch submission."""

    operation: str = Field(..., min_length=1)
    operation_type: OperationType
    data: dict[str, Any] = Field(default_factory=dict)
    priority: int | None = None


class BatchRequest(BaseModel):
    """Submit several operations for one user concurrently."""

    user_id: str = Field(..., min_length=1)
    operations: list[BatchOperation] = Field(..., min_length=1)


class BatchItemResult(BaseModel):
    operation: str
    operation_type: OperationType
    success: bool
    result: Any = None
    error: str | None = None


class BatchResponse(BaseModel):
    """Per-operation outcomes plus timing."""

    results: list[BatchItemResult]
    total_operations: int
    successful: int
    failed: int
    total_time_ms: float
    average_time_ms: float
    by_type: dict[str, int]


class CategoryStatus(BaseModel):
    queued: int
    active: int
    max_concurrent: int


class QueueStatusResponse(BaseModel):
    """Queue occupancy across categories."""

    total_queued: int
    total_active: int
    total_active_sessions: int
    by_type: dict[str, CategoryStatus]
