"""Per-user sessions and the category-bounded operation queue."""

from solarcalc.core.session.models import (
    OperationType,
    QueuedRequest,
    RequestSnapshot,
    RequestStatus,
    UserSession,
)
from solarcalc.core.session.operation_queue import OperationQueue
from solarcalc.core.session.session_registry import SessionRegistry

__all__ = [
    "OperationQueue",
    "OperationType",
    "QueuedRequest",
    "RequestSnapshot",
    "RequestStatus",
    "SessionRegistry",
    "UserSession",
]
