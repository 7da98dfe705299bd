"""
Session and queue domain models.

In-memory state for user sessions and queued requests. Requests carry an
asyncio future resolved with the handler result; listeners only ever see
frozen snapshots.

Dependencies: asyncio, dataclasses
System role: Core types shared by the registry, the queue and services
"""

import asyncio
import enum
import random
import string
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

SESSION_SUBDIRS = ("excel", "powerpoint", "pdf", "temp")

_ID_ALPHABET = string.ascii_lowercase + string.digits


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _random_suffix(length: int = 9) -> str:
    return "".join(random.choices(_ID_ALPHABET, k=length))


def generate_session_id() -> str:
    """Session IDs look like ``session_<epoch ms>_<9 base36 chars>``."""
    return f"session_{int(time.time() * 1000)}_{_random_suffix()}"


def generate_request_id() -> str:
    """Request IDs look like ``req_<epoch ms>_<9 base36 chars>``."""
    return f"req_{int(time.time() * 1000)}_{_random_suffix()}"


class OperationType(str, enum.Enum):
    """
    Operation categories, each with its own concurrency limit.

    COM: Excel/PowerPoint automation through Office COM
    NON_COM: File and PDF work that does not touch Office
    DATABASE: Persistence calls
    API: Outbound calls to third-party services
    """

    COM = "com"
    NON_COM = "non-com"
    DATABASE = "database"
    API = "api"

    @property
    def default_priority(self) -> int:
        return DEFAULT_PRIORITIES[self]


# Higher runs first
DEFAULT_PRIORITIES: dict[OperationType, int] = {
    OperationType.COM: 1,
    OperationType.NON_COM: 2,
    OperationType.DATABASE: 3,
    OperationType.API: 4,
}


class RequestStatus(str, enum.Enum):
    """
    Queued request lifecycle states.

    QUEUED: Waiting for capacity in its category
    PROCESSING: Handler running
    COMPLETED: Handler returned; future holds the result
    FAILED: Handler raised or the request was rejected at dispatch
    """

    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (RequestStatus.COMPLETED, RequestStatus.FAILED)


@dataclass
class UserSession:
    """
    Automation session for one user.

    Attributes:
        user_id: Owning user
        session_id: ``session_<ms>_<rand>`` identifier
        working_directory: ``user-sessions/<user>/<session>`` folder
        start_time: Creation time (UTC)
        last_activity: Refreshed on every access and operation boundary
        active_operations: IDs of requests currently executing for the user
        com_processes: Office application name -> tracked process ID
    """

    user_id: str
    session_id: str
    working_directory: Path
    start_time: datetime = field(default_factory=_utcnow)
    last_activity: datetime = field(default_factory=_utcnow)
    active_operations: set[str] = field(default_factory=set)
    com_processes: dict[str, int] = field(default_factory=dict)

    def touch(self) -> None:
        self.last_activity = _utcnow()

    def is_expired(self, timeout_seconds: float) -> bool:
        return _utcnow() - self.last_activity >= timedelta(seconds=timeout_seconds)

    def subdirectory(self, name: str) -> Path:
        return self.working_directory / name

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "session_id": self.session_id,
            "working_directory": str(self.working_directory),
            "start_time": self.start_time.isoformat(),
            "last_activity": self.last_activity.isoformat(),
            "active_operations": sorted(self.active_operations),
            "com_processes": dict(self.com_processes),
        }


@dataclass(frozen=True)
class RequestSnapshot:
    """Immutable view of a request at one lifecycle transition."""

    id: str
    user_id: str
    operation: str
    operation_type: OperationType
    priority: int
    status: RequestStatus
    queued_at: datetime
    started_at: datetime | None
    completed_at: datetime | None
    error: str | None
    data: dict[str, Any]


@dataclass
class QueuedRequest:
    """A unit of work waiting for, or holding, a slot in its category."""

    user_id: str
    operation: str
    operation_type: OperationType
    priority: int
    data: dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=generate_request_id)
    status: RequestStatus = RequestStatus.QUEUED
    queued_at: datetime = field(default_factory=_utcnow)
    started_at: datetime | None = None
    completed_at: datetime | None = None
    error: str | None = None
    future: asyncio.Future | None = field(default=None, repr=False, compare=False)

    def snapshot(self) -> RequestSnapshot:
        return RequestSnapshot(
            id=self.id,
            user_id=self.user_id,
            operation=self.operation,
            operation_type=self.operation_type,
            priority=self.priority,
            status=self.status,
            queued_at=self.queued_at,
            started_at=self.started_at,
            completed_at=self.completed_at,
            error=self.error,
            data=dict(self.data),
        )

    @property
    def duration_ms(self) -> float | None:
        if self.started_at is None or self.completed_at is None:
            return None
        return (self.completed_at - self.started_at).total_seconds() * 1000
