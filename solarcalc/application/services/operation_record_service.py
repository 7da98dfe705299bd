"""
Operation audit trail.

OperationRecorder persists queue transition snapshots; OperationRecordService
answers history queries for the API.

Dependencies: sqlalchemy, solarcalc.boundary.db.CRUD
System role: Persistence and lookup of queued request history
"""

import json
import logging
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from solarcalc.boundary.db.CRUD.operation_crud import operation_crud
from solarcalc.boundary.db.models.operation_model import OperationModel
from solarcalc.core.session.models import RequestSnapshot, RequestStatus

logger = logging.getLogger(__name__)


def _json_safe(data: dict[str, Any]) -> dict[str, Any]:
    return json.loads(json.dumps(data, default=str))


def _duration_ms(snapshot: RequestSnapshot) -> int | None:
    if snapshot.started_at is None or snapshot.completed_at is None:
        return None
    return int((snapshot.completed_at - snapshot.started_at).total_seconds() * 1000)


class OperationRecorder:
    """
    Queue transition listener writing to the ``operations`` table.

    Opens a short-lived session per snapshot. Snapshots arrive in order from
    the queue's notifier, so a later state never lands before an earlier one.
    """

    def __init__(self, session_factory: async_sessionmaker) -> None:
        """
        Initialize recorder.

        Args:
            session_factory: Async session factory (own transaction per write)
        """
        self.session_factory = session_factory

    async def record(self, snapshot: RequestSnapshot) -> None:
        """
        Insert the row on ``queued``, update it on later transitions.

        A missing row on update (e.g. the insert failed) is created from the
        snapshot.
        """
        async with self.session_factory() as db:
            try:
                if snapshot.status is RequestStatus.QUEUED:
                    await self._insert(db, snapshot)
                else:
                    updated = await operation_crud.update_by_request_id(
                        db,
                        snapshot.id,
                        status=snapshot.status,
                        started_at=snapshot.started_at,
                        completed_at=snapshot.completed_at,
                        error=snapshot.error,
                        duration_ms=_duration_ms(snapshot),
                    )
                    if updated is None:
                        await self._insert(db, snapshot)
                await db.commit()
            except Exception:
                await db.rollback()
                raise

        logger.debug(f"Recorded {snapshot.id} as {snapshot.status.value}")

    @staticmethod
    async def _insert(db: AsyncSession, snapshot: RequestSnapshot) -> OperationModel:
        return await operation_crud.create(
            db,
            request_id=snapshot.id,
            user_id=snapshot.user_id,
            operation=snapshot.operation,
            operation_type=snapshot.operation_type,
            priority=snapshot.priority,
            status=snapshot.status,
            payload=_json_safe(snapshot.data),
            error=snapshot.error,
            queued_at=snapshot.queued_at,
            started_at=snapshot.started_at,
            completed_at=snapshot.completed_at,
            duration_ms=_duration_ms(snapshot),
        )


class OperationRecordService:
    """Read side of the operation audit trail."""

    def __init__(self, db: AsyncSession) -> None:
        """
        Initialize service with async database session.

        Args:
            db: Async SQLAlchemy session
        """
        self.db = db

    async def get_operation(self, request_id: str) -> OperationModel:
        """
        Get a recorded operation by request ID.

        Raises:
            ValueError: If no operation was recorded under that ID
        """
        operation = await operation_crud.get_by_request_id(self.db, request_id)
        if operation is None:
            raise ValueError(f"Operation {request_id} does not exist")
        return operation

    async def list_user_operations(
        self,
        user_id: str,
        limit: int = 50,
        offset: int = 0,
    ) -> list[OperationModel]:
        """A user's operations, newest first."""
        return list(await operation_crud.get_by_user(self.db, user_id, limit=limit, offset=offset))

    async def get_user_summary(self, user_id: str) -> dict[str, Any]:
        """
        Count a user's operations by category and status.

        Returns:
            dict: user_id, total, counts[type][status]
        """
        grouped = await operation_crud.count_by_type_and_status(self.db, user_id=user_id)
        counts: dict[str, dict[str, int]] = {}
        for (op_type, status), count in grouped.items():
            type_key = getattr(op_type, "value", op_type)
            status_key = getattr(status, "value", status)
            counts.setdefault(type_key, {})[status_key] = count
        return {
            "user_id": user_id,
            "total": sum(grouped.values()),
            "counts": counts,
        }
