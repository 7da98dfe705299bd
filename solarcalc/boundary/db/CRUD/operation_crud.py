"""
Operation CRUD operations.

Queue-specific lookups for OperationModel by request ID, user and status.

Dependencies: sqlalchemy, solarcalc.boundary.db.models.operation_model
System role: Persistence of queued request history
"""

from typing import Any, Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from solarcalc.boundary.db.CRUD.base_crud import BaseCRUD
from solarcalc.boundary.db.models.operation_model import OperationModel
from solarcalc.core.session.models import OperationType, RequestStatus


class OperationCRUD(BaseCRUD[OperationModel]):
    """
    CRUD operations for OperationModel.

    Rows are keyed externally by the queue's request ID; the UUID primary
    key stays internal.
    """

    def __init__(self) -> None:
        """Initialize OperationCRUD with OperationModel."""
        super().__init__(OperationModel)

    async def get_by_request_id(
        self,
        session: AsyncSession,
        request_id: str,
    ) -> OperationModel | None:
        """
        Retrieve an operation by queue request ID.

        Args:
            session: Async database session
            request_id: Queue request identifier

        Returns:
            OperationModel if found, None otherwise
        """
        return await self.get_one_by(session, "request_id", request_id)

    async def update_by_request_id(
        self,
        session: AsyncSession,
        request_id: str,
        **kwargs: Any,
    ) -> OperationModel | None:
        """Update an operation by queue request ID."""
        return await self.update_where(session, "request_id", request_id, **kwargs)

    async def get_by_user(
        self,
        session: AsyncSession,
        user_id: str,
        limit: int | None = None,
        offset: int = 0,
    ) -> Sequence[OperationModel]:
        """
        Retrieve a user's operations, newest first.

        Args:
            session: Async database session
            user_id: User identifier
            limit: Maximum number of rows
            offset: Number of rows to skip

        Returns:
            Sequence of OperationModels
        """
        return await self.list_by(
            session,
            filters={"user_id": user_id},
            order_by="queued_at",
            descending=True,
            limit=limit,
            offset=offset,
        )

    async def get_by_status(
        self,
        session: AsyncSession,
        status: RequestStatus,
        limit: int | None = None,
    ) -> Sequence[OperationModel]:
        """Retrieve operations in a lifecycle status, oldest first."""
        return await self.list_by(
            session,
            filters={"status": status},
            order_by="queued_at",
            limit=limit,
        )

    async def count_by_type_and_status(
        self,
        session: AsyncSession,
        user_id: str | None = None,
    ) -> dict[tuple[OperationType, RequestStatus], int]:
        """
        Count operations grouped by category and status.

        Args:
            session: Async database session
            user_id: Restrict to one user if given

        Returns:
            dict: (operation_type, status) -> count
        """
        stmt = select(
            OperationModel.operation_type,
            OperationModel.status,
            func.count(),
        ).group_by(OperationModel.operation_type, OperationModel.status)
        if user_id is not None:
            stmt = stmt.where(OperationModel.user_id == user_id)
        result = await session.execute(stmt)
        return {(row[0], row[1]): row[2] for row in result.all()}


operation_crud = OperationCRUD()
