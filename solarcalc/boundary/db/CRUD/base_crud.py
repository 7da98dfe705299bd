"""
Base CRUD operations for SQLAlchemy models.

Generic create/read/update/delete plus column-keyed lookups, for models
whose natural key is not the UUID primary key.

Dependencies: sqlalchemy, uuid
System role: Foundation for all database CRUD operations
"""

from typing import Any, Generic, Sequence, TypeVar
from uuid import UUID

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from solarcalc.boundary.db.base import Base

ModelT = TypeVar("ModelT", bound=Base)


class BaseCRUD(Generic[ModelT]):
    """
    Generic base class for CRUD operations.

    Subclasses pass their model class and add model-specific queries.
    Methods flush but never commit; the caller owns the transaction.

    Type Parameters:
        ModelT: SQLAlchemy model class inheriting from Base
    """

    def __init__(self, model: type[ModelT]) -> None:
        """
        Initialize CRUD with target model.

        Args:
            model: SQLAlchemy model class for database operations
        """
        self.model = model

    def _column(self, name: str):
        try:
            return getattr(self.model, name)
        except AttributeError:
            raise ValueError(f"{self.model.__name__} has no column {name!r}") from None

    async def create(self, session: AsyncSession, **kwargs: Any) -> ModelT:
        """
        Insert a new row.

        Args:
            session: Async database session
            **kwargs: Model field values

        Returns:
            Created model instance with generated ID and timestamps
        """
        instance = self.model(**kwargs)
        session.add(instance)
        await session.flush()
        await session.refresh(instance)
        return instance

    async def get_by_id(self, session: AsyncSession, id: UUID) -> ModelT | None:
        """Retrieve a single row by primary key, None if absent."""
        stmt = select(self.model).where(self.model.id == id)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_one_by(self, session: AsyncSession, column: str, value: Any) -> ModelT | None:
        """
        Retrieve a single row by a unique column.

        Args:
            session: Async database session
            column: Column attribute name
            value: Value to match

        Returns:
            Model instance if found, None otherwise
        """
        stmt = select(self.model).where(self._column(column) == value)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_by(
        self,
        session: AsyncSession,
        filters: dict[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
        offset: int = 0,
    ) -> Sequence[ModelT]:
        """
        Retrieve rows matching equality filters.

        Args:
            session: Async database session
            filters: Column name -> required value
            order_by: Column to sort on
            descending: Sort direction
            limit: Maximum number of rows (None for all)
            offset: Number of rows to skip

        Returns:
            Sequence of model instances
        """
        stmt = select(self.model)
        for name, value in (filters or {}).items():
            stmt = stmt.where(self._column(name) == value)
        if order_by is not None:
            column = self._column(order_by)
            stmt = stmt.order_by(column.desc() if descending else column.asc())
        stmt = stmt.offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await session.execute(stmt)
        return result.scalars().all()

    async def count(self, session: AsyncSession, filters: dict[str, Any] | None = None) -> int:
        """Count rows matching equality filters."""
        stmt = select(func.count()).select_from(self.model)
        for name, value in (filters or {}).items():
            stmt = stmt.where(self._column(name) == value)
        result = await session.execute(stmt)
        return int(result.scalar_one())

    async def update_where(
        self,
        session: AsyncSession,
        column: str,
        value: Any,
        **kwargs: Any,
    ) -> ModelT | None:
        """
        Update the row whose unique column equals value.

        Returns:
            Updated model instance if found, None otherwise
        """
        stmt = (
            update(self.model)
            .where(self._column(column) == value)
            .values(**kwargs)
            .returning(self.model)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def update_by_id(self, session: AsyncSession, id: UUID, **kwargs: Any) -> ModelT | None:
        """Update a row by primary key."""
        return await self.update_where(session, "id", id, **kwargs)

    async def delete_by_id(self, session: AsyncSession, id: UUID) -> bool:
        """
        Delete a row by primary key.

        Returns:
            True if a row was deleted, False if not found
        """
        stmt = delete(self.model).where(self.model.id == id)
        result = await session.execute(stmt)
        return result.rowcount > 0
